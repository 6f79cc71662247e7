from typing import List

from location_models import DataPoint, FilterOptions
from normalizer import parse_timestamp


def point_matches(point: DataPoint, options: FilterOptions) -> bool:
    """True if the point passes every predicate set on ``options``."""
    if options.time_range and point.timestamp:
        moment = parse_timestamp(point.timestamp)
        # unparseable timestamps are not excluded by the time filter
        if moment is not None and not options.time_range.contains(moment):
            return False

    visits = point.visits
    if options.min_visit_count is not None and visits < options.min_visit_count:
        return False
    if options.max_visit_count is not None and visits > options.max_visit_count:
        return False

    if options.categories:
        if not point.category or point.category not in options.categories:
            return False

    return True


def filter_points(points: List[DataPoint], options: FilterOptions) -> List[DataPoint]:
    """Stable, side-effect free filter"""
    if options is None:
        return list(points)
    return [p for p in points if point_matches(p, options)]
