import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from location_models import DataPoint, utc_now
from normalizer import MONTH_YEAR_FORMAT, parse_timestamp

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = 'Unknown'
MOST_VISITED_LIMIT = 5
RECENT_DAYS = 30


def category_breakdown(points: List[DataPoint]) -> List[Dict[str, Any]]:
    """Point and visit counts per category, largest first"""
    if not points:
        return []

    df = pd.DataFrame({
        'category': [p.category if p.category else UNKNOWN_CATEGORY for p in points],
        'visits': [p.visits for p in points],
    })
    grouped = df.groupby('category', sort=False).agg(
        count=('visits', 'size'),
        visit_count=('visits', 'sum'),
    )
    grouped = grouped.sort_values('count', ascending=False, kind='stable')

    return [
        {'category': category, 'count': int(row['count']), 'visit_count': int(row['visit_count'])}
        for category, row in grouped.iterrows()
    ]


def time_distribution(points: List[DataPoint]) -> Optional[List[Dict[str, Any]]]:
    """Points per calendar month, oldest first; None if nothing has a timestamp"""
    moments = [parse_timestamp(p.timestamp) for p in points if p.timestamp]
    moments = [m for m in moments if m is not None]
    if not moments:
        return None

    months = pd.Series(moments).dt.tz_localize(None).dt.to_period('M')
    counts = months.value_counts().sort_index()
    return [
        {'month': period.strftime(MONTH_YEAR_FORMAT), 'count': int(count)}
        for period, count in counts.items()
    ]


def most_visited(points: List[DataPoint], limit: int = MOST_VISITED_LIMIT) -> List[DataPoint]:
    repeat = [p for p in points if p.visit_count is not None and p.visit_count > 1]
    return sorted(repeat, key=lambda p: p.visit_count, reverse=True)[:limit]


def recent_visit_count(points: List[DataPoint], now=None, days: int = RECENT_DAYS) -> int:
    now = pd.Timestamp(now) if now is not None else utc_now()
    if now.tzinfo is None:
        now = now.tz_localize('UTC')
    cutoff = now - pd.Timedelta(days=days)
    count = 0
    for point in points:
        last_visit = parse_timestamp(point.last_visit)
        if last_visit is not None and last_visit >= cutoff:
            count += 1
    return count


def compute_statistics(points: List[DataPoint], now=None) -> Dict[str, Any]:
    """Summary numbers for the statistics dashboard.

    ``now`` is the reference instant for the recency count and defaults to
    the current UTC time.
    """
    total_points = len(points)
    total_visits = sum(p.visits for p in points)
    average_visits = round(total_visits / total_points, 1) if total_points else 0.0

    return {
        'total_points': total_points,
        'total_visits': total_visits,
        'average_visits': average_visits,
        'unique_categories': list(dict.fromkeys(p.category for p in points if p.category)),
        'category_breakdown': category_breakdown(points),
        'most_visited': [p.to_dict() for p in most_visited(points)],
        'time_distribution': time_distribution(points),
        'recent_visits': recent_visit_count(points, now),
    }
