"""Candidate record -> canonical DataPoint conversion.

Field aliases are resolved through one ordered table; the first defined
alias wins. Everything the table does not consume lands in the point's
extension map unchanged.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from geo_utils import parse_number
from location_models import CANONICAL_FIELDS, CandidateRecord, DataPoint

logger = logging.getLogger(__name__)

FIELD_ALIASES = {
    'latitude': ['latitude', 'lat'],
    'longitude': ['longitude', 'lng', 'lon'],
    'title': ['title', 'name'],
    'description': ['description', 'desc'],
    'timestamp': ['timestamp', 'date', 'time'],
    'category': ['category', 'type'],
    'visitCount': ['visitCount'],
    'lastVisit': ['lastVisit'],
}

MONTH_YEAR_FORMAT = '%b %Y'


def _is_defined(value) -> bool:
    return value is not None and not (isinstance(value, str) and value.strip() == '')


def resolve_alias(fields: Dict[str, Any], canonical: str) -> Tuple[Optional[str], Any]:
    """Return (source key, value) of the first defined alias, or (None, None)"""
    for alias in FIELD_ALIASES[canonical]:
        if alias in fields and _is_defined(fields[alias]):
            return alias, fields[alias]
    return None, None


def parse_timestamp(timestamp_input) -> Optional[pd.Timestamp]:
    """Parse an ISO string or epoch number into a UTC timestamp; None if unparseable"""
    if not _is_defined(timestamp_input) or isinstance(timestamp_input, bool):
        return None

    try:
        if isinstance(timestamp_input, str):
            parsed = pd.to_datetime(timestamp_input.strip(), utc=True)
        elif isinstance(timestamp_input, (int, float)):
            if not math.isfinite(timestamp_input):
                return None
            timestamp_str = str(int(timestamp_input))
            if len(timestamp_str) == 13:  # milliseconds
                parsed = pd.to_datetime(timestamp_input, unit='ms', utc=True)
            elif len(timestamp_str) == 10:  # seconds
                parsed = pd.to_datetime(timestamp_input, unit='s', utc=True)
            else:
                return None
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None

    if pd.isna(parsed):
        return None
    return parsed


def derive_month_year(timestamp) -> Optional[str]:
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return None
    return parsed.strftime(MONTH_YEAR_FORMAT)


def _coerce_visit_count(value) -> Optional[int]:
    number = parse_number(value)
    if number is None:
        return None
    return int(number)


def _as_text(value) -> Optional[str]:
    if not _is_defined(value):
        return None
    return value if isinstance(value, str) else str(value)


def normalize_record(candidate: CandidateRecord) -> DataPoint:
    """Convert one candidate into a DataPoint.

    Coordinates that fail to parse become NaN; the validator drops them.
    """
    fields = candidate.fields
    explicit = candidate.explicit
    consumed = set()
    resolved = {}

    for canonical in FIELD_ALIASES:
        if canonical in explicit and _is_defined(explicit[canonical]):
            resolved[canonical] = explicit[canonical]
            continue
        source_key, value = resolve_alias(fields, canonical)
        if source_key is not None:
            consumed.add(source_key)
            resolved[canonical] = value

    point_id = explicit.get('id')
    if not _is_defined(point_id):
        point_id = fields.get('id') if _is_defined(fields.get('id')) else None
    if point_id is None:
        point_id = f"point_{candidate.index}"

    latitude = parse_number(resolved.get('latitude'))
    longitude = parse_number(resolved.get('longitude'))
    raw_timestamp = resolved.get('timestamp')
    if isinstance(raw_timestamp, (int, float)) and not isinstance(raw_timestamp, bool):
        # epoch numbers are stored as ISO strings; other numbers are kept as text
        parsed = parse_timestamp(raw_timestamp)
        if parsed is not None:
            timestamp = parsed.isoformat()
            month_year = parsed.strftime(MONTH_YEAR_FORMAT)
        else:
            timestamp = str(raw_timestamp)
            month_year = None
    else:
        timestamp = _as_text(raw_timestamp)
        month_year = derive_month_year(timestamp)

    extra = {
        key: value for key, value in fields.items()
        if key not in CANONICAL_FIELDS and key not in consumed
    }

    return DataPoint(
        id=str(point_id),
        latitude=latitude if latitude is not None else float('nan'),
        longitude=longitude if longitude is not None else float('nan'),
        title=_as_text(resolved.get('title')) or f"Point {candidate.index}",
        description=_as_text(resolved.get('description')),
        timestamp=timestamp,
        month_year=month_year,
        category=_as_text(resolved.get('category')),
        visit_count=_coerce_visit_count(resolved.get('visitCount')),
        last_visit=_as_text(resolved.get('lastVisit')),
        extra=extra,
    )


def normalize_records(candidates: List[CandidateRecord]) -> List[DataPoint]:
    return [normalize_record(c) for c in candidates]
