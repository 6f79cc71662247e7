import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

# Source kinds produced by the format adapters
SOURCE_CSV = 'csv'
SOURCE_JSON = 'json'
SOURCE_GEOJSON = 'geojson'
SOURCE_SEMANTIC_SEGMENTS = 'semantic_segments'

# Canonical keys in serialization order
CANONICAL_FIELDS = [
    'id', 'latitude', 'longitude', 'title', 'description', 'timestamp',
    'monthYear', 'category', 'visitCount', 'lastVisit'
]


class TimelineImportError(Exception):
    """Base class for errors that abort a single import attempt"""
    error_type = 'ImportError'

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class UnsupportedFormat(TimelineImportError):
    error_type = 'UnsupportedFormat'


class MalformedInput(TimelineImportError):
    error_type = 'MalformedInput'


class NoValidPoints(TimelineImportError):
    error_type = 'NoValidPoints'


class InvalidFormat(TimelineImportError):
    error_type = 'InvalidFormat'


class ExportError(Exception):
    """Raised when an export cannot be produced; never touches the loaded data"""

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.message = message
        self.cause = cause


@dataclass
class CandidateRecord:
    """Loosely-typed record emitted by a format adapter.

    ``fields`` holds the raw source keys and goes through alias resolution.
    ``explicit`` holds canonical values the adapter decided itself (ids,
    decoded coordinates, fixed titles) and always wins.
    """
    source: str
    index: int
    fields: Dict[str, Any] = field(default_factory=dict)
    explicit: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DataPoint:
    id: str
    latitude: float
    longitude: float
    title: str
    description: Optional[str] = None
    timestamp: Optional[str] = None
    month_year: Optional[str] = None
    category: Optional[str] = None
    visit_count: Optional[int] = None
    last_visit: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def visits(self) -> int:
        """Visit count with the default of 1 applied"""
        return self.visit_count if self.visit_count is not None else 1

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to camelCase keys; canonical values shadow extension entries"""
        canonical = {
            'id': self.id,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'title': self.title,
            'description': self.description,
            'timestamp': self.timestamp,
            'monthYear': self.month_year,
            'category': self.category,
            'visitCount': self.visit_count,
            'lastVisit': self.last_visit,
        }
        result = {k: v for k, v in canonical.items() if v is not None}
        for key, value in self.extra.items():
            if key not in canonical:
                result[key] = value
        return result


@dataclass
class TimeRange:
    start: pd.Timestamp
    end: pd.Timestamp

    def contains(self, moment: pd.Timestamp) -> bool:
        return self.start <= moment <= self.end


def _to_utc(value) -> Optional[pd.Timestamp]:
    if value is None or value == '':
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize('UTC')
    return ts.tz_convert('UTC')


@dataclass
class FilterOptions:
    time_range: Optional[TimeRange] = None
    min_visit_count: Optional[int] = None
    max_visit_count: Optional[int] = None
    categories: Optional[List[str]] = None
    show_visit_frequency: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FilterOptions':
        """Build options from the JSON shape the UI posts (camelCase keys)"""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError('filters must be a JSON object')

        time_range = None
        raw_range = data.get('timeRange')
        if raw_range:
            if not isinstance(raw_range, dict):
                raise ValueError('timeRange must be an object with start and end')
            start = _to_utc(raw_range.get('start'))
            end = _to_utc(raw_range.get('end'))
            if start is None or end is None:
                raise ValueError('timeRange requires both start and end')
            time_range = TimeRange(start=start, end=end)

        def _optional_int(key):
            value = data.get(key)
            if value is None or value == '':
                return None
            return int(value)

        categories = data.get('categories')
        if categories is not None:
            if not isinstance(categories, list):
                raise ValueError('categories must be a list')
            categories = [str(c) for c in categories]

        return cls(
            time_range=time_range,
            min_visit_count=_optional_int('minVisitCount'),
            max_visit_count=_optional_int('maxVisitCount'),
            categories=categories,
            show_visit_frequency=bool(data.get('showVisitFrequency', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'showVisitFrequency': self.show_visit_frequency}
        if self.time_range:
            result['timeRange'] = {
                'start': self.time_range.start.isoformat(),
                'end': self.time_range.end.isoformat(),
            }
        if self.min_visit_count is not None:
            result['minVisitCount'] = self.min_visit_count
        if self.max_visit_count is not None:
            result['maxVisitCount'] = self.max_visit_count
        if self.categories is not None:
            result['categories'] = list(self.categories)
        return result


@dataclass
class Boundary:
    id: str
    name: str
    coordinates: List[List[float]]
    color: str = '#3388ff'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'coordinates': self.coordinates,
            'color': self.color,
        }


@dataclass
class Viewport:
    south: float
    west: float
    north: float
    east: float
    zoom: int

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.south, self.west, self.north, self.east))


def utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz='UTC')
