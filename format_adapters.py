"""Per-schema adapters turning raw file text into CandidateRecords.

The adapter is chosen by file extension only:

    .csv  -> adapt_csv
    .json -> adapt_json (array, GeoJSON FeatureCollection or semantic segments)
"""
import json
import logging
import os
from typing import Any, Callable, Dict, List

from geo_utils import parse_lat_lng_string, parse_number
from location_models import (
    SOURCE_CSV, SOURCE_GEOJSON, SOURCE_JSON, SOURCE_SEMANTIC_SEGMENTS,
    CandidateRecord, InvalidFormat, MalformedInput, NoValidPoints, UnsupportedFormat,
)
from normalizer import resolve_alias

logger = logging.getLogger(__name__)


def _split_csv_line(line: str) -> List[str]:
    return [value.strip().replace('"', '') for value in line.split(',')]


def adapt_csv(text: str) -> List[CandidateRecord]:
    """Parse a header + rows CSV.

    Rows with the wrong number of fields are skipped silently; rows whose
    coordinates are not numbers are skipped with a warning.
    """
    lines = text.split('\n')
    if len(lines) < 2:
        raise MalformedInput('CSV file must have at least a header row and one data row')

    headers = _split_csv_line(lines[0])
    candidates = []
    skipped = 0

    for i in range(1, len(lines)):
        line = lines[i].strip()
        if not line:
            continue

        values = _split_csv_line(line)
        if len(values) != len(headers):
            skipped += 1
            continue

        row = dict(zip(headers, values))

        _, lat = resolve_alias(row, 'latitude')
        _, lng = resolve_alias(row, 'longitude')
        if parse_number(lat) is None or parse_number(lng) is None:
            logger.warning(f"Skipping row {i}: Invalid coordinates")
            skipped += 1
            continue

        candidates.append(CandidateRecord(
            source=SOURCE_CSV,
            index=i,
            fields=row,
        ))

    if skipped:
        logger.info(f"CSV import skipped {skipped} row(s)")

    if not candidates:
        raise NoValidPoints('No valid data points found in CSV file')

    return candidates


def adapt_json_array(items: List[Any]) -> List[CandidateRecord]:
    candidates = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"Skipping array element {index}: not an object")
            continue
        candidates.append(CandidateRecord(source=SOURCE_JSON, index=index, fields=dict(item)))
    return candidates


def adapt_geojson(collection: Dict[str, Any]) -> List[CandidateRecord]:
    """GeoJSON positions are [lng, lat]; properties are merged verbatim"""
    candidates = []
    for index, feature in enumerate(collection['features']):
        if not isinstance(feature, dict):
            continue
        geometry = feature.get('geometry') or {}
        coords = geometry.get('coordinates') if isinstance(geometry, dict) else None

        explicit = {}
        if isinstance(coords, (list, tuple)) and len(coords) >= 2:
            explicit['longitude'] = parse_number(coords[0])
            explicit['latitude'] = parse_number(coords[1])
        # missing coordinates are left for the validator to reject
        explicit.setdefault('latitude', float('nan'))
        explicit.setdefault('longitude', float('nan'))
        if feature.get('id') is not None:
            explicit['id'] = feature['id']

        properties = feature.get('properties')
        candidates.append(CandidateRecord(
            source=SOURCE_GEOJSON,
            index=index,
            fields=dict(properties) if isinstance(properties, dict) else {},
            explicit={k: (float('nan') if v is None else v) for k, v in explicit.items()},
        ))
    return candidates


def _segment_point(kind, counter, coord_str, title, timestamp, extra) -> CandidateRecord:
    coords = parse_lat_lng_string(coord_str)
    if coords is None:
        return None
    return CandidateRecord(
        source=SOURCE_SEMANTIC_SEGMENTS,
        index=counter,
        fields=dict(extra) if isinstance(extra, dict) else {},
        explicit={
            'id': f"{kind}_{counter}",
            'latitude': coords[0],
            'longitude': coords[1],
            'title': title,
            'timestamp': timestamp,
        },
    )


def adapt_semantic_segments(document: Dict[str, Any]) -> List[CandidateRecord]:
    """Decode timelinePath entries, visits and activity endpoints.

    All ids share one counter across the whole document so they stay
    unique; a malformed coordinate string drops only that point.
    """
    candidates = []
    counter = 0

    def emit(kind, coord_str, title, timestamp, extra):
        nonlocal counter
        record = _segment_point(kind, counter, coord_str, title, timestamp, extra)
        if record is None:
            logger.warning(f"Skipping {kind} point: invalid coordinates {coord_str!r}")
            return
        counter += 1
        candidates.append(record)

    for segment in document['semanticSegments']:
        if not isinstance(segment, dict):
            continue

        timeline_path = segment.get('timelinePath')
        if isinstance(timeline_path, list):
            for path_point in timeline_path:
                if not isinstance(path_point, dict):
                    continue
                emit('timelinePath', path_point.get('point'), 'Timeline Path',
                     path_point.get('time'), path_point)

        visit = segment.get('visit')
        if isinstance(visit, dict):
            top_candidate = visit.get('topCandidate') or {}
            place_location = top_candidate.get('placeLocation') or {}
            if isinstance(place_location, dict) and place_location.get('latLng'):
                emit('visit', place_location['latLng'],
                     top_candidate.get('semanticType') or 'Visit',
                     segment.get('startTime'), top_candidate)

        activity = segment.get('activity')
        if isinstance(activity, dict):
            start = activity.get('start')
            if isinstance(start, dict) and start.get('latLng'):
                emit('activity_start', start['latLng'], 'Activity Start',
                     segment.get('startTime'), start)
            end = activity.get('end')
            if isinstance(end, dict) and end.get('latLng'):
                emit('activity_end', end['latLng'], 'Activity End',
                     segment.get('endTime'), end)

    return candidates


def adapt_json_document(data: Any) -> List[CandidateRecord]:
    if isinstance(data, list):
        return adapt_json_array(data)
    if isinstance(data, dict):
        if isinstance(data.get('features'), list):
            return adapt_geojson(data)
        if isinstance(data.get('semanticSegments'), list):
            return adapt_semantic_segments(data)
    raise InvalidFormat('Invalid JSON format. Expected array of objects, GeoJSON, or Google Timeline format.')


def adapt_json(text: str) -> List[CandidateRecord]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise MalformedInput(f"Could not parse JSON file: {e}")
    return adapt_json_document(data)


ADAPTERS: Dict[str, Callable[[str], List[CandidateRecord]]] = {
    'csv': adapt_csv,
    'json': adapt_json,
}


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or '')[1].lstrip('.').lower()


def select_adapter(filename: str) -> Callable[[str], List[CandidateRecord]]:
    """Pick the adapter from the extension; content is never sniffed"""
    adapter = ADAPTERS.get(file_extension(filename))
    if adapter is None:
        raise UnsupportedFormat('Unsupported file format. Please upload CSV or JSON files.')
    return adapter
