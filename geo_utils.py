import os
import json
import math
import logging
import threading
import requests
from typing import List, Dict, Tuple, Optional

from location_models import DataPoint, NoValidPoints

logger = logging.getLogger(__name__)

GEOAPIFY_AUTOCOMPLETE_URL = "https://api.geoapify.com/v1/geocode/autocomplete"
DEFAULT_SEARCH_MIN_LENGTH = 3


class APIError(Exception):
    """Custom exception for place search API errors"""
    def __init__(self, message, status_code=None, should_stop=False):
        super().__init__(message)
        self.status_code = status_code
        self.should_stop = should_stop


def parse_number(value) -> Optional[float]:
    """Parse a numeric field that may arrive as a number or a string.

    Returns None for booleans, blanks, unparseable strings and non-finite values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_lat_lng_string(coord_str) -> Optional[Tuple[float, float]]:
    """Parse a degree-bearing "lat, lng" string such as "40.7128°, -74.0060°".

    Degree signs are optional and whitespace around either side is ignored.
    Returns None if either side is not a finite number; never raises.
    """
    if not coord_str or not isinstance(coord_str, str):
        return None

    cleaned = coord_str.replace('°', '')
    if ',' not in cleaned:
        return None

    lat_str, lng_str = cleaned.split(',', 1)
    lat = parse_number(lat_str)
    lng = parse_number(lng_str)
    if lat is None or lng is None:
        return None
    return lat, lng


def is_valid_coordinate(lat, lon) -> bool:
    """Finite and within the WGS84 latitude/longitude ranges"""
    if lat is None or lon is None:
        return False
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def validate_points(points: List[DataPoint], source_label: str = "file") -> List[DataPoint]:
    """Keep only points with valid coordinates.

    Raises NoValidPoints when nothing survives, so the caller never
    replaces the loaded set with an empty one.
    """
    valid = [p for p in points if is_valid_coordinate(p.latitude, p.longitude)]
    rejected = len(points) - len(valid)
    if rejected:
        logger.warning(f"Rejected {rejected} point(s) with invalid coordinates")
    if not valid:
        raise NoValidPoints(f"No valid data points found in {source_label}")
    return valid


def check_api_response(response_status, service="Geoapify"):
    """
    Check API response status and handle errors appropriately
    Returns True if successful, raises APIError otherwise
    """
    if response_status == 200:
        return True
    elif response_status == 401:
        raise APIError(f"{service} API error 401: Unauthorized - invalid API key",
                      response_status, should_stop=True)
    elif response_status == 403:
        raise APIError(f"{service} API error 403: Forbidden - check API key permissions",
                      response_status, should_stop=True)
    elif response_status == 429:
        raise APIError(f"{service} API error 429: Rate limit exceeded - too many requests",
                      response_status, should_stop=False)
    elif response_status >= 500:
        raise APIError(f"{service} server error {response_status} - service temporarily unavailable",
                      response_status, should_stop=False)
    else:
        raise APIError(f"{service} unexpected response code {response_status}",
                      response_status, should_stop=False)


class PlaceSuggestionCache:
    """Thread-safe query -> suggestions cache, optionally persisted as JSON"""

    def __init__(self, cache_file: Optional[str] = None):
        self.lock = threading.Lock()
        self.cache_file = cache_file
        self.entries: Dict[str, List[Dict]] = {}
        if cache_file and os.path.exists(cache_file):
            try:
                with open(cache_file, "r", encoding="utf-8") as f:
                    self.entries = json.load(f)
                logger.info(f"Loaded {len(self.entries)} cache entries from {cache_file}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load {cache_file}: {e}")

    def get(self, query: str) -> Optional[List[Dict]]:
        with self.lock:
            return self.entries.get(query)

    def put(self, query: str, suggestions: List[Dict]):
        with self.lock:
            self.entries[query] = suggestions
            if self.cache_file:
                self._save()

    def _save(self):
        try:
            os.makedirs(os.path.dirname(self.cache_file) or '.', exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(self.entries, f)
        except OSError as e:
            logger.warning(f"Failed to save {self.cache_file}: {e}")


def process_suggestion_result(feature_collection) -> List[Dict]:
    """Turn a Geoapify FeatureCollection into {name, lat, lng} suggestions"""
    suggestions = []
    for feature in (feature_collection or {}).get("features", []):
        props = feature.get("properties", {})
        lat = parse_number(props.get("lat"))
        lng = parse_number(props.get("lon"))
        if lat is None or lng is None:
            continue
        suggestions.append({
            'name': props.get("formatted") or props.get("name") or f"{lat:.4f}, {lng:.4f}",
            'lat': lat,
            'lng': lng,
        })
    return suggestions


def suggest_places(query, geoapify_key, cache=None, min_length=DEFAULT_SEARCH_MIN_LENGTH,
                   limit=5, timeout=10) -> List[Dict]:
    """Free-text place suggestions for the search box.

    Queries shorter than ``min_length`` (after trimming) and calls without an
    API key return an empty list without touching the network.
    """
    query = (query or '').strip()
    if len(query) < min_length or not geoapify_key:
        return []

    cache_key = query.lower()
    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

    try:
        response = requests.get(
            GEOAPIFY_AUTOCOMPLETE_URL,
            params={'text': query, 'limit': limit, 'apiKey': geoapify_key},
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        raise APIError("Geoapify request timeout", should_stop=False)
    except requests.exceptions.RequestException as e:
        raise APIError(f"Geoapify request failed: {e}", should_stop=False)

    check_api_response(response.status_code)
    try:
        payload = response.json()
    except ValueError as e:
        raise APIError(f"Geoapify returned invalid JSON: {e}", response.status_code, should_stop=False)
    suggestions = process_suggestion_result(payload)

    if cache is not None:
        cache.put(cache_key, suggestions)
    return suggestions
