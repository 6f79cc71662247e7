"""Shared pytest fixtures for the timeline map viewer tests."""

import pytest

from location_models import DataPoint


@pytest.fixture
def make_point():
    """Factory for DataPoints with sensible defaults."""
    counter = {'n': 0}

    def _make(latitude=40.7128, longitude=-74.006, **kwargs):
        counter['n'] += 1
        kwargs.setdefault('id', f"point_{counter['n']}")
        kwargs.setdefault('title', f"Place {counter['n']}")
        return DataPoint(latitude=latitude, longitude=longitude, **kwargs)

    return _make


@pytest.fixture
def sample_csv():
    """Two-row CSV in the simplest supported layout."""
    return "latitude,longitude,title\n40.7128,-74.0060,New York\n34.0522,-118.2437,Los Angeles"


@pytest.fixture
def sample_segments():
    """Semantic segments document with a path, a visit and an activity."""
    return {
        "semanticSegments": [
            {
                "startTime": "2024-01-15T08:00:00Z",
                "endTime": "2024-01-15T09:00:00Z",
                "timelinePath": [
                    {"point": "40.7128°, -74.0060°", "time": "2024-01-15T08:00:00Z"},
                    {"point": "40.7130°, -74.0070°", "time": "2024-01-15T08:05:00Z"},
                ],
            },
            {
                "startTime": "2024-01-15T10:00:00Z",
                "endTime": "2024-01-15T11:00:00Z",
                "visit": {
                    "topCandidate": {
                        "semanticType": "Home",
                        "placeId": "abc123",
                        "placeLocation": {"latLng": "40.7580°, -73.9855°"},
                    }
                },
            },
            {
                "startTime": "2024-01-15T12:00:00Z",
                "endTime": "2024-01-15T12:30:00Z",
                "activity": {
                    "start": {"latLng": "40.7580°, -73.9855°"},
                    "end": {"latLng": "40.7484°, -73.9857°"},
                },
            },
        ]
    }
