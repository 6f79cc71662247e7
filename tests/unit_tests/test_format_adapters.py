"""Unit tests for format_adapters module."""

import json

import pytest

from format_adapters import (
    adapt_csv,
    adapt_geojson,
    adapt_json,
    adapt_semantic_segments,
    select_adapter,
)
from location_models import (
    SOURCE_GEOJSON,
    SOURCE_JSON,
    InvalidFormat,
    MalformedInput,
    NoValidPoints,
    UnsupportedFormat,
)


class TestAdaptCsv:
    """Test CSV parsing."""

    def test_rows_become_candidates(self, sample_csv):
        candidates = adapt_csv(sample_csv)

        assert [c.index for c in candidates] == [1, 2]
        assert candidates[0].fields == {"latitude": "40.7128", "longitude": "-74.0060", "title": "New York"}

    def test_quotes_and_whitespace_are_stripped(self):
        candidates = adapt_csv('lat, lng ,"name"\n "1.5" , 2.5 ,"Cafe"')
        assert candidates[0].fields == {"lat": "1.5", "lng": "2.5", "name": "Cafe"}

    def test_mismatched_rows_are_skipped(self):
        text = "latitude,longitude,title\n1,2,A\n3,4\n5,6,C,extra\n7,8,D"
        candidates = adapt_csv(text)
        assert [c.index for c in candidates] == [1, 4]

    def test_non_numeric_coordinates_are_skipped(self, caplog):
        text = "latitude,longitude,title\nabc,2,Bad\n1,2,Good"
        candidates = adapt_csv(text)

        assert len(candidates) == 1
        assert candidates[0].fields["title"] == "Good"
        assert "Skipping row 1: Invalid coordinates" in caplog.text

    def test_blank_lines_are_ignored(self):
        candidates = adapt_csv("latitude,longitude\n\n1,2\n")
        assert [c.index for c in candidates] == [2]

    def test_header_only_has_no_points(self):
        with pytest.raises(NoValidPoints):
            adapt_csv("latitude,longitude,title\n")

    def test_single_line_is_malformed(self):
        with pytest.raises(MalformedInput):
            adapt_csv("latitude,longitude,title")


class TestAdaptJson:
    """Test JSON array, GeoJSON and shape detection."""

    def test_array_elements_keep_position(self):
        candidates = adapt_json('[{"latitude": 40.7128, "longitude": -74.006, "title": "New York"}, 5, {"lat": 1}]')

        assert [c.index for c in candidates] == [0, 2]
        assert all(c.source == SOURCE_JSON for c in candidates)
        assert candidates[0].explicit == {}

    def test_geojson_axis_order(self):
        collection = {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "id": "f1",
                    "geometry": {"type": "Point", "coordinates": [-74.006, 40.7128]},
                    "properties": {"name": "NYC", "rating": 5},
                }
            ],
        }
        candidates = adapt_geojson(collection)

        assert candidates[0].source == SOURCE_GEOJSON
        assert candidates[0].explicit["latitude"] == 40.7128
        assert candidates[0].explicit["longitude"] == -74.006
        assert candidates[0].explicit["id"] == "f1"
        assert candidates[0].fields == {"name": "NYC", "rating": 5}

    def test_geojson_without_geometry_gets_nan(self):
        candidates = adapt_geojson({"features": [{"properties": {}}]})
        assert candidates[0].explicit["latitude"] != candidates[0].explicit["latitude"]

    def test_unrecognized_object(self):
        with pytest.raises(InvalidFormat):
            adapt_json('{"foo": 1}')

    def test_scalar_document(self):
        with pytest.raises(InvalidFormat):
            adapt_json('"just a string"')

    def test_broken_json(self):
        with pytest.raises(MalformedInput):
            adapt_json('[{"latitude": ')


class TestAdaptSemanticSegments:
    """Test semantic segments decoding."""

    def test_ids_share_one_counter(self, sample_segments):
        candidates = adapt_semantic_segments(sample_segments)

        assert [c.explicit["id"] for c in candidates] == [
            "timelinePath_0",
            "timelinePath_1",
            "visit_2",
            "activity_start_3",
            "activity_end_4",
        ]

    def test_titles_and_timestamps(self, sample_segments):
        candidates = adapt_semantic_segments(sample_segments)
        titles = [c.explicit["title"] for c in candidates]

        assert titles == ["Timeline Path", "Timeline Path", "Home", "Activity Start", "Activity End"]
        assert candidates[2].explicit["timestamp"] == "2024-01-15T10:00:00Z"
        assert candidates[3].explicit["timestamp"] == "2024-01-15T12:00:00Z"
        assert candidates[4].explicit["timestamp"] == "2024-01-15T12:30:00Z"

    def test_single_path_point(self):
        document = {"semanticSegments": [{"timelinePath": [{"point": "40.7128°, -74.0060°", "time": "t1"}]}]}
        candidates = adapt_semantic_segments(document)

        assert len(candidates) == 1
        assert candidates[0].explicit["title"] == "Timeline Path"
        assert candidates[0].explicit["latitude"] == pytest.approx(40.7128)
        assert candidates[0].explicit["longitude"] == pytest.approx(-74.006)

    def test_malformed_point_does_not_consume_id(self):
        document = {
            "semanticSegments": [
                {"timelinePath": [{"point": "garbage", "time": "t0"}, {"point": "1°, 2°", "time": "t1"}]},
                {"visit": {"topCandidate": {"placeLocation": {"latLng": "3°, 4°"}}}},
            ]
        }
        candidates = adapt_semantic_segments(document)

        assert [c.explicit["id"] for c in candidates] == ["timelinePath_0", "visit_1"]
        assert candidates[1].explicit["title"] == "Visit"

    def test_detected_from_json_text(self, sample_segments):
        assert len(adapt_json(json.dumps(sample_segments))) == 5


class TestSelectAdapter:
    """Test adapter selection by extension."""

    def test_known_extensions(self):
        assert select_adapter("places.csv") is adapt_csv
        assert select_adapter("Timeline.JSON") is adapt_json

    def test_unknown_extension(self):
        with pytest.raises(UnsupportedFormat) as exc_info:
            select_adapter("places.txt")
        assert exc_info.value.message == "Unsupported file format. Please upload CSV or JSON files."

    def test_geojson_extension_is_not_sniffed(self):
        with pytest.raises(UnsupportedFormat):
            select_adapter("places.geojson")
