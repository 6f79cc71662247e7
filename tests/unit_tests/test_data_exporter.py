"""Unit tests for data_exporter module."""

import json
import os
from datetime import datetime

import pytest

import data_exporter
from data_exporter import (
    CSV_COLUMNS,
    export_filename,
    export_to_csv,
    export_to_json,
    format_csv_value,
    render_export,
    write_export,
)
from format_adapters import adapt_csv
from location_models import ExportError, FilterOptions
from normalizer import normalize_records

EXPORT_TIME = datetime(2024, 3, 1, 9, 30)


class TestCsvExport:
    """Test CSV rendering."""

    def test_fixed_columns_then_extras(self, make_point):
        points = [
            make_point(id="a", extra={"rating": 5}),
            make_point(id="b", extra={"source": "gps", "rating": 3}),
        ]
        header = export_to_csv(points).split("\n")[0]
        assert header.split(",") == CSV_COLUMNS + ["rating", "source"]

    def test_missing_values_are_empty(self, make_point):
        lines = export_to_csv([make_point(1.5, 2.5, id="a", title="Cafe")]).split("\n")
        assert lines[1].split(",")[:6] == ["a", "1.5", "2.5", "Cafe", "", ""]

    def test_quoting(self):
        assert format_csv_value('Smith, "Jo"') == '"Smith, ""Jo"""'
        assert format_csv_value(None) == ""
        assert format_csv_value(True) == "true"
        assert format_csv_value(3) == "3"

    def test_reimport_round_trip(self, make_point):
        points = [
            make_point(40.7128, -74.006, title="New York", category="restaurant", visit_count=3),
            make_point(34.0522, -118.2437, title="Los Angeles"),
        ]
        reloaded = normalize_records(adapt_csv(export_to_csv(points)))

        assert [p.id for p in reloaded] == [p.id for p in points]
        assert [(p.latitude, p.longitude, p.title) for p in reloaded] == [
            (40.7128, -74.006, "New York"),
            (34.0522, -118.2437, "Los Angeles"),
        ]
        assert reloaded[0].category == "restaurant"
        assert reloaded[0].visit_count == 3


class TestJsonExport:
    """Test JSON rendering."""

    def test_envelope(self, make_point):
        points = [make_point(id="a")]
        filters = FilterOptions(categories=["hotel"])
        document = json.loads(export_to_json(points, filters, total_points=4, now=EXPORT_TIME))

        assert document["metadata"] == {
            "exportDate": "2024-03-01T09:30:00",
            "filters": {"showVisitFrequency": False, "categories": ["hotel"]},
            "filteredPoints": 1,
            "totalPoints": 4,
        }
        assert document["data"][0]["id"] == "a"

    def test_bare_array(self, make_point):
        document = json.loads(export_to_json([make_point(id="a")], include_metadata=False))
        assert isinstance(document, list)
        assert document[0]["id"] == "a"


class TestWriteExport:
    """Test export file writing."""

    def test_filename(self):
        assert export_filename("csv", EXPORT_TIME) == "timeline_data_2024-03-01.csv"

    def test_writes_file(self, make_point, tmp_path):
        path = write_export([make_point(id="a")], "json", str(tmp_path), now=EXPORT_TIME)

        assert os.path.basename(path) == "timeline_data_2024-03-01.json"
        assert json.loads(open(path, encoding="utf-8").read())["data"][0]["id"] == "a"
        assert os.listdir(tmp_path) == ["timeline_data_2024-03-01.json"]

    def test_empty_set_writes_nothing(self, tmp_path):
        with pytest.raises(ExportError) as exc_info:
            write_export([], "csv", str(tmp_path))

        assert exc_info.value.message == "No data to export with current filters."
        assert os.listdir(tmp_path) == []

    def test_unknown_format(self, make_point):
        with pytest.raises(ExportError):
            render_export([make_point()], "xml")

    def test_write_failure_cleans_up(self, make_point, tmp_path, monkeypatch):
        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(data_exporter.os, "replace", broken_replace)
        with pytest.raises(ExportError):
            write_export([make_point()], "csv", str(tmp_path), now=EXPORT_TIME)
        assert os.listdir(tmp_path) == []
