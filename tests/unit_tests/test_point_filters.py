"""Unit tests for point_filters module."""

import pandas as pd
import pytest

from location_models import FilterOptions, TimeRange
from point_filters import filter_points, point_matches


@pytest.fixture
def mixed_points(make_point):
    return [
        make_point(title="Diner", category="restaurant", visit_count=4,
                   timestamp="2024-01-10T12:00:00Z"),
        make_point(title="Inn", category="hotel", timestamp="2024-02-10T12:00:00Z"),
        make_point(title="Park", timestamp="2024-03-10T12:00:00Z", visit_count=1),
        make_point(title="Museum", category="attraction", visit_count=9),
    ]


class TestCategoryFilter:
    """Test category selection."""

    def test_single_category(self, make_point):
        points = [make_point(category="restaurant"), make_point(category="hotel")]
        filtered = filter_points(points, FilterOptions(categories=["restaurant"]))

        assert len(filtered) == 1
        assert filtered[0].category == "restaurant"

    def test_uncategorized_excluded_when_filtering(self, mixed_points):
        filtered = filter_points(mixed_points, FilterOptions(categories=["restaurant", "hotel"]))
        assert [p.title for p in filtered] == ["Diner", "Inn"]

    def test_empty_list_is_no_filter(self, mixed_points):
        assert filter_points(mixed_points, FilterOptions(categories=[])) == mixed_points


class TestVisitFilter:
    """Test visit count bounds."""

    def test_missing_count_counts_as_one(self, mixed_points):
        filtered = filter_points(mixed_points, FilterOptions(max_visit_count=1))
        assert [p.title for p in filtered] == ["Inn", "Park"]

    def test_min_and_max(self, mixed_points):
        filtered = filter_points(mixed_points, FilterOptions(min_visit_count=2, max_visit_count=5))
        assert [p.title for p in filtered] == ["Diner"]


class TestTimeFilter:
    """Test time range selection."""

    def test_inclusive_range(self, mixed_points):
        options = FilterOptions(time_range=TimeRange(
            start=pd.Timestamp("2024-01-10T12:00:00Z"),
            end=pd.Timestamp("2024-02-10T12:00:00Z"),
        ))
        filtered = filter_points(mixed_points, options)

        # Museum has no timestamp and is not excluded
        assert [p.title for p in filtered] == ["Diner", "Inn", "Museum"]

    def test_unparseable_timestamp_passes(self, make_point):
        point = make_point(timestamp="t1")
        options = FilterOptions(time_range=TimeRange(
            start=pd.Timestamp("2020-01-01T00:00:00Z"),
            end=pd.Timestamp("2020-12-31T00:00:00Z"),
        ))
        assert point_matches(point, options)


class TestFilterPoints:
    """Test general filter behaviour."""

    def test_idempotent_and_stable(self, mixed_points):
        options = FilterOptions(min_visit_count=1, categories=["attraction", "restaurant"])
        once = filter_points(mixed_points, options)

        assert filter_points(once, options) == once
        assert [p.title for p in once] == ["Diner", "Museum"]

    def test_input_not_modified(self, mixed_points):
        before = list(mixed_points)
        filter_points(mixed_points, FilterOptions(categories=["hotel"]))
        assert mixed_points == before

    def test_no_options(self, mixed_points):
        result = filter_points(mixed_points, None)
        assert result == mixed_points
        assert result is not mixed_points

    def test_options_from_ui_payload(self, mixed_points):
        options = FilterOptions.from_dict({
            "timeRange": {"start": "2024-02-01", "end": "2024-12-31"},
            "categories": ["hotel"],
        })
        assert [p.title for p in filter_points(mixed_points, options)] == ["Inn"]

    def test_half_open_range_rejected(self):
        with pytest.raises(ValueError):
            FilterOptions.from_dict({"timeRange": {"start": "2024-01-01"}})

    @pytest.mark.parametrize("payload", [
        [1, 2],
        {"categories": "restaurant"},
        {"timeRange": ["2024-01-01", "2024-12-31"]},
    ])
    def test_wrong_shapes_rejected(self, payload):
        with pytest.raises(ValueError):
            FilterOptions.from_dict(payload)

    def test_empty_payload_is_default(self):
        assert FilterOptions.from_dict({}) == FilterOptions()
        assert FilterOptions.from_dict(None) == FilterOptions()
