"""Tests for position validation and ordering."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from livetrip.geo.wkt import Coordinate
from livetrip.tracking.position import (
    MonotonicPositionFilter,
    Position,
    RejectReason,
    coerce_sample,
    parse_position,
)
from tests.fakes import BASE_TIME, make_position


@pytest.mark.unit
class TestPosition:
    """Test the Position model."""

    @pytest.mark.parametrize(
        ("latitude", "longitude"),
        [(90.0, 180.0), (-90.0, -180.0), (0.0, 0.0)],
    )
    def test_bounds_inclusive(self, latitude, longitude):
        position = Position(latitude=latitude, longitude=longitude, timestamp=BASE_TIME)
        assert position.latitude == latitude

    @pytest.mark.parametrize(
        ("latitude", "longitude"),
        [(90.1, 0.0), (-90.1, 0.0), (0.0, 180.1), (0.0, -180.1), (float("nan"), 0.0)],
    )
    def test_out_of_range_rejected(self, latitude, longitude):
        with pytest.raises(ValidationError):
            Position(latitude=latitude, longitude=longitude, timestamp=BASE_TIME)

    def test_naive_timestamp_is_utc(self):
        position = Position(latitude=1.0, longitude=2.0, timestamp=datetime(2024, 6, 1, 12))
        assert position.timestamp == BASE_TIME

    def test_heading_must_be_below_360(self):
        with pytest.raises(ValidationError):
            make_position(heading=360.0)

    def test_coordinate_is_longitude_first(self):
        assert make_position(latitude=12.0, longitude=77.0).coordinate == Coordinate(77.0, 12.0)

    def test_to_message_is_json_ready(self):
        message = make_position(speed_kmph=30.0).to_message()
        assert message["timestamp"].startswith("2024-06-01T12:00:00")
        assert message["speed_kmph"] == 30.0


@pytest.mark.unit
class TestSampleCoercion:
    """Untrusted device samples."""

    def test_parse_valid_dict(self):
        position = parse_position(
            {"latitude": 12.97, "longitude": 77.59, "timestamp": "2024-06-01T12:00:00Z"}
        )
        assert position is not None
        assert position.timestamp == BASE_TIME

    @pytest.mark.parametrize(
        "data",
        [
            {"latitude": 95.0, "longitude": 77.59, "timestamp": "2024-06-01T12:00:00Z"},
            {"latitude": 12.97, "timestamp": "2024-06-01T12:00:00Z"},
            {"latitude": "north", "longitude": 77.59, "timestamp": "2024-06-01T12:00:00Z"},
        ],
    )
    def test_parse_invalid_dict(self, data):
        assert parse_position(data) is None

    def test_coerce_rechecks_unvalidated_positions(self):
        bogus = Position.model_construct(latitude=123.0, longitude=0.0, timestamp=BASE_TIME)
        assert coerce_sample(bogus) is None

    def test_coerce_passes_valid_position(self):
        position = make_position()
        assert coerce_sample(position) is position


@pytest.mark.unit
class TestMonotonicPositionFilter:
    """Stale samples are dropped, never reordered."""

    def test_out_of_order_sample_is_dropped(self):
        t1, t2, t3 = make_position(1), make_position(2), make_position(3)
        position_filter = MonotonicPositionFilter()
        kept = [p for p in (t1, t3, t2) if position_filter.accept(p)]
        assert kept == [t1, t3]
        assert position_filter.last_accepted == t3
        assert position_filter.rejected[RejectReason.STALE] == 1

    def test_equal_timestamp_is_stale(self):
        position_filter = MonotonicPositionFilter()
        assert position_filter.accept(make_position(1))
        assert not position_filter.accept(make_position(1, latitude=13.0))

    def test_reset_forgets_last_sample(self):
        position_filter = MonotonicPositionFilter()
        position_filter.accept(make_position(5))
        position_filter.reset()
        assert position_filter.accept(make_position(1))
