"""
Tests for Redis Stream event publishing.
"""
import json

import pytest
from unittest.mock import Mock
from src.vvander.events import (
    publish_slow_fog_pass,
    publish_location_event,
    read_events,
    get_stream_length,
    STREAM_NAME,
    MAX_STREAM_LENGTH
)


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    return Mock()


def slow_pass(mock_redis):
    return publish_slow_fog_pass(
        redis_client=mock_redis,
        resolution=8,
        hex_count=412,
        visited_count=17,
        cell_count=9,
        cache_hits=6,
        cache_misses=3,
        total_ms=27.456,
        timings_ms={"assemble": 21.3333, "build": 5.1}
    )


@pytest.mark.unit
class TestPublishSlowFogPass:
    """Tests for publish_slow_fog_pass function."""

    def test_returns_event_id(self, mock_redis):
        """Test that publishing returns an event ID."""
        mock_redis.xadd.return_value = "1234567890123-0"

        assert slow_pass(mock_redis) == "1234567890123-0"

    def test_event_fields(self, mock_redis):
        """Test that XADD is called with the diagnostic fields as strings."""
        mock_redis.xadd.return_value = "1234567890123-0"

        slow_pass(mock_redis)

        mock_redis.xadd.assert_called_once()
        stream_name, event_data = mock_redis.xadd.call_args[0]

        assert stream_name == STREAM_NAME
        assert event_data["event_type"] == "slow_fog_pass"
        assert event_data["resolution"] == "8"
        assert event_data["hex_count"] == "412"
        assert event_data["visited_count"] == "17"
        assert event_data["cell_count"] == "9"
        assert event_data["cache_hits"] == "6"
        assert event_data["cache_misses"] == "3"
        assert event_data["total_ms"] == "27.46"
        assert json.loads(event_data["timings_ms"]) == {"assemble": 21.33, "build": 5.1}
        assert "timestamp" in event_data

    def test_sets_maxlen(self, mock_redis):
        """Test that XADD is called with MAXLEN to prevent unbounded growth."""
        mock_redis.xadd.return_value = "1234567890123-0"

        slow_pass(mock_redis)

        call_kwargs = mock_redis.xadd.call_args[1]
        assert call_kwargs["maxlen"] == MAX_STREAM_LENGTH
        assert call_kwargs["approximate"] is True


@pytest.mark.unit
class TestPublishLocationEvent:
    """Tests for publish_location_event function."""

    def test_event_fields(self, mock_redis):
        """Test the location event payload."""
        mock_redis.xadd.return_value = "1234567890123-1"

        event_id = publish_location_event(
            redis_client=mock_redis,
            cell_id="8a2a1072b59ffff",
            lat=37.42,
            lon=-88.31,
            timestamp_ms=1700000000000,
            new_cell=True
        )

        assert event_id == "1234567890123-1"
        event_data = mock_redis.xadd.call_args[0][1]
        assert event_data["event_type"] == "location_recorded"
        assert event_data["cell_id"] == "8a2a1072b59ffff"
        assert event_data["lat"] == "37.42"
        assert event_data["lon"] == "-88.31"
        assert event_data["recorded_at"] == "1700000000000"
        assert event_data["new_cell"] == "1"

    def test_known_cell_flag(self, mock_redis):
        """Test that revisits are flagged as not new."""
        publish_location_event(mock_redis, "8a2a1072b59ffff", 37.42, -88.31, 1, False)

        assert mock_redis.xadd.call_args[0][1]["new_cell"] == "0"


@pytest.mark.unit
class TestReadEvents:
    """Tests for read_events function."""

    def test_read_events_returns_list(self, mock_redis):
        """Test that read_events returns list of events."""
        mock_redis.xread.return_value = [
            (STREAM_NAME, [
                ("1234567890123-0", {"event_type": "slow_fog_pass", "resolution": "8"}),
                ("1234567890123-1", {"event_type": "location_recorded", "cell_id": "abc"})
            ])
        ]

        events = read_events(mock_redis)

        assert len(events) == 2
        assert events[0][0] == "1234567890123-0"
        assert events[1][1]["event_type"] == "location_recorded"

    def test_read_events_empty_stream(self, mock_redis):
        """Test reading from empty stream returns empty list."""
        mock_redis.xread.return_value = []

        assert read_events(mock_redis) == []

    def test_read_events_with_last_id(self, mock_redis):
        """Test reading events after a specific ID."""
        mock_redis.xread.return_value = []

        read_events(mock_redis, last_id="1234567890123-0")

        call_args = mock_redis.xread.call_args[0][0]
        assert call_args[STREAM_NAME] == "1234567890123-0"

    def test_read_events_with_blocking(self, mock_redis):
        """Test blocking read passes block parameter."""
        mock_redis.xread.return_value = []

        read_events(mock_redis, block_ms=5000)

        assert mock_redis.xread.call_args[1]["block"] == 5000


@pytest.mark.unit
class TestGetStreamLength:
    """Tests for get_stream_length function."""

    def test_get_stream_length(self, mock_redis):
        """Test getting stream length."""
        mock_redis.xlen.return_value = 42

        assert get_stream_length(mock_redis) == 42
        mock_redis.xlen.assert_called_once_with(STREAM_NAME)
