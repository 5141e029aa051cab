"""
Event publishing using Redis Streams.

Diagnostic events are advisory: they let an operator watch slow fog passes
and incoming locations without touching the request path. Publishing
failures are handled by the callers and never change a fog result.

Stream name: "fog:events"
Event types: "slow_fog_pass", "location_recorded"
"""
import json
from datetime import datetime, timezone
from typing import Dict

import redis


# Stream configuration
STREAM_NAME = "fog:events"
MAX_STREAM_LENGTH = 10000  # Keep last 10k events (prevents unbounded growth)


def _append(redis_client: redis.Redis, event_data: dict) -> str:
    # MAXLEN ~ 10000 keeps approximately 10k events (the ~ means "approximately" for performance)
    return redis_client.xadd(
        STREAM_NAME,
        event_data,
        maxlen=MAX_STREAM_LENGTH,
        approximate=True
    )


def publish_slow_fog_pass(
    redis_client: redis.Redis,
    resolution: int,
    hex_count: int,
    visited_count: int,
    cell_count: int,
    cache_hits: int,
    cache_misses: int,
    total_ms: float,
    timings_ms: Dict[str, float]
) -> str:
    """
    Publish a diagnostic event for a fog pass that exceeded its time budget.

    Args:
        redis_client: Redis connection
        resolution: Display resolution of the pass
        hex_count: Hexes in the viewport superset
        visited_count: Visited hexes near the viewport
        cell_count: Grid cells enumerated
        cache_hits: Grid cells served from the cache
        cache_misses: Grid cells computed during the pass
        total_ms: Wall-clock time of the pass
        timings_ms: Per-stage timings in milliseconds

    Returns:
        Event ID assigned by Redis (e.g., "1234567890123-0")
    """
    event_data = {
        "event_type": "slow_fog_pass",
        "resolution": str(resolution),
        "hex_count": str(hex_count),
        "visited_count": str(visited_count),
        "cell_count": str(cell_count),
        "cache_hits": str(cache_hits),
        "cache_misses": str(cache_misses),
        "total_ms": f"{total_ms:.2f}",
        # Stream fields are flat strings, so stage timings travel as JSON
        "timings_ms": json.dumps({stage: round(ms, 2) for stage, ms in timings_ms.items()}),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return _append(redis_client, event_data)


def publish_location_event(
    redis_client: redis.Redis,
    cell_id: str,
    lat: float,
    lon: float,
    timestamp_ms: int,
    new_cell: bool
) -> str:
    """
    Publish a location-recorded event.

    Args:
        redis_client: Redis connection
        cell_id: Storage-resolution H3 cell of the location
        lat: Latitude
        lon: Longitude
        timestamp_ms: When the location was recorded (epoch milliseconds)
        new_cell: Whether this location explored a new cell

    Returns:
        Event ID assigned by Redis
    """
    event_data = {
        "event_type": "location_recorded",
        "cell_id": cell_id,
        "lat": str(lat),
        "lon": str(lon),
        "recorded_at": str(timestamp_ms),
        "new_cell": "1" if new_cell else "0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return _append(redis_client, event_data)


def read_events(
    redis_client: redis.Redis,
    last_id: str = "0",
    count: int = 100,
    block_ms: int = None
) -> list:
    """
    Read events from the stream.

    Args:
        redis_client: Redis connection
        last_id: Read events after this ID ("0" for all, "$" for only new)
        count: Maximum number of events to return
        block_ms: If set, block for this many milliseconds waiting for new events

    Returns:
        List of (event_id, event_data) tuples
    """
    if block_ms is not None:
        result = redis_client.xread(
            {STREAM_NAME: last_id},
            count=count,
            block=block_ms
        )
    else:
        result = redis_client.xread(
            {STREAM_NAME: last_id},
            count=count
        )

    # xread returns: [(stream_name, [(id, data), (id, data), ...])]
    if not result:
        return []
    return result[0][1]


def get_stream_length(redis_client: redis.Redis) -> int:
    """Get the current number of events in the stream."""
    return redis_client.xlen(STREAM_NAME)
