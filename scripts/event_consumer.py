"""
Event Consumer - Listens to the fog event stream and prints events.

Shows two kinds of events:
1. location_recorded - a location update and whether it explored a new cell
2. slow_fog_pass     - a fog pass over budget, with counts and stage timings

Run this in a separate terminal while walking (scripts/demo_walk.py).

Usage:
    python scripts/event_consumer.py

Press Ctrl+C to stop.
"""
import json
import os
import sys
from datetime import datetime

import redis

# Add project root to path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.vvander.config import REDIS_HOST, REDIS_PORT
from src.vvander.events import STREAM_NAME, read_events, get_stream_length


def format_timestamp(iso_string: str) -> str:
    """Convert ISO timestamp to readable format."""
    try:
        return datetime.fromisoformat(iso_string).strftime("%H:%M:%S")
    except ValueError:
        return iso_string


def print_event(event_id: str, event_data: dict):
    """Print an event in a readable format."""
    event_type = event_data.get("event_type", "unknown")
    timestamp = format_timestamp(event_data.get("timestamp", ""))

    if event_type == "location_recorded":
        cell = event_data.get("cell_id", "?")
        marker = "NEW" if event_data.get("new_cell") == "1" else "   "
        print(f"  [{timestamp}] {marker} ({event_data.get('lat')}, {event_data.get('lon')}) cell={cell}")

    elif event_type == "slow_fog_pass":
        stages = json.loads(event_data.get("timings_ms", "{}"))
        print(f"  [{timestamp}] SLOW FOG PASS {event_data.get('total_ms')}ms at res {event_data.get('resolution')}")
        print(f"              hexes={event_data.get('hex_count')} visited={event_data.get('visited_count')}")
        print(f"              cells={event_data.get('cell_count')} "
              f"hits={event_data.get('cache_hits')} misses={event_data.get('cache_misses')}")
        print(f"              stages={stages}")

    else:
        print(f"  [{timestamp}] {event_type}: {event_data}")


def main():
    """Main consumer loop."""
    print("=" * 60)
    print("FOG MONITOR - Event Consumer")
    print("=" * 60)
    print(f"Connecting to Redis at {REDIS_HOST}:{REDIS_PORT}...")

    try:
        r = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, decode_responses=True)
        r.ping()
        print("Connected!")
    except redis.ConnectionError:
        print("ERROR: Could not connect to Redis.")
        sys.exit(1)

    print(f"Stream '{STREAM_NAME}' has {get_stream_length(r)} events")
    print()
    print("Listening for new events... (press Ctrl+C to stop)")
    print("-" * 60)

    # "$" reads only new events, "0" replays history
    last_id = "$"

    try:
        while True:
            for event_id, event_data in read_events(r, last_id=last_id, count=10, block_ms=1000):
                print_event(event_id, event_data)
                last_id = event_id

    except KeyboardInterrupt:
        print()
        print("-" * 60)
        print("Consumer stopped.")
        print(f"Final stream length: {get_stream_length(r)} events")


if __name__ == "__main__":
    main()
