"""
Demo script: walk a path and watch the fog clear.

This script:
1. Sends a batch of location updates along a straight walk
2. Requests fog for a street-level and a city-level viewport
3. Replays the walk from the location history

Run the event_consumer.py in another terminal to see the events:
    Terminal 1: python scripts/event_consumer.py
    Terminal 2: python scripts/demo_walk.py

Usage:
    python scripts/demo_walk.py
    python scripts/demo_walk.py --steps 200 --step-m 15
"""
import argparse
import time

import requests

# Carbondale, IL
START = {"lat": 37.42, "lon": -88.31}

API_URL = "http://localhost:8000"

# Rough degrees of latitude per meter
DEG_PER_M = 1 / 111_320


def walk(steps: int, step_m: float):
    """Points heading north-east from START, one per second."""
    now_s = time.time()
    for i in range(steps):
        offset = i * step_m * DEG_PER_M
        yield {
            "lat": round(START["lat"] + offset, 6),
            "lon": round(START["lon"] + offset, 6),
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S+00:00", time.gmtime(now_s - steps + i)),
        }


def show_fog(label: str, span: float):
    viewport = {
        "latitude": START["lat"],
        "longitude": START["lon"],
        "latitude_delta": span,
        "longitude_delta": span,
    }
    data = requests.post(f"{API_URL}/v1/fog", json=viewport).json()

    holes = sum(len(polygon["holes"]) for polygon in data["polygons"])
    print(f"  {label:<8} span={span:<6} res={data['resolution_used']} "
          f"hexes={data['hex_count']} visited={data['visited_count']} holes={holes} "
          f"hits={data['cache_hits']} misses={data['cache_misses']}")
    if data["status"]:
        print(f"           status: {data['status']}")


def main():
    parser = argparse.ArgumentParser(description="Demo fog-of-war exploration")
    parser.add_argument("--steps", type=int, default=100, help="Number of points to send (default: 100)")
    parser.add_argument("--step-m", type=float, default=10.0, help="Meters between points (default: 10)")
    args = parser.parse_args()

    print("=" * 60)
    print("FOG DEMO - Walk and Reveal")
    print("=" * 60)

    try:
        response = requests.get(f"{API_URL}/health", timeout=5)
        if response.status_code != 200:
            print("ERROR: API not healthy")
            return
        print("API is running")
    except requests.ConnectionError:
        print("ERROR: Cannot connect to API at", API_URL)
        print("Make sure to run: uvicorn src.vvander.main:app --reload")
        return

    points = list(walk(args.steps, args.step_m))
    data = requests.post(f"{API_URL}/v1/locations/batch", json={"locations": points}).json()
    print()
    print(f"Walked {data['total_locations']} points, {data['new_cells']} new cells "
          f"({data['processing_time_ms']} ms)")

    print()
    print("FOG:")
    show_fog("street", 0.01)
    show_fog("street", 0.01)  # second pass served from the grid cache
    show_fog("city", 0.2)
    show_fog("region", 2.0)
    show_fog("country", 30.0)

    print()
    start_ms = int((time.time() - args.steps - 1) * 1000)
    history = requests.get(
        f"{API_URL}/v1/locations",
        params={"start": start_ms, "end": int(time.time() * 1000)}
    ).json()
    print(f"History replay: {history['count']} points")

    print()
    print(f"Explored cells: {requests.get(f'{API_URL}/v1/visited').json()['explored_hexes']}")
    print("=" * 60)


if __name__ == "__main__":
    main()
