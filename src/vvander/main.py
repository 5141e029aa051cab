"""
vvander fog API
FastAPI application that reveals a map as the user explores, using H3 hexagonal cells.
"""
import logging
import time
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Response, HTTPException
from fastapi.concurrency import run_in_threadpool
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from src.vvander import events
from src.vvander import metrics
from src.vvander.config import LOG_LEVEL
from src.vvander.database import LocationStore, VisitedStore, init_db
from src.vvander.models import BatchLocationRequest, LocationUpdate, ViewportRegion
from src.vvander.redis_client import get_redis_client
from src.vvander.session import FogDiagnostic, FogSession
from src.vvander.time_utils import from_epoch_ms, to_epoch_ms

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

_session: Optional[FogSession] = None


def publish_slow_pass(diagnostic: FogDiagnostic) -> None:
    """Forward a slow fog pass to the Redis event stream."""
    try:
        events.publish_slow_fog_pass(get_redis_client(), **asdict(diagnostic))
        metrics.redis_operations_total.labels(operation="xadd", status="success").inc()
    except RedisError as exc:
        metrics.redis_operations_total.labels(operation="xadd", status="error").inc()
        logger.warning("Could not publish slow fog pass: %s", exc)


def publish_location(cell_id: str, lat: float, lon: float, timestamp_ms: int, new_cell: bool) -> None:
    try:
        events.publish_location_event(get_redis_client(), cell_id, lat, lon, timestamp_ms, new_cell)
        metrics.redis_operations_total.labels(operation="xadd", status="success").inc()
    except RedisError as exc:
        metrics.redis_operations_total.labels(operation="xadd", status="error").inc()
        logger.warning("Could not publish location event: %s", exc)


def get_fog_session() -> FogSession:
    """Process-wide fog session, created on first use."""
    global _session
    if _session is None:
        init_db()
        _session = FogSession(VisitedStore(), LocationStore(), on_slow_pass=publish_slow_pass)
        metrics.visited_hexes.set(_session.visited_store.count())
        logger.info("Fog session started")
    return _session


# Initialize FastAPI application
app = FastAPI(
    title="vvander",
    description="Fog-of-war map exploration using H3 hexagonal spatial indexing",
    version="1.0.0"
)


@app.get("/metrics")
def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns:
        Response: Prometheus-formatted metrics
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
        dict: API status and Redis connection status
    """
    try:
        redis_client = get_redis_client()
        redis_client.ping()
        redis_status = "connected"
        metrics.redis_operations_total.labels(operation="ping", status="success").inc()
    except RedisError:
        redis_status = "disconnected"
        metrics.redis_operations_total.labels(operation="ping", status="error").inc()

    return {"status": "healthy", "redis": redis_status}


@app.post("/v1/locations")
def record_location(location: LocationUpdate):
    """
    Record a location update.

    Process:
    1. Convert lat/lon to a storage-resolution H3 cell
    2. Add the cell to the visited set (no-op if already visited)
    3. Append the raw point to the location history
    4. Publish a location event to the Redis stream

    Raises:
        HTTPException 503: If the store rejects the write
    """
    start_time = time.time()
    session = get_fog_session()
    timestamp_ms = to_epoch_ms(location.timestamp or datetime.now(timezone.utc))

    try:
        cell_id, is_new = session.record_location(location.lat, location.lon, timestamp_ms)
    except SQLAlchemyError:
        logger.exception("Failed to record location")
        metrics.location_requests_total.labels(status="error").inc()
        raise HTTPException(status_code=503, detail="Location store unavailable")

    if is_new:
        metrics.visited_hexes.inc()
    metrics.location_requests_total.labels(status="success").inc()
    metrics.request_duration_seconds.labels(endpoint="record_location").observe(time.time() - start_time)

    publish_location(cell_id, location.lat, location.lon, timestamp_ms, is_new)

    return {
        "message": "Location recorded",
        "cell_id": cell_id,
        "new_cell": is_new,
        "timestamp_ms": timestamp_ms,
    }


@app.post("/v1/locations/batch")
def record_locations_batch(batch: BatchLocationRequest):
    """
    Record several location updates in one request.

    Background location delivery is deferred on devices, so updates usually
    arrive in batches. All points are written in one transaction per table.
    """
    start_time = time.time()
    session = get_fog_session()
    now = datetime.now(timezone.utc)

    points = [
        (to_epoch_ms(location.timestamp or now), location.lat, location.lon)
        for location in batch.locations
    ]

    try:
        stored, new_cells = session.record_locations(points)
    except SQLAlchemyError:
        logger.exception("Failed to record location batch")
        metrics.location_requests_total.labels(status="error").inc()
        raise HTTPException(status_code=503, detail="Location store unavailable")

    metrics.visited_hexes.inc(new_cells)
    metrics.location_requests_total.labels(status="success").inc()
    metrics.request_duration_seconds.labels(endpoint="record_locations_batch").observe(time.time() - start_time)

    return {
        "message": "Batch recorded",
        "total_locations": stored,
        "new_cells": new_cells,
        "processing_time_ms": round((time.time() - start_time) * 1000, 2)
    }


@app.get("/v1/locations")
def location_history(start: int, end: int):
    """
    Location history between two epoch-millisecond timestamps (inclusive).

    Returns:
        dict: Ordered list of points for path replay
    """
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")

    session = get_fog_session()
    if session.location_store is None:
        raise HTTPException(status_code=503, detail="Location history not configured")

    points = session.location_store.query_by_time_range(start, end)
    return {
        "start": from_epoch_ms(start).isoformat(),
        "end": from_epoch_ms(end).isoformat(),
        "count": len(points),
        "points": [
            {"timestamp_ms": timestamp_ms, "lat": lat, "lon": lon}
            for timestamp_ms, lat, lon in points
        ],
    }


@app.get("/v1/visited")
def visited_summary():
    """Number of explored cells at storage resolution."""
    session = get_fog_session()
    return {
        "explored_hexes": session.visited_store.count(),
        "version": session.visited_store.version,
    }


@app.post("/v1/visited/refresh")
def refresh_visited():
    """
    Force the next fog pass to reload visited hexes.

    Call this after another process (e.g. a background tracker) wrote to the store.
    """
    get_fog_session().refresh_visited()
    return {"message": "Visited hexes will be reloaded"}


@app.post("/v1/fog")
async def compute_fog(viewport: ViewportRegion):
    """
    Compute fog polygons for a viewport.

    The pass runs in the thread pool. Unless the viewport is too wide to draw
    fog, a prefetch of the surrounding grid cells is scheduled so the next
    nearby viewport is served from the cache.

    Returns:
        dict: Fog polygons (one outer ring with visited areas as holes),
            status message when fog is hidden, and the resolution used
    """
    start_time = time.time()
    session = get_fog_session()
    region = viewport.to_region()

    result = await run_in_threadpool(session.compute_fog, region)
    if region.latitude_delta <= session.max_span:
        session.prefetcher.schedule(region)

    metrics.request_duration_seconds.labels(endpoint="compute_fog").observe(time.time() - start_time)
    return result.to_dict()


@app.post("/v1/viewport")
async def viewport_changed(viewport: ViewportRegion):
    """
    Viewport-change notification from the map surface.

    Updates arriving faster than the throttle interval are coalesced; only
    the most recent one is applied. Fetch the result from /v1/fog/latest.
    """
    session = get_fog_session()
    applied = session.on_viewport_change(viewport.to_region())
    if not applied:
        return {"applied": False, "fog": None}

    result = await session.applying
    return {"applied": True, "fog": result.to_dict()}


@app.get("/v1/fog/latest")
async def latest_fog():
    """Fog for the most recently applied viewport."""
    session = get_fog_session()
    if session.latest is None:
        raise HTTPException(status_code=404, detail="No viewport applied yet")

    region = session.latest_region
    return {
        "region": {
            "latitude": region.latitude,
            "longitude": region.longitude,
            "latitude_delta": region.latitude_delta,
            "longitude_delta": region.longitude_delta,
        },
        **session.latest.to_dict(),
    }


@app.get("/v1/cache")
def cache_stats():
    """Grid cache size and the outcome of the last prefetch."""
    session = get_fog_session()
    report = session.prefetcher.last_report

    return {
        "cells": len(session.cache),
        "prefetch_pending": session.prefetcher.pending,
        "last_prefetch": {
            "resolution": report.resolution,
            "direction": list(report.direction),
            "cells_computed": report.cells_computed,
            "cells_cached": report.cells_cached,
        } if report else None,
    }
