"""
Fog session: one grid cache, visited resolver and scheduler set per process.

compute_fog runs the whole pipeline for one viewport:
1. Pick the display resolution from the viewport's latitude span
2. Assemble the overscanned hex superset from the grid cache
3. Resolve visited hexes at the display resolution
4. Build the fog polygon (visited hexes near the viewport become holes)

A pass slower than the configured budget emits a diagnostic record with
resolution, hex counts, cache counters and per-stage timings. The record is
handed to the slow-pass hook on a background thread, so a slow sink never
delays the fog result.

compute_fog blocks on the visited store and on hex computation; callers on
an event loop run it in a worker thread.
"""
import asyncio
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import metrics
from .cache import GridCache, HexSetAssembler
from .config import (
    FOG_HEX_CAP,
    FOG_OVERSCAN,
    MAX_FOG_SPAN,
    PREFETCH_DELAY_MS,
    SLOW_PASS_BUDGET_MS,
    THROTTLE_MS,
)
from .database import LocationStore, VisitedStore
from .fog import FOG_OUTER_BOUNDARY, FogPolygon, LatLng, build_fog
from .grid import Region, latlon_to_cell
from .prefetch import PrefetchScheduler, ViewportThrottle
from .resolution import select_resolution
from .visited import VisitedResolver

logger = logging.getLogger(__name__)

ZOOM_IN_STATUS = "Tiles hidden: please zoom in"


@dataclass
class FogDiagnostic:
    """Observational record of one slow fog pass."""
    resolution: int
    hex_count: int
    visited_count: int
    cell_count: int
    cache_hits: int
    cache_misses: int
    total_ms: float
    timings_ms: Dict[str, float]


@dataclass
class FogResult:
    """Fog polygons for one viewport, ready for the renderer."""
    polygons: List[FogPolygon] = field(default_factory=list)
    status: Optional[str] = None
    resolution_used: Optional[int] = None
    hex_count: int = 0
    visited_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    timings_ms: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "polygons": [polygon.to_dict() for polygon in self.polygons],
            "status": self.status,
            "resolution_used": self.resolution_used,
            "hex_count": self.hex_count,
            "visited_count": self.visited_count,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
        }


class FogSession:
    """Owns the fog pipeline state shared by every viewport of a user."""

    def __init__(
        self,
        visited_store: VisitedStore,
        location_store: Optional[LocationStore] = None,
        cache: Optional[GridCache] = None,
        hex_cap: int = FOG_HEX_CAP,
        overscan: float = FOG_OVERSCAN,
        max_span: float = MAX_FOG_SPAN,
        slow_pass_budget_ms: float = SLOW_PASS_BUDGET_MS,
        throttle_ms: float = THROTTLE_MS,
        prefetch_delay_ms: float = PREFETCH_DELAY_MS,
        outer_boundary: Sequence[LatLng] = FOG_OUTER_BOUNDARY,
        on_slow_pass: Optional[Callable[[FogDiagnostic], None]] = None
    ):
        self.visited_store = visited_store
        self.location_store = location_store
        self.cache = cache if cache is not None else GridCache()
        self.assembler = HexSetAssembler(self.cache)
        self.resolver = VisitedResolver(visited_store)
        self.prefetcher = PrefetchScheduler(self.assembler, delay_ms=prefetch_delay_ms, max_span=max_span)
        self.throttle = ViewportThrottle(self._apply_viewport, interval_ms=throttle_ms)

        self.hex_cap = hex_cap
        self.overscan = overscan
        self.max_span = max_span
        self.slow_pass_budget_ms = slow_pass_budget_ms
        self.outer_boundary = outer_boundary
        self.on_slow_pass = on_slow_pass

        self.latest: Optional[FogResult] = None
        self.latest_region: Optional[Region] = None
        self.applying: Optional[asyncio.Future] = None
        self._applied_seq = 0
        self._diagnostics = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fog-diagnostics")

    # ------------------------------------------------------------------
    # Fog
    # ------------------------------------------------------------------

    def compute_fog(self, region: Region) -> FogResult:
        """
        Compute the fog polygons for a viewport.

        Never raises for degraded states: too large a span or too many hexes
        produce an empty polygon list and a status message instead.
        """
        started = time.perf_counter()
        resolution = select_resolution(region.latitude_delta)

        if region.latitude_delta > self.max_span:
            metrics.fog_requests_total.labels(status="hidden").inc()
            return FogResult(status=ZOOM_IN_STATUS, resolution_used=resolution)

        timings = {"resolution": (time.perf_counter() - started) * 1000}

        mark = time.perf_counter()
        assembled = self.assembler.assemble(region, resolution, self.overscan)
        timings["assemble"] = (time.perf_counter() - mark) * 1000

        mark = time.perf_counter()
        if len(assembled.hexes) > self.hex_cap:
            # build_fog reports the overload; resolving visited would be wasted work
            visited = frozenset()
        else:
            visited = self.resolver.resolve(resolution)
        timings["visited"] = (time.perf_counter() - mark) * 1000

        mark = time.perf_counter()
        build = build_fog(assembled.hexes, visited, self.hex_cap, self.outer_boundary)
        timings["build"] = (time.perf_counter() - mark) * 1000

        total_ms = (time.perf_counter() - started) * 1000
        result = FogResult(
            polygons=build.polygons,
            status=build.status,
            resolution_used=resolution,
            hex_count=len(assembled.hexes),
            visited_count=build.visited_near_viewport,
            cache_hits=assembled.hits,
            cache_misses=assembled.misses,
            timings_ms=timings,
        )

        metrics.fog_requests_total.labels(status="degraded" if build.status else "ok").inc()
        metrics.fog_build_duration_seconds.observe(total_ms / 1000)

        if total_ms > self.slow_pass_budget_ms:
            self._report_slow_pass(FogDiagnostic(
                resolution=resolution,
                hex_count=result.hex_count,
                visited_count=result.visited_count,
                cell_count=len(assembled.cell_keys),
                cache_hits=assembled.hits,
                cache_misses=assembled.misses,
                total_ms=total_ms,
                timings_ms=timings,
            ))
        return result

    def _report_slow_pass(self, diagnostic: FogDiagnostic) -> None:
        metrics.slow_fog_passes_total.labels(resolution=str(diagnostic.resolution)).inc()
        logger.info(
            "Slow fog pass: %.1fms at res %d (hexes=%d, visited=%d, cells=%d, hits=%d, misses=%d, stages=%s)",
            diagnostic.total_ms, diagnostic.resolution, diagnostic.hex_count,
            diagnostic.visited_count, diagnostic.cell_count, diagnostic.cache_hits,
            diagnostic.cache_misses,
            {stage: round(ms, 2) for stage, ms in diagnostic.timings_ms.items()}
        )
        if self.on_slow_pass is None:
            return
        future = self._diagnostics.submit(self.on_slow_pass, diagnostic)
        future.add_done_callback(self._log_hook_failure)

    @staticmethod
    def _log_hook_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            # Diagnostics are advisory
            logger.error("Slow-pass hook failed", exc_info=exc)

    def close(self) -> None:
        """Wait for queued diagnostics and release the hook thread."""
        self._diagnostics.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Viewport scheduling
    # ------------------------------------------------------------------

    def on_viewport_change(self, region: Region) -> bool:
        """
        Handle a viewport-change notification.

        Must be called from a running event loop. Returns True if the fog
        computation started right away (await `applying` for the result),
        False if the update was coalesced.
        """
        return self.throttle.submit(region)

    def _apply_viewport(self, region: Region) -> None:
        loop = asyncio.get_running_loop()
        self._applied_seq += 1
        seq = self._applied_seq
        self.applying = loop.run_in_executor(None, self.compute_fog, region)
        self.applying.add_done_callback(lambda done: self._viewport_applied(done, region, seq))

    def _viewport_applied(self, future: asyncio.Future, region: Region, seq: int) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Fog pass failed for %s", region, exc_info=exc)
            return
        if seq != self._applied_seq:
            # A newer viewport was applied while this one computed
            return
        self.latest = future.result()
        self.latest_region = region
        self.prefetcher.schedule(region)

    # ------------------------------------------------------------------
    # Visited data
    # ------------------------------------------------------------------

    def record_location(self, lat: float, lon: float, timestamp_ms: int) -> Tuple[str, bool]:
        """
        Store one location update.

        Returns:
            Tuple of (storage-resolution cell ID, whether the cell was new)
        """
        cell_id = latlon_to_cell(lat, lon)
        is_new = self.visited_store.add(cell_id)
        if self.location_store is not None:
            self.location_store.add(timestamp_ms, lat, lon)
        return cell_id, is_new

    def record_locations(self, points: Iterable[Tuple[int, float, float]]) -> Tuple[int, int]:
        """
        Store a batch of (timestamp_ms, lat, lon) updates.

        Returns:
            Tuple of (points stored, new cells explored)
        """
        points = list(points)
        new_cells = self.visited_store.add_many(latlon_to_cell(lat, lon) for _, lat, lon in points)
        if self.location_store is not None:
            self.location_store.add_many(points)
        return len(points), new_cells

    def refresh_visited(self) -> None:
        """Reload visited hexes on the next pass (e.g. after an external writer)."""
        self.resolver.invalidate()
