"""
Viewport scheduling: throttling of viewport changes and cache prefetch.

Both schedulers use timers on the running asyncio loop. Cache warming itself
runs in the loop's default executor so hex computation never blocks requests.

Prefetch process, once a viewport settles:
1. Compare the new viewport center with the previously prefetched one to
   find the pan direction (-1, 0 or 1 per axis)
2. Warm the grid cache for a wide area around the viewport
3. If the user is panning, warm a region one viewport ahead in that
   direction, with twice the span
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from . import metrics
from .cache import HexSetAssembler
from .config import MAX_FOG_SPAN, PAN_NOISE_FRACTION, PREFETCH_DELAY_MS, PREFETCH_EXPANSION, THROTTLE_MS
from .grid import Region
from .resolution import select_resolution

logger = logging.getLogger(__name__)

Direction = Tuple[int, int]


def _axis_direction(delta: float, threshold: float) -> int:
    if delta > threshold:
        return 1
    if delta < -threshold:
        return -1
    return 0


def detect_pan_direction(
    previous: Optional[Region],
    current: Region,
    noise_fraction: float = PAN_NOISE_FRACTION
) -> Direction:
    """
    Direction the map moved between two viewports.

    Movement smaller than noise_fraction of the current span on an axis
    counts as no movement on that axis.

    Returns:
        Tuple of (lat_direction, lng_direction), each -1, 0 or 1
    """
    if previous is None:
        return 0, 0
    return (
        _axis_direction(current.latitude - previous.latitude, current.latitude_delta * noise_fraction),
        _axis_direction(current.longitude - previous.longitude, current.longitude_delta * noise_fraction),
    )


def offset_region(region: Region, direction: Direction) -> Region:
    """Region one viewport span ahead in the given direction, with doubled spans."""
    lat_direction, lng_direction = direction
    return Region(
        latitude=region.latitude + lat_direction * region.latitude_delta,
        longitude=region.longitude + lng_direction * region.longitude_delta,
        latitude_delta=region.latitude_delta * 2,
        longitude_delta=region.longitude_delta * 2,
    )


@dataclass
class PrefetchReport:
    """What one prefetch pass did."""
    resolution: int
    direction: Direction
    cells_computed: int = 0
    cells_cached: int = 0
    regions: List[Region] = field(default_factory=list)


class PrefetchScheduler:
    """Deferred cache warming for the most recent settled viewport."""

    def __init__(
        self,
        assembler: HexSetAssembler,
        delay_ms: float = PREFETCH_DELAY_MS,
        wide_expansion: float = PREFETCH_EXPANSION,
        noise_fraction: float = PAN_NOISE_FRACTION,
        max_span: float = MAX_FOG_SPAN
    ):
        self.assembler = assembler
        self.delay_ms = delay_ms
        self.wide_expansion = wide_expansion
        self.noise_fraction = noise_fraction
        self.max_span = max_span
        self.previous: Optional[Region] = None
        self.last_report: Optional[PrefetchReport] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, region: Region) -> None:
        """
        Run prefetch for region after the delay, replacing any pending run.

        Must be called from a running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_ms / 1000, self._fire, region)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, region: Region) -> None:
        self._handle = None
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.prefetch, region)
        future.add_done_callback(lambda done: self._log_failure(done, region))

    @staticmethod
    def _log_failure(future: asyncio.Future, region: Region) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            # A failed warm-up only costs a cache miss later
            logger.error("Prefetch failed for %s", region, exc_info=exc)

    def prefetch(self, region: Region) -> PrefetchReport:
        """
        Warm the grid cache around and ahead of a viewport.

        Viewports wider than max_span draw no fog, so nothing is cached for them.
        """
        resolution = select_resolution(region.latitude_delta)
        if region.latitude_delta > self.max_span:
            logger.debug("Skipping prefetch for zoomed-out viewport %s", region)
            return PrefetchReport(resolution=resolution, direction=(0, 0))

        direction = detect_pan_direction(self.previous, region, self.noise_fraction)
        self.previous = region

        report = PrefetchReport(resolution=resolution, direction=direction)

        wide = self.assembler.assemble(region, resolution, self.wide_expansion)
        report.regions.append(region)
        report.cells_computed += wide.misses
        report.cells_cached += wide.hits
        metrics.prefetch_runs_total.labels(kind="wide").inc()

        ahead = offset_region(region, direction) if direction != (0, 0) else None
        if ahead is not None and ahead.latitude_delta <= self.max_span:
            directional = self.assembler.assemble(ahead, resolution)
            report.regions.append(ahead)
            report.cells_computed += directional.misses
            report.cells_cached += directional.hits
            metrics.prefetch_runs_total.labels(kind="directional").inc()

        logger.debug(
            "Prefetch at res %d, direction %s: %d cells computed, %d already cached",
            resolution, direction, report.cells_computed, report.cells_cached
        )
        self.last_report = report
        return report


class ViewportThrottle:
    """
    Rate limiter for viewport changes.

    An update arriving at least `interval_ms` after the last applied one is
    applied immediately. Faster updates are coalesced: only the most recent
    one is applied once the interval has elapsed.
    """

    def __init__(
        self,
        callback: Callable[[Region], None],
        interval_ms: float = THROTTLE_MS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.callback = callback
        self.interval_ms = interval_ms
        self._clock = clock
        self._last_applied = float("-inf")
        self._pending: Optional[Region] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> Optional[Region]:
        return self._pending

    def submit(self, region: Region) -> bool:
        """
        Offer a new viewport.

        Returns:
            True if the viewport was applied right away, False if it was deferred
        """
        now = self._clock()
        elapsed_ms = (now - self._last_applied) * 1000

        if elapsed_ms >= self.interval_ms:
            # A late timer must not re-apply an older viewport afterwards
            self.cancel()
            self._last_applied = now
            self.callback(region)
            return True

        self._pending = region
        if self._handle is None:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later((self.interval_ms - elapsed_ms) / 1000, self._flush)
        return False

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None

    def _flush(self) -> None:
        self._handle = None
        region, self._pending = self._pending, None
        if region is not None:
            self._last_applied = self._clock()
            self.callback(region)
