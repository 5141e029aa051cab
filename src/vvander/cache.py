"""
Grid cache and hex set assembly.

Filling an arbitrary viewport with hexagons on every frame is expensive. The
world is instead cut into fixed rectangular grid cells per resolution; each
cell's hex set is computed once and kept for the life of the process.
Assembling the hexes for a viewport is then a union over the few grid cells
the (padded, optionally expanded) viewport overlaps.

Entries are never evicted.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from . import metrics
from .grid import GridCellKey, Region, compute_cell, grid_index
from .resolution import get_cell_size, get_padding

logger = logging.getLogger(__name__)

MAX_LATITUDE = 90.0


class GridCache:
    """
    Mapping from GridCellKey to the hexes tiling that cell.

    Safe to share between threads: a missing cell is computed once, and
    concurrent requests for the same key wait for that computation.
    """

    def __init__(self):
        self._entries: Dict[GridCellKey, FrozenSet[str]] = {}
        self._lock = threading.Lock()
        self._inflight: Dict[GridCellKey, threading.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: GridCellKey) -> bool:
        return key in self._entries

    def get(self, key: GridCellKey) -> Optional[FrozenSet[str]]:
        return self._entries.get(key)

    def put(self, key: GridCellKey, hexes: Iterable[str]) -> FrozenSet[str]:
        """
        Store the hexes for a cell unless the cell is already populated.

        Returns:
            The entry held by the cache after the call
        """
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            entry = frozenset(hexes)
            self._entries[key] = entry
        metrics.grid_cache_cells.set(len(self._entries))
        return entry

    def get_or_compute(
        self,
        key: GridCellKey,
        compute: Callable[[GridCellKey], Iterable[str]]
    ) -> Tuple[FrozenSet[str], bool]:
        """
        Return the cached hexes for a cell, computing them on a miss.

        Args:
            key: Grid cell to look up
            compute: Called with the key when the cell is missing

        Returns:
            Tuple of (hexes, hit) where hit is False if this call computed the cell
        """
        entry = self._entries.get(key)
        if entry is not None:
            return entry, True

        with self._lock:
            key_lock = self._inflight.setdefault(key, threading.Lock())

        with key_lock:
            # Another caller may have finished the computation while we waited
            entry = self._entries.get(key)
            if entry is not None:
                return entry, True
            try:
                entry = self.put(key, compute(key))
            finally:
                with self._lock:
                    self._inflight.pop(key, None)
        return entry, False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        metrics.grid_cache_cells.set(0)


@dataclass
class AssembledHexes:
    """Union of the hex sets of every grid cell overlapping a region."""
    hexes: Set[str] = field(default_factory=set)
    cell_keys: List[GridCellKey] = field(default_factory=list)
    hits: int = 0
    misses: int = 0


def expanded_bounds(
    region: Region,
    resolution: int,
    expansion: float = 1.0
) -> Tuple[float, float, float, float]:
    """
    Bounding box of a region after expansion and padding.

    Returns:
        Tuple of (south, west, north, east) in degrees
    """
    pad = get_padding(resolution)
    half_lat = region.latitude_delta * expansion / 2 + pad
    half_lng = region.longitude_delta * expansion / 2 + pad
    return (
        region.latitude - half_lat,
        region.longitude - half_lng,
        region.latitude + half_lat,
        region.longitude + half_lng,
    )


def cell_keys_for_region(
    region: Region,
    resolution: int,
    expansion: float = 1.0
) -> List[GridCellKey]:
    """
    Every grid cell overlapping the expanded, padded region.

    Cells are enumerated at full extent, never clipped to the box, so the
    union of their hexes always covers the region.
    """
    if expansion < 1:
        raise ValueError(f"expansion must be >= 1, got {expansion}")

    size = get_cell_size(resolution)
    south, west, north, east = expanded_bounds(region, resolution, expansion)

    # Rows beyond the poles hold no hexes
    first_row = grid_index(max(south, -MAX_LATITUDE), size)
    last_row = grid_index(min(north, MAX_LATITUDE), size)
    if last_row * size >= MAX_LATITUDE:
        last_row -= 1

    rows = range(first_row, last_row + 1)
    cols = range(grid_index(west, size), grid_index(east, size) + 1)
    return [GridCellKey(resolution, row, col) for row in rows for col in cols]


def _compute_key(key: GridCellKey) -> FrozenSet[str]:
    return compute_cell(key.row, key.col, key.resolution)


class HexSetAssembler:
    """Builds the hex set covering a region out of cached grid cells."""

    def __init__(self, cache: GridCache):
        self.cache = cache

    def assemble(self, region: Region, resolution: int, expansion: float = 1.0) -> AssembledHexes:
        """
        Collect the hexes covering a region.

        Args:
            region: Viewport to cover
            resolution: H3 resolution of the hexes
            expansion: Multiplier applied to both spans (1 = viewport only,
                larger values overscan or prefetch)

        Returns:
            AssembledHexes with the deduplicated hex set and hit/miss counts
        """
        result = AssembledHexes()
        result.cell_keys = cell_keys_for_region(region, resolution, expansion)

        for key in result.cell_keys:
            hexes, hit = self.cache.get_or_compute(key, _compute_key)
            if hit:
                result.hits += 1
            else:
                result.misses += 1
            result.hexes.update(hexes)

        metrics.grid_cache_lookups_total.labels(result="hit").inc(result.hits)
        metrics.grid_cache_lookups_total.labels(result="miss").inc(result.misses)
        logger.debug(
            "Assembled %d hexes from %d cells at res %d (hits=%d, misses=%d)",
            len(result.hexes), len(result.cell_keys), resolution, result.hits, result.misses
        )
        return result
