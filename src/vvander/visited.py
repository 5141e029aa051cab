"""
Mapping stored visited hexes to the current display resolution.

Visited hexes are stored at the storage resolution. When the map is zoomed
out, each one is replaced by its ancestor at the coarser display resolution
so membership tests against the viewport hexes are plain set lookups.
"""
import logging
import threading
from typing import FrozenSet, Iterable, Optional, Protocol, Set

import h3

from .resolution import STORAGE_RESOLUTION

logger = logging.getLogger(__name__)


class VisitedSource(Protocol):
    """Anything that can list visited hexes and report when they changed."""
    version: int

    def list(self) -> Set[str]:
        ...


def resolve_visited(
    hexes: Iterable[str],
    display_resolution: int,
    storage_resolution: int = STORAGE_RESOLUTION
) -> FrozenSet[str]:
    """
    Map visited hexes to their ancestors at the display resolution.

    Args:
        hexes: Visited H3 cell IDs at the storage resolution
        display_resolution: Resolution the fog is rendered at
        storage_resolution: Resolution the hexes were recorded at

    Returns:
        Frozen set of H3 cell IDs at the display resolution
    """
    if display_resolution >= storage_resolution:
        return frozenset(hexes)
    return frozenset(h3.cell_to_parent(cell, display_resolution) for cell in hexes)


class VisitedResolver:
    """
    Recompute-on-change wrapper around resolve_visited.

    The resolved set is only rebuilt when the source's version or the display
    resolution differs from the previous call. Only the latest resolution is
    kept; switching zoom levels back and forth recomputes each time.
    """

    def __init__(self, source: VisitedSource):
        self.source = source
        self._resolution: Optional[int] = None
        self._version: Optional[int] = None
        self._resolved: FrozenSet[str] = frozenset()
        self._lock = threading.Lock()
        self.recomputations = 0

    @property
    def dirty(self) -> bool:
        return self._version != self.source.version

    def invalidate(self) -> None:
        """Force the next resolve() to reload from the source."""
        self._version = None

    def resolve(self, display_resolution: int) -> FrozenSet[str]:
        """Visited hexes at display_resolution. Safe to call from worker threads."""
        with self._lock:
            version = self.source.version
            if (
                self._version is not None
                and version == self._version
                and display_resolution == self._resolution
            ):
                return self._resolved

            resolved = resolve_visited(self.source.list(), display_resolution)
            self._resolved = resolved
            self._version = version
            self._resolution = display_resolution
            self.recomputations += 1
        logger.debug(
            "Resolved %d visited hexes at res %d (source version %d)",
            len(resolved), display_resolution, version
        )
        return resolved
