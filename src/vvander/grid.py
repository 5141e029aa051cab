"""
Spatial indexing using the H3 hexagonal grid system plus a rectangular
lat/lon grid used purely as a caching unit.

A grid cell is identified by (resolution, row, col) where
row = floor(lat / cell_size) and col = floor(lng / cell_size). Filling a
grid cell with hexagons is deterministic, so the result can be cached for
the lifetime of the process.
"""
import math
from dataclasses import dataclass
from typing import FrozenSet, Tuple

import h3

from .resolution import STORAGE_RESOLUTION, get_cell_size

# Decimal places kept before flooring a coordinate / cell size quotient.
# 37.42 / 0.01 is 3741.9999999999995 in binary floating point.
_QUOTIENT_PRECISION = 9


@dataclass(frozen=True)
class Region:
    """Viewport as reported by the map surface: center plus angular span."""
    latitude: float
    longitude: float
    latitude_delta: float
    longitude_delta: float


@dataclass(frozen=True)
class GridCellKey:
    """Rectangular cache cell at a given resolution."""
    resolution: int
    row: int
    col: int


def latlon_to_cell(lat: float, lon: float, resolution: int = STORAGE_RESOLUTION) -> str:
    """
    Convert lat/lon to H3 hexagon cell ID.

    Args:
        lat: Latitude
        lon: Longitude
        resolution: H3 resolution (defaults to the storage resolution)

    Returns:
        H3 cell ID (e.g., "8a2a1072b59ffff")
    """
    return h3.latlng_to_cell(lat, lon, resolution)


def cell_to_latlon(cell_id: str) -> Tuple[float, float]:
    """Center of a hexagon as (lat, lon)."""
    lat, lon = h3.cell_to_latlng(cell_id)
    return lat, lon


def grid_index(value: float, cell_size: float) -> int:
    """Row or column index of a coordinate for the given cell size."""
    return math.floor(round(value / cell_size, _QUOTIENT_PRECISION))


def grid_cell_key(lat: float, lon: float, resolution: int) -> GridCellKey:
    """Grid cell containing a point at the given resolution."""
    size = get_cell_size(resolution)
    return GridCellKey(resolution, grid_index(lat, size), grid_index(lon, size))


def cell_bounds(row: int, col: int, resolution: int) -> Tuple[float, float, float, float]:
    """
    Rectangle covered by a grid cell.

    Returns:
        Tuple of (south, west, north, east) in degrees
    """
    size = get_cell_size(resolution)
    return row * size, col * size, (row + 1) * size, (col + 1) * size


def compute_cell(row: int, col: int, resolution: int) -> FrozenSet[str]:
    """
    Fill a grid cell rectangle with hexagons.

    Pure function of its inputs: the same (row, col, resolution) always yields
    the same set of H3 cell IDs.

    Args:
        row: Grid row (floor of latitude / cell size)
        col: Grid column (floor of longitude / cell size)
        resolution: H3 resolution of the hexagons

    Returns:
        Frozen set of H3 cell IDs whose centers fall inside the rectangle
    """
    south, west, north, east = cell_bounds(row, col, resolution)
    # LatLngPoly expects (lat, lng) pairs
    rectangle = h3.LatLngPoly([
        (north, west),
        (north, east),
        (south, east),
        (south, west),
    ])
    return frozenset(h3.polygon_to_cells(rectangle, resolution))
