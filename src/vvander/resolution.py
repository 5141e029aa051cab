"""
Display resolution selection and per-resolution tuning tables.

Only even H3 resolutions are used for display. Resolution 10 is the storage
resolution (~66m hexagon edge), so the finest display level shows visited
cells exactly as they were recorded.

The padding and grid cell size of each level are chosen so that one cache
grid cell holds roughly 40-60 hexagons whatever the zoom level.
"""
from typing import List

# H3 resolution visited cells are stored at
STORAGE_RESOLUTION = 10

# Upper latitude-span bound (exclusive) for each display resolution, finest first.
# A span exactly on a bound falls through to the next, coarser level.
RESOLUTION_THRESHOLDS = [
    (0.025, 10),  # Street level
    (0.09, 8),    # Neighborhood
    (0.5, 6),     # City
    (5.0, 4),     # Region
]
COARSEST_RESOLUTION = 2  # Very zoomed out

# Approximate hexagon edge length in km
EDGE_LENGTH_KM = {
    2: 158.2,
    4: 22.6,
    6: 3.23,
    8: 0.461,
    10: 0.066,
}

# Degrees added around a query window so hexes straddling the edge are included (~2x hex diameter)
HEX_PADDING = {
    2: 10,      # ~1200km
    4: 0.6,     # ~44km
    6: 0.08,    # ~6km
    8: 0.012,   # ~900m
    10: 0.002,  # ~150m
}

# Degrees per side of one cache grid cell
GRID_CELL_SIZE = {
    2: 20,
    4: 3,
    6: 0.4,
    8: 0.06,
    10: 0.01,
}


def select_resolution(span: float) -> int:
    """
    Pick the display resolution for a viewport.

    Args:
        span: Latitude span of the viewport in degrees (must be > 0 and finite)

    Returns:
        H3 resolution, finer for smaller spans
    """
    for upper_bound, resolution in RESOLUTION_THRESHOLDS:
        if span < upper_bound:
            return resolution
    return COARSEST_RESOLUTION


def display_resolutions() -> List[int]:
    """All display resolutions, coarsest first."""
    return sorted(GRID_CELL_SIZE)


def get_padding(resolution: int) -> float:
    return HEX_PADDING[resolution]


def get_cell_size(resolution: int) -> float:
    return GRID_CELL_SIZE[resolution]
