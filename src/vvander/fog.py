"""
Fog polygon construction.

The fog is a single large polygon with the explored area cut out as holes.
Only the visited hexes near the viewport are merged into polygons; the
unvisited fill is never traced.

Winding convention, with longitude as x and latitude as y:
- outer boundary: counter-clockwise (positive signed area)
- holes: clockwise (negative signed area)
"""
from dataclasses import dataclass, field
from typing import AbstractSet, List, Optional, Sequence, Tuple

import h3

LatLng = Tuple[float, float]
Ring = List[LatLng]

DEFAULT_HEX_CAP = 10000

# Fixed fog extent covering continental North America.
# Regions outside it get no fog, and the antimeridian is not handled.
FOG_OUTER_BOUNDARY: Ring = [
    (10.0, -170.0),
    (10.0, -50.0),
    (75.0, -50.0),
    (75.0, -170.0),
    (10.0, -170.0),
]

# A closed ring needs three distinct vertices plus the repeated first one
MIN_RING_VERTICES = 4


@dataclass
class FogPolygon:
    """One fog polygon: an outer ring with explored areas as holes."""
    outer_ring: Ring
    holes: List[Ring] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "outer_ring": [list(point) for point in self.outer_ring],
            "holes": [[list(point) for point in hole] for hole in self.holes],
        }


@dataclass
class FogBuild:
    """Output of build_fog."""
    polygons: List[FogPolygon] = field(default_factory=list)
    status: Optional[str] = None
    visited_near_viewport: int = 0


def signed_area(ring: Sequence[LatLng]) -> float:
    """
    Shoelace area of a ring with longitude as x and latitude as y.

    Positive for counter-clockwise rings, negative for clockwise ones.
    """
    total = 0.0
    for (lat1, lng1), (lat2, lng2) in zip(ring, ring[1:]):
        total += lng1 * lat2 - lng2 * lat1
    # Close implicitly when the ring is open
    if ring and ring[0] != ring[-1]:
        lat1, lng1 = ring[-1]
        lat2, lng2 = ring[0]
        total += lng1 * lat2 - lng2 * lat1
    return total / 2


def normalize_ring(points: Sequence[LatLng], clockwise: bool) -> Optional[Ring]:
    """
    Close a ring, drop consecutive duplicate vertices and fix its winding.

    Args:
        points: Ring vertices as (lat, lng), open or closed
        clockwise: Desired winding

    Returns:
        Closed ring, or None if it cannot bound an area
    """
    ring: Ring = []
    for lat, lng in points:
        point = (float(lat), float(lng))
        if not ring or ring[-1] != point:
            ring.append(point)
    while len(ring) > 1 and ring[-1] == ring[0]:
        ring.pop()

    if len(ring) + 1 < MIN_RING_VERTICES:
        return None
    ring.append(ring[0])

    area = signed_area(ring)
    if area == 0:
        return None
    if (area > 0) == clockwise:
        ring.reverse()
    return ring


def merge_visited(hexes: AbstractSet[str]) -> List[Ring]:
    """
    Merge adjacent hexes into hole rings.

    Only the outer loop of each merged shape is kept; holes inside a visited
    shape are unexplored pockets the fog polygon does not need to describe.
    """
    if not hexes:
        return []

    shape = h3.cells_to_h3shape(list(hexes), tight=False)
    holes = []
    for poly in shape:
        ring = normalize_ring(poly.outer, clockwise=True)
        if ring is not None:
            holes.append(ring)
    return holes


def build_fog(
    superset: AbstractSet[str],
    visited: AbstractSet[str],
    cap: int = DEFAULT_HEX_CAP,
    outer_boundary: Sequence[LatLng] = FOG_OUTER_BOUNDARY
) -> FogBuild:
    """
    Compute the fog polygon for the hexes around a viewport.

    Args:
        superset: Hexes covering the (overscanned) viewport
        visited: Visited hexes at the same resolution
        cap: Maximum superset size rendered; larger sets hide the fog
        outer_boundary: Outer ring of the fog polygon

    Returns:
        FogBuild with zero or one polygon and an optional status message
    """
    if len(superset) > cap:
        return FogBuild(status=f"Tiles hidden: too many hexes ({len(superset)})")

    outer = normalize_ring(outer_boundary, clockwise=False)
    near = superset & visited

    if not near:
        # Nothing explored here
        return FogBuild(polygons=[FogPolygon(outer_ring=outer)])

    if len(near) == len(superset):
        # Fully explored: no fog at all
        return FogBuild(visited_near_viewport=len(near))

    return FogBuild(
        polygons=[FogPolygon(outer_ring=outer, holes=merge_visited(near))],
        visited_near_viewport=len(near),
    )
