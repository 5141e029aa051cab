"""
Unit tests for grid module (H3 cells and the rectangular cache grid).
"""
import pytest
import h3
from src.vvander.grid import (
    GridCellKey,
    Region,
    latlon_to_cell,
    cell_to_latlon,
    grid_index,
    grid_cell_key,
    cell_bounds,
    compute_cell,
)
from src.vvander.resolution import STORAGE_RESOLUTION, display_resolutions


@pytest.mark.unit
class TestLatLonToCell:
    """Test suite for latlon_to_cell function."""

    def test_latlon_to_cell_valid_coordinates(self):
        """Test conversion of valid lat/lon to H3 cell ID."""
        lat, lon = 40.7128, -74.0060  # New York City
        cell_id = latlon_to_cell(lat, lon)

        assert isinstance(cell_id, str)
        assert len(cell_id) == 15  # H3 cell ID length
        assert h3.is_valid_cell(cell_id)

    def test_latlon_to_cell_storage_resolution(self):
        """Test that cell ID defaults to the storage resolution."""
        cell_id = latlon_to_cell(51.5074, -0.1278)  # London

        assert h3.get_resolution(cell_id) == STORAGE_RESOLUTION
        assert h3.get_resolution(cell_id) == 10

    def test_latlon_to_cell_explicit_resolution(self):
        """Test conversion at a display resolution."""
        cell_id = latlon_to_cell(37.42, -88.31, resolution=6)
        assert h3.get_resolution(cell_id) == 6

    def test_latlon_to_cell_same_location_same_cell(self):
        """Test that same coordinates return same cell ID."""
        assert latlon_to_cell(35.6762, 139.6503) == latlon_to_cell(35.6762, 139.6503)

    def test_cell_to_latlon_roundtrip_nearby(self):
        """Test that the cell center is within a hexagon of the original point."""
        lat, lon = 37.7749, -122.4194  # San Francisco
        center_lat, center_lon = cell_to_latlon(latlon_to_cell(lat, lon))

        # Resolution 10 hexagons are ~66m across the edge
        assert abs(center_lat - lat) < 0.001
        assert abs(center_lon - lon) < 0.001


@pytest.mark.unit
class TestGridIndex:
    """Test suite for grid_index and grid_cell_key."""

    def test_grid_index_positive(self):
        """Test flooring for positive coordinates."""
        assert grid_index(37.425, 0.01) == 3742

    def test_grid_index_negative_floors_down(self):
        """Test that negative coordinates floor toward negative infinity."""
        assert grid_index(-88.305, 0.01) == -8831
        assert grid_index(-0.001, 0.01) == -1

    def test_grid_index_exact_edge(self):
        """Test that a coordinate exactly on a cell edge belongs to that cell."""
        # 37.42 / 0.01 evaluates to 3741.9999999999995 in floating point
        assert grid_index(37.42, 0.01) == 3742
        assert grid_index(-88.31, 0.01) == -8831

    def test_grid_cell_key_example(self):
        """Test the cache key for a street-level point."""
        key = grid_cell_key(37.42, -88.31, 10)
        assert key == GridCellKey(resolution=10, row=3742, col=-8831)

    def test_grid_cell_key_is_hashable_and_immutable(self):
        """Test that keys can be used in dicts and cannot be modified."""
        key = GridCellKey(10, 1, 2)
        assert {key: "x"}[GridCellKey(10, 1, 2)] == "x"
        with pytest.raises(AttributeError):
            key.row = 5

    def test_cell_bounds(self):
        """Test the rectangle covered by a grid cell."""
        south, west, north, east = cell_bounds(3742, -8831, 10)

        assert south == pytest.approx(37.42)
        assert north == pytest.approx(37.43)
        assert west == pytest.approx(-88.31)
        assert east == pytest.approx(-88.30)


@pytest.mark.unit
class TestComputeCell:
    """Test suite for compute_cell function."""

    def test_compute_cell_idempotent(self):
        """Test that repeated calls return identical sets."""
        first = compute_cell(3742, -8831, 10)
        second = compute_cell(3742, -8831, 10)

        assert first == second
        assert isinstance(first, frozenset)

    def test_compute_cell_resolution(self):
        """Test that every hex is at the requested resolution."""
        hexes = compute_cell(93, -221, 6)

        assert hexes
        assert all(h3.get_resolution(cell) == 6 for cell in hexes)

    def test_compute_cell_centers_inside_rectangle(self):
        """Test that every hex center lies in the grid cell."""
        south, west, north, east = cell_bounds(3742, -8831, 10)

        for cell in compute_cell(3742, -8831, 10):
            lat, lon = h3.cell_to_latlng(cell)
            assert south - 1e-6 <= lat <= north + 1e-6
            assert west - 1e-6 <= lon <= east + 1e-6

    @pytest.mark.parametrize("resolution", display_resolutions())
    def test_hexes_per_cell_roughly_constant(self, resolution):
        """Test that a grid cell holds a similar number of hexes at every resolution."""
        key = grid_cell_key(37.42, -88.31, resolution)
        count = len(compute_cell(key.row, key.col, key.resolution))

        assert 10 <= count <= 150

    def test_adjacent_cells_do_not_overlap(self):
        """Test that neighbouring grid cells share no hexes."""
        left = compute_cell(3742, -8831, 10)
        right = compute_cell(3742, -8830, 10)

        assert not left & right


@pytest.mark.unit
class TestRegion:
    """Test suite for Region value type."""

    def test_region_fields(self):
        """Test that a region stores center and span."""
        region = Region(37.42, -88.31, 0.01, 0.02)

        assert region.latitude == 37.42
        assert region.longitude == -88.31
        assert region.latitude_delta == 0.01
        assert region.longitude_delta == 0.02

    def test_region_equality(self):
        """Test value equality of regions."""
        assert Region(1.0, 2.0, 0.1, 0.1) == Region(1.0, 2.0, 0.1, 0.1)
