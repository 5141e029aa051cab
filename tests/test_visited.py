"""
Unit tests for resolving visited hexes to the display resolution.
"""
import threading

import pytest
import h3
from src.vvander.visited import VisitedResolver, resolve_visited


class FakeVisitedSource:
    """In-memory visited source that counts list() calls."""

    def __init__(self, hexes=()):
        self.hexes = set(hexes)
        self.version = 0
        self.list_calls = 0

    def list(self):
        self.list_calls += 1
        return set(self.hexes)

    def add(self, hex_id):
        if hex_id not in self.hexes:
            self.hexes.add(hex_id)
            self.version += 1


@pytest.fixture
def street_hexes():
    """Two storage-resolution hexes a few hundred meters apart."""
    return {
        h3.latlng_to_cell(37.4200, -88.3100, 10),
        h3.latlng_to_cell(37.4230, -88.3100, 10),
    }


@pytest.mark.unit
class TestResolveVisited:
    """Test suite for resolve_visited function."""

    def test_identity_at_storage_resolution(self, street_hexes):
        """Test that hexes are unchanged at the storage resolution."""
        assert resolve_visited(street_hexes, 10) == frozenset(street_hexes)

    def test_parents_at_coarser_resolution(self, street_hexes):
        """Test mapping to ancestors at a coarser resolution."""
        resolved = resolve_visited(street_hexes, 6)

        assert resolved == {h3.cell_to_parent(cell, 6) for cell in street_hexes}
        assert all(h3.get_resolution(cell) == 6 for cell in resolved)

    def test_nearby_hexes_collapse(self, street_hexes):
        """Test that close hexes share one ancestor when zoomed out."""
        assert len(resolve_visited(street_hexes, 2)) == 1

    def test_empty(self):
        """Test that nothing visited resolves to nothing."""
        assert resolve_visited([], 8) == frozenset()

    def test_finer_display_than_storage_is_identity(self, street_hexes):
        """Test that a display resolution above storage keeps stored hexes."""
        assert resolve_visited(street_hexes, 12) == frozenset(street_hexes)


@pytest.mark.unit
class TestVisitedResolver:
    """Test suite for VisitedResolver recompute-on-change behaviour."""

    def test_first_resolve_reads_source(self, street_hexes):
        """Test that the first call loads the source."""
        source = FakeVisitedSource(street_hexes)
        resolver = VisitedResolver(source)

        assert resolver.resolve(10) == frozenset(street_hexes)
        assert source.list_calls == 1

    def test_unchanged_source_is_not_reread(self, street_hexes):
        """Test that repeated calls with the same version and resolution are cached."""
        source = FakeVisitedSource(street_hexes)
        resolver = VisitedResolver(source)

        resolver.resolve(8)
        resolver.resolve(8)
        resolver.resolve(8)

        assert source.list_calls == 1
        assert resolver.recomputations == 1

    def test_new_visit_triggers_recompute(self, street_hexes):
        """Test that a version bump makes the resolver reload."""
        source = FakeVisitedSource(street_hexes)
        resolver = VisitedResolver(source)
        resolver.resolve(10)

        new_hex = h3.latlng_to_cell(40.7128, -74.0060, 10)
        source.add(new_hex)

        assert resolver.dirty
        assert new_hex in resolver.resolve(10)
        assert source.list_calls == 2

    def test_resolution_change_triggers_recompute(self, street_hexes):
        """Test that only the latest resolution is kept."""
        source = FakeVisitedSource(street_hexes)
        resolver = VisitedResolver(source)

        resolver.resolve(10)
        resolver.resolve(6)
        resolver.resolve(10)

        assert source.list_calls == 3

    def test_invalidate_forces_reload(self, street_hexes):
        """Test explicit invalidation for writes the version does not track."""
        source = FakeVisitedSource(street_hexes)
        resolver = VisitedResolver(source)
        resolver.resolve(10)

        # Simulate another process writing without bumping the version
        other = h3.latlng_to_cell(51.5074, -0.1278, 10)
        source.hexes.add(other)
        assert other not in resolver.resolve(10)

        resolver.invalidate()
        assert other in resolver.resolve(10)

    def test_concurrent_resolutions_do_not_mix(self, street_hexes):
        """Test that threads resolving different zoom levels get their own level."""
        resolver = VisitedResolver(FakeVisitedSource(street_hexes))
        wrong = []

        def worker(resolution):
            for _ in range(50):
                resolved = resolver.resolve(resolution)
                if any(h3.get_resolution(cell) != resolution for cell in resolved):
                    wrong.append(resolution)

        threads = [threading.Thread(target=worker, args=(res,)) for res in (10, 6, 10, 6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert wrong == []
