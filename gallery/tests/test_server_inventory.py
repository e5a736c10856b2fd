"""Tests for ServerInventory class."""

import os
import threading

import pytest

from gallery.inventory import Inventory
from gallery.server_inventory import ServerInventory
from gallery.server_sources import ServerSource
from gallery.thumbnail_cache import ThumbnailCache


@pytest.fixture
def mapping(server_root):
    """Mutable server source mapping."""
    return [ServerSource('Field', str(server_root / 'Field'))]


@pytest.fixture
def server_inventory(cache_config, metadata_store, mapping):
    return ServerInventory(cache_config, metadata=metadata_store, sources_provider=lambda: list(mapping))


class TestServerInventory:
    """Tests for ServerInventory class."""

    def test_cold_start_scans(self, server_inventory, cache_config):
        """Test a start without snapshot scans synchronously and saves."""
        schedule = []

        assert server_inventory.load() is False
        server_inventory.start(schedule_rescan=schedule.append)

        assert schedule == []
        assert sorted(p.identifier for p in server_inventory.inventory.pictures) == [
            'beetle.jpg', 'nested/moth.png'
        ]
        assert server_inventory.sources[0].picture_count == 2
        assert os.path.exists(cache_config.inventory_path)

    def test_warm_start_schedules_validation(self, server_inventory, cache_config, metadata_store, mapping):
        """Test a loaded snapshot is served while validation is scheduled."""
        server_inventory.rescan()
        restarted = ServerInventory(cache_config, metadata=metadata_store, sources_provider=lambda: list(mapping))
        schedule = []

        assert restarted.load() is True
        restarted.start(schedule_rescan=schedule.append)

        assert schedule == ['startup validation']
        assert restarted.inventory.total_pictures == 2

    def test_unreadable_snapshot(self, server_inventory, cache_config):
        """Test a corrupt snapshot starts an empty inventory."""
        os.makedirs(os.path.dirname(cache_config.inventory_path), exist_ok=True)
        with open(cache_config.inventory_path, 'w') as f:
            f.write('[]')

        assert server_inventory.load() is False

    def test_rescan_idempotent(self, server_inventory):
        """Test a second rescan over unchanged folders changes nothing."""
        server_inventory.rescan()
        ids = sorted(p.id for p in server_inventory.inventory.pictures)

        changeset = server_inventory.rescan()

        assert changeset.is_empty
        assert sorted(p.id for p in server_inventory.inventory.pictures) == ids

    def test_changed_picture_drops_thumbnails(self, server_inventory, cache_config, metadata_store, server_root, make_image):
        """Test an updated picture loses its cached tiers."""
        server_inventory.rescan()
        cache = ThumbnailCache(cache_config, metadata_store, server_inventory.root_for)
        result = cache.get('Field', 'beetle.jpg', 400)

        path = make_image(server_root / 'Field' / 'beetle.jpg', size=(640, 480), color='blue')
        stat = os.stat(path)
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))
        changeset = server_inventory.rescan()

        assert [r.identifier for r in changeset.updates] == ['beetle.jpg']
        assert metadata_store.get(result.key) is None
        assert not result.path.exists()

    def test_removed_source_purged(self, server_inventory, cache_config, metadata_store, mapping):
        """Test a source dropped from the mapping loses pictures and thumbnails."""
        server_inventory.rescan()
        cache = ThumbnailCache(cache_config, metadata_store, server_inventory.root_for)
        result = cache.get('Field', 'beetle.jpg', 400)

        mapping.clear()
        server_inventory.rescan()

        assert server_inventory.sources == []
        assert server_inventory.inventory.total_pictures == 0
        assert metadata_store.get(result.key) is None

    def test_listeners_notified(self, server_inventory):
        """Test listeners receive the applied changeset."""
        seen = []
        server_inventory.add_listener(seen.append)

        changeset = server_inventory.rescan()

        assert seen == [changeset]
        assert server_inventory.last_changeset is changeset

    def test_concurrent_rescan_skipped(self, server_inventory):
        """Test a rescan while another runs returns None."""
        server_inventory._scan_lock.acquire()
        try:
            assert server_inventory.rescan() is None
        finally:
            server_inventory._scan_lock.release()

    def test_root_for(self, server_inventory, server_root):
        """Test only server sources resolve to a root."""
        server_inventory.rescan()

        assert server_inventory.root_for('Field') == str(server_root / 'Field')
        assert server_inventory.root_for('Nope') is None

    def test_picture_items_newest_first(self, server_inventory, server_root):
        """Test items for pregeneration are ordered newest first."""
        moth = server_root / 'Field' / 'nested' / 'moth.png'
        os.utime(moth, (1, 2_000_000_000))
        os.utime(server_root / 'Field' / 'beetle.jpg', (1, 1_000_000_000))
        server_inventory.rescan()

        assert server_inventory.picture_items() == [('Field', 'nested/moth.png'), ('Field', 'beetle.jpg')]

    def test_delete_source(self, server_inventory, cache_config):
        """Test deleting a source by name."""
        server_inventory.rescan()

        assert server_inventory.delete_source('Field') == 2
        assert server_inventory.delete_source('Field') == 0
        assert Inventory.load(cache_config.inventory_path).total_pictures == 0

    def test_save_failure_logged(self, server_inventory, mocker):
        """Test a failed snapshot write does not break the rescan."""
        mocker.patch.object(Inventory, 'save', side_effect=OSError('read-only'))

        changeset = server_inventory.rescan()

        assert len(changeset.adds) == 2

    def test_query(self, server_inventory):
        """Test queries go to the inventory."""
        server_inventory.rescan()
        source_id = server_inventory.get_source_ids(['Field', 'Nope'])

        pictures, has_more = server_inventory.query(source_ids=source_id, limit=1)

        assert len(pictures) == 1 and has_more is True
