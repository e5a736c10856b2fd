"""Tests for CacheConfig class."""

from gallery.cache_config import CacheConfig


class TestCacheConfig:
    """Tests for CacheConfig class."""

    def test_defaults_valid(self):
        """Test default configuration validates."""
        config = CacheConfig()

        assert config.validate() == []
        assert config.tiers == (400, 800, 1600)

    def test_from_env(self, monkeypatch):
        """Test configuration from environment variables."""
        monkeypatch.setenv('CACHE_ROOT', '/var/cache/gallery')
        monkeypatch.setenv('CACHE_MAX_BYTES', '1000')
        monkeypatch.setenv('THUMBNAIL_TIERS', '800,200,400')
        monkeypatch.setenv('PREGEN_BATCH_SIZE', '9')

        config = CacheConfig.from_env()

        assert config.cache_dir == '/var/cache/gallery/thumbnails'
        assert config.inventory_path == '/var/cache/gallery/server-inventory.json'
        assert config.max_bytes == 1000
        assert config.tiers == (200, 400, 800)
        assert config.batch_size == 9

    def test_explicit_dir_overrides_root(self, monkeypatch):
        """Test CACHE_DIR wins over CACHE_ROOT."""
        monkeypatch.setenv('CACHE_ROOT', '/var/cache/gallery')
        monkeypatch.setenv('CACHE_DIR', '/srv/thumbs')

        assert CacheConfig.from_env().cache_dir == '/srv/thumbs'

    def test_validate_errors(self):
        """Test invalid values are reported."""
        config = CacheConfig(max_bytes=0, target_fraction=1.5, batch_size=0, quality=101)

        errors = config.validate()

        assert len(errors) == 4

    def test_validate_tiers(self):
        """Test tiers must be three increasing widths."""
        assert CacheConfig(tiers=(400, 800)).validate()
        assert CacheConfig(tiers=(800, 400, 1600)).validate()
        assert CacheConfig(tiers=(400, 400, 1600)).validate()
