"""
Pytest fixtures for gallery tests.
"""

import os

import pytest


@pytest.fixture
def make_image():
    """Fixture providing a factory that writes a Pillow image to disk."""
    from PIL import Image

    def _make(path, size=(120, 80), color='red', mode='RGB', fmt=None):
        path = str(path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        img = Image.new(mode, size, color=color)
        img.save(path, format=fmt)
        return path

    return _make


@pytest.fixture
def sample_image_bytes():
    """Fixture providing sample JPEG image bytes."""
    from PIL import Image
    import io

    img = Image.new('RGB', (100, 100), color='red')
    buffer = io.BytesIO()
    img.save(buffer, format='JPEG')
    return buffer.getvalue()


@pytest.fixture
def picture_folder(tmp_path, make_image):
    """
    Fixture providing a folder of pictures:

        a.jpg, b.png, sub/c.jpg, raw/d.jpg, .hidden.jpg, notes.txt
    """
    root = tmp_path / 'pictures'
    make_image(root / 'a.jpg', size=(200, 100))
    make_image(root / 'b.png', size=(50, 50), mode='RGBA', color=(0, 0, 255, 128))
    make_image(root / 'sub' / 'c.jpg', size=(30, 60))
    make_image(root / 'raw' / 'd.jpg', size=(10, 10))
    make_image(root / '.hidden.jpg')
    (root / 'notes.txt').write_text('not a picture')
    return root


@pytest.fixture
def local_source(picture_folder):
    """Fixture providing a recursive local source over picture_folder."""
    from gallery.picture_record import DataSource

    return DataSource(
        id=1,
        kind='local',
        name='Local Pictures',
        path=str(picture_folder),
        include_subfolders=True,
    )


@pytest.fixture
def remote_source():
    """Fixture providing a paginated remote GET source."""
    from gallery.picture_record import DataSource, FieldMapping, RemoteConfig

    return DataSource(
        id=2,
        kind='remote',
        name='Remote API',
        remote=RemoteConfig(
            url='https://api.example.com/photos?page={{page}}',
            field_mapping=FieldMapping(url='image.url', name='title', modified='updated'),
            headers={'Authorization': 'Bearer secret'},
            response_path='data.items',
            base_url='https://cdn.example.com/',
        ),
    )


@pytest.fixture
def mock_session(mocker):
    """Fixture providing a mocked requests.Session with queued JSON pages."""
    session = mocker.MagicMock()

    def queue_pages(*pages):
        responses = []
        for page in pages:
            response = mocker.MagicMock()
            response.raise_for_status.return_value = None
            response.json.return_value = page
            responses.append(response)
        session.get.side_effect = responses
        session.post.side_effect = responses

    session.queue_pages = queue_pages
    return session


@pytest.fixture
def sample_records():
    """Fixture providing records of two sources."""
    from gallery.picture_record import PictureRecord

    return [
        PictureRecord(source_id=1, name='a.jpg', identifier='a.jpg', modified=1000, size=100, id=1),
        PictureRecord(source_id=1, name='b.jpg', identifier='b.jpg', modified=3000, size=200, id=2),
        PictureRecord(source_id=2, name='Sunset.jpg', identifier='https://x/sunset.jpg', modified=2000, id=3),
    ]


@pytest.fixture
def sample_inventory(sample_records):
    """Fixture providing an inventory with one local and one remote source."""
    from gallery.inventory import Inventory
    from gallery.picture_record import DataSource

    inventory = Inventory.create_new([
        DataSource(id=1, kind='local', name='Local', path='/pictures'),
        DataSource(id=2, kind='remote', name='Remote'),
    ])
    inventory.pictures = list(sample_records)
    inventory.next_picture_id = 4
    inventory.recount()
    return inventory


@pytest.fixture
def cache_config(tmp_path):
    """Fixture providing a cache configuration rooted in tmp_path."""
    from gallery.cache_config import CacheConfig

    return CacheConfig(
        cache_dir=str(tmp_path / 'cache' / 'thumbnails'),
        metadata_path=str(tmp_path / 'cache' / 'metadata.json'),
        inventory_path=str(tmp_path / 'cache' / 'inventory.json'),
        batch_delay=0,
        idle_seconds=5,
    )


class FakeClock:
    """Settable time source."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    """Fixture providing a settable clock."""
    return FakeClock()


@pytest.fixture
def metadata_store(cache_config, clock):
    """Fixture providing an empty cache metadata store."""
    from gallery.cache_metadata import CacheMetadataStore

    return CacheMetadataStore(cache_config.cache_dir, cache_config.metadata_path, clock=clock)


@pytest.fixture
def server_root(tmp_path, make_image):
    """Fixture providing a server mount root with one source folder."""
    root = tmp_path / 'mount'
    make_image(root / 'Field' / 'beetle.jpg', size=(1200, 800))
    make_image(root / 'Field' / 'nested' / 'moth.png', size=(300, 600))
    return root


@pytest.fixture
def thumbnail_cache(cache_config, metadata_store, server_root):
    """Fixture providing a thumbnail cache serving the 'Field' source."""
    from gallery.thumbnail_cache import ThumbnailCache

    roots = {'Field': str(server_root / 'Field')}
    return ThumbnailCache(cache_config, metadata_store, roots.get)


@pytest.fixture
def logger():
    """Fixture providing a logger."""
    import logging
    return logging.getLogger('test')
