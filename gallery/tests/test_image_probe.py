"""Tests for ImageProbe and picture records."""

import pytest
from PIL import Image

from gallery.errors import DecodeFailure
from gallery.image_probe import ImageProbe
from gallery.picture_record import DataSource, PictureRecord


class TestImageProbe:
    """Tests for ImageProbe class."""

    def test_dimensions(self, make_image, tmp_path):
        """Test width and height are read from the header."""
        path = make_image(tmp_path / 'a.png', size=(64, 48))

        info = ImageProbe().probe(path)

        assert (info.width, info.height) == (64, 48)
        assert info.metadata is None

    def test_exif_metadata(self, tmp_path):
        """Test EXIF tags become a JSON-safe dict."""
        img = Image.new('RGB', (20, 10))
        exif = Image.Exif()
        exif[0x010F] = 'Nikon\x00'
        exif[0x0110] = 'D850'
        path = tmp_path / 'exif.jpg'
        img.save(path, exif=exif)

        info = ImageProbe().probe(str(path))

        assert info.metadata == {'Make': 'Nikon', 'Model': 'D850'}

    def test_metadata_disabled(self, tmp_path):
        """Test metadata extraction can be turned off."""
        img = Image.new('RGB', (20, 10))
        exif = Image.Exif()
        exif[0x010F] = 'Nikon'
        path = tmp_path / 'exif.jpg'
        img.save(path, exif=exif)

        assert ImageProbe(extract_metadata=False).probe(str(path)).metadata is None

    def test_decode_failure(self, tmp_path):
        """Test unreadable files raise DecodeFailure."""
        path = tmp_path / 'bad.jpg'
        path.write_bytes(b'\xff\xd8garbage')

        with pytest.raises(DecodeFailure):
            ImageProbe().probe(str(path))


class TestPictureRecord:
    """Tests for PictureRecord and DataSource classes."""

    def test_identity_and_fingerprint(self):
        """Test identity ignores the display name."""
        record = PictureRecord(1, 'Sunset', 'a/b.jpg', 1000, 10)

        assert record.key == (1, 'a/b.jpg')
        assert record.matches(1000, 10)
        assert not record.matches(1000, 11)

    def test_source_from_dict(self, remote_source):
        """Test sources survive serialization."""
        assert DataSource.from_dict(remote_source.to_dict()) == remote_source

    def test_unknown_kind(self):
        """Test unknown source kinds are rejected."""
        with pytest.raises(ValueError):
            DataSource.from_dict({'id': 1, 'kind': 'ftp', 'name': 'x'})

    def test_unsupported_method(self, remote_source):
        """Test remote sources only speak GET and POST."""
        data = remote_source.to_dict()
        data['remote']['method'] = 'PUT'

        with pytest.raises(ValueError):
            DataSource.from_dict(data)
