"""
ImageProbe - Reads pixel dimensions and best-effort metadata from image files.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from PIL import ExifTags, Image

from .errors import DecodeFailure


@dataclass
class ImageInfo:
    """Result of probing one image file."""
    width: int
    height: int
    metadata: Optional[Dict[str, Any]] = None


class ImageProbe:
    """
    Opens images just far enough to read their header.

    Pillow parses the size from the header without decoding pixel data,
    so probing stays cheap even for very large originals.
    """

    SCALAR_TYPES = (str, int, float, bool)

    def __init__(self, extract_metadata: bool = True, logger: Optional[logging.Logger] = None):
        self.extract_metadata = extract_metadata
        self.logger = logger or logging.getLogger(__name__)

    def probe(self, path: str) -> ImageInfo:
        """
        Read dimensions and metadata of an image.

        Raises:
            DecodeFailure: If the file is not a readable image
        """
        try:
            with Image.open(path) as img:
                width, height = img.size
                metadata = self.read_metadata(img) if self.extract_metadata else None
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeFailure(f"Cannot decode {path}: {e}")
        return ImageInfo(width=width, height=height, metadata=metadata)

    def read_metadata(self, img: Image.Image) -> Optional[Dict[str, Any]]:
        """Return EXIF tags as a JSON-safe dict, or None when absent or unreadable."""
        try:
            exif = img.getexif()
        except Exception as e:
            self.logger.debug(f"Metadata unreadable for {img.filename}: {e}")
            return None
        if not exif:
            return None

        metadata = {}
        for tag_id, value in exif.items():
            name = ExifTags.TAGS.get(tag_id, str(tag_id))
            if isinstance(value, bytes):
                continue
            if isinstance(value, self.SCALAR_TYPES):
                metadata[name] = value.strip('\x00 ') if isinstance(value, str) else value
            else:
                try:
                    metadata[name] = float(value)
                except (TypeError, ValueError):
                    continue
        return metadata or None
