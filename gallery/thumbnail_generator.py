"""
ThumbnailGenerator - Handles image resizing and thumbnail generation.
"""

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps

from .errors import DecodeFailure, NotFound


class ThumbnailGenerator:
    """
    Generates JPEG thumbnails from original images using Pillow.

    The output is cropped to cover a box of the tier width and the source's
    aspect ratio, so only the width is quantized. Sources narrower than the
    tier are never upscaled.
    """

    CONTENT_TYPE = 'image/jpeg'

    def __init__(
        self,
        quality: int = 85,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize thumbnail generator.

        Args:
            quality: JPEG quality for output (default: 85)
            logger: Optional logger instance
        """
        self.quality = quality
        self.logger = logger or logging.getLogger(__name__)

    def generate(self, source_path: str, width: int) -> bytes:
        """
        Generate a thumbnail from an image file.

        Args:
            source_path: Absolute path of the original image
            width: Target width in pixels

        Returns:
            JPEG bytes

        Raises:
            NotFound: If the file does not exist
            DecodeFailure: If Pillow cannot decode the file
        """
        path = Path(source_path)
        if not path.is_file():
            raise NotFound(f"Image not found: {source_path}")

        try:
            with Image.open(path) as img:
                img.draft('RGB', (width, width))
                img = ImageOps.exif_transpose(img)
                img = self._convert_color_mode(img)
                size = self._target_size(img.size, width)
                img = ImageOps.fit(img, size, Image.Resampling.LANCZOS)

                output = io.BytesIO()
                img.save(output, format='JPEG', quality=self.quality, optimize=True)
                return output.getvalue()
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            self.logger.error(f"Error generating thumbnail for {source_path}: {e}")
            raise DecodeFailure(f"Cannot decode {path.name}: {e}") from e

    @staticmethod
    def _target_size(source_size, width: int):
        """Box of the tier width (capped at the source width) with the source aspect ratio."""
        src_w, src_h = source_size
        out_w = max(1, min(width, src_w))
        out_h = max(1, round(out_w * src_h / src_w)) if src_w else out_w
        return out_w, out_h

    def _convert_color_mode(self, img: Image.Image) -> Image.Image:
        """Convert image to appropriate color mode for output."""
        if img.mode in ('RGBA', 'LA'):
            background = Image.new('RGB', img.size, (255, 255, 255))
            if img.mode == 'LA':
                img = img.convert('RGBA')
            background.paste(img, mask=img.split()[-1])
            return background
        elif img.mode == 'P':
            img = img.convert('RGBA')
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        elif img.mode != 'RGB':
            return img.convert('RGB')
        return img
