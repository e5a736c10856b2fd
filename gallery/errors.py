"""
Error taxonomy shared by the walkers, the reconciler and the thumbnail cache.
"""

from typing import Optional


class GalleryError(Exception):
    """Base class for all errors raised by the gallery package."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source_name = source_name

    def __str__(self) -> str:
        if self.source_name:
            return f"{self.source_name}: {self.message}"
        return self.message


class PermissionDenied(GalleryError):
    """Access to a local source was revoked or never granted."""
    pass


class SourceUnreachable(GalleryError):
    """A remote endpoint failed; the crawl for that source halts."""
    pass


class DecodeFailure(GalleryError):
    """An image could not be decoded."""
    pass


class PathTraversal(GalleryError):
    """A requested path resolves outside of its source root."""
    pass


class NotFound(GalleryError):
    """A referenced source or asset does not exist."""
    pass


class ScanCancelled(GalleryError):
    """Raised inside a walk when the scan has been cancelled."""
    pass
