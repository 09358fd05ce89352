"""Data models."""

from cspp.models.api_key import ApiEntry
from cspp.models.manifest import ImageInfo

__all__ = ["ApiEntry", "ImageInfo"]
