"""Classification of files arriving in the uploads directory.

All predicates here are pure: they never move or modify files. Sweeping
invalid manifests out of the uploads directory is the ingestion engine's job.
"""

from __future__ import annotations

import json
import os
from enum import Enum
from pathlib import Path

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")
JSON_EXTENSIONS = (".json",)


class FileKind(str, Enum):
    """What a dropped file is, as far as ingestion cares."""

    IMAGE = "image"
    MANIFEST = "manifest"
    INVALID_JSON = "invalid_json"
    OTHER = "other"


def _name_of(name: str | os.PathLike[str]) -> str:
    return os.path.basename(os.fspath(name))


def _has_suffix(name: str | os.PathLike[str], suffixes: tuple[str, ...]) -> bool:
    lower = os.fspath(name).lower()
    return any(lower.endswith(ext) for ext in suffixes)


def is_image(name: str | os.PathLike[str]) -> bool:
    """Case-insensitive match against the supported image extensions."""
    return _has_suffix(name, IMAGE_EXTENSIONS)


def has_json_extension(name: str | os.PathLike[str]) -> bool:
    """Case-insensitive match against ``.json``."""
    return _has_suffix(name, JSON_EXTENSIONS)


def is_hidden(name: str | os.PathLike[str]) -> bool:
    """Dot-files are in-progress writes and never processed."""
    return _name_of(name).startswith(".")


def parses_as_json(path: str | os.PathLike[str]) -> bool:
    """Whether the file content is syntactically valid JSON."""
    try:
        with open(path, "rb") as f:
            json.load(f)
    except (OSError, ValueError):
        return False
    return True


def is_json(path: str | os.PathLike[str]) -> bool:
    """JSON-named file whose content parses as JSON."""
    return has_json_extension(path) and parses_as_json(path)


def classify(path: str | os.PathLike[str]) -> FileKind:
    """Classify a file in the uploads directory."""
    path = Path(path)
    if is_hidden(path):
        return FileKind.OTHER
    if is_image(path.name):
        return FileKind.IMAGE
    if has_json_extension(path.name):
        return FileKind.MANIFEST if parses_as_json(path) else FileKind.INVALID_JSON
    return FileKind.OTHER
