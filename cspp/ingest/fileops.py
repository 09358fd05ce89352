"""Filesystem helpers for the ingestion pipeline.

None of these raise on a single bad file: ingestion logs and moves on.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


def setup_directory(path: str | os.PathLike[str]) -> Path:
    """Create a directory and its parents; existing directories are fine."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("fileops.directory_ready", path=str(path))
    return path


def move_to_dir(src: str | os.PathLike[str], dest_dir: str | os.PathLike[str]) -> Path | None:
    """Move ``src`` into ``dest_dir`` keeping its file name.

    Returns:
        Destination path, or None if the move failed (already logged).
    """
    src = Path(src)
    dest = Path(dest_dir) / src.name
    try:
        # shutil.move handles cross-device moves that os.rename cannot
        shutil.move(os.fspath(src), os.fspath(dest))
    except OSError as e:
        logger.error(
            "fileops.move_failed",
            src=str(src),
            dest_dir=str(dest_dir),
            error=str(e),
        )
        return None

    logger.debug("fileops.moved", src=str(src), dest=str(dest))
    return dest


def pretty_print(value: Any) -> str:
    """Indented JSON rendering for diagnostics. Accepts None."""
    text = json.dumps(value, indent=2, default=str, sort_keys=True)
    logger.debug("fileops.pretty_print", value=text)
    return text
