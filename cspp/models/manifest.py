"""Submission manifest model.

A manifest is the JSON sidecar dropped next to an image:
``{"image_path": "...", "caption": "...", "api_key": "..."}``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ImageInfo(BaseModel):
    """One image submission."""

    model_config = ConfigDict(extra="ignore")

    image_path: str = Field(..., min_length=1)
    caption: str = ""
    api_key: str = Field(..., min_length=1)

    def resolve_image(self, uploads_dir: Path) -> Path:
        """Absolute image path; relative paths are taken from the uploads dir."""
        path = Path(self.image_path)
        if not path.is_absolute():
            path = uploads_dir / path
        return path
