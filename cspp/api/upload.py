"""Image upload endpoint.

Writes the image and its manifest into the uploads directory; the directory
watcher picks the manifest up from there, exactly as for a manual drop.
"""

from __future__ import annotations

import asyncio
import os
import secrets
from pathlib import Path

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from cspp.api.dependencies import SettingsDep, UploadKeyDep
from cspp.errors import ValidationError
from cspp.ingest.classifier import IMAGE_EXTENSIONS
from cspp.models.manifest import ImageInfo
from cspp.services.api_key import key_prefix
from cspp.utils.datetime import timestamp_ms

logger = structlog.get_logger()

router = APIRouter()


class UploadResponse(BaseModel):
    message: str


def _generate_stem() -> str:
    """Collision-resistant file stem: ms timestamp plus random suffix."""
    return f"{timestamp_ms()}-{secrets.token_hex(4)}"


def _write_submission(uploads_dir: Path, stem: str, ext: str, content: bytes, caption: str, api_key: str) -> Path:
    """Write image then manifest; the manifest appears atomically."""
    image_path = uploads_dir / f"{stem}{ext}"
    image_path.write_bytes(content)

    info = ImageInfo(
        image_path=str(image_path.resolve()),
        caption=caption,
        api_key=api_key,
    )
    manifest_path = uploads_dir / f"{stem}.json"
    tmp_path = uploads_dir / f".{stem}.json.tmp"
    tmp_path.write_text(info.model_dump_json(indent=2))
    os.replace(tmp_path, manifest_path)
    return manifest_path


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    request: Request,
    api_key: UploadKeyDep,
    settings: SettingsDep,
) -> UploadResponse:
    """Accept a multipart image upload.

    **Form fields**:
    - image: the image file (required; jpg, jpeg, png or gif)
    - caption: optional text posted with the image

    **Status Codes**:
    - 200: Upload stored and queued for publishing
    - 400: Missing image, unsupported file type or not a multipart body
    - 401: Missing, unknown or revoked API key
    """
    try:
        form = await request.form()
    except Exception as e:  # malformed or non-multipart body
        raise ValidationError("Expected a multipart form body", details={"error": str(e)}) from e

    image = form.get("image")
    if not isinstance(image, UploadFile):
        raise ValidationError("Missing form field: image")

    ext = Path(image.filename or "").suffix.lower()
    if ext not in IMAGE_EXTENSIONS:
        raise ValidationError(
            f"Unsupported image type: {ext or 'none'}",
            details={"allowed": list(IMAGE_EXTENSIONS)},
        )

    caption = form.get("caption")
    caption = caption if isinstance(caption, str) else ""

    content = await image.read()
    stem = _generate_stem()
    manifest = await asyncio.to_thread(
        _write_submission,
        Path(settings.paths.uploads_dir),
        stem,
        ext,
        content,
        caption,
        api_key,
    )

    logger.info(
        "upload.stored",
        manifest=manifest.name,
        size=len(content),
        key_prefix=key_prefix(api_key),
    )
    return UploadResponse(message="Upload successful")
