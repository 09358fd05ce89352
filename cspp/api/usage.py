"""Usage documentation page."""

from __future__ import annotations

from functools import lru_cache
from importlib import resources

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from cspp.api.dependencies import SettingsDep

router = APIRouter()


@lru_cache
def _usage_template() -> str:
    return resources.files("cspp").joinpath("static/usage.html").read_text(encoding="utf-8")


@router.get("/usage", response_class=HTMLResponse)
async def usage(settings: SettingsDep) -> HTMLResponse:
    """Static HTML page explaining how to post images."""
    html = _usage_template().replace("{{BASE_URL}}", settings.public_base_url())
    return HTMLResponse(content=html)
