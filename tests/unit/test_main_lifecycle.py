"""Unit tests for CSPP app lifecycle wiring in cspp.main."""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from cspp import main as main_module
from cspp.config import PathsConfig, Settings


@pytest.mark.asyncio
async def test_lifespan_wires_startup_and_shutdown_in_order(monkeypatch: pytest.MonkeyPatch, tmp_path):
    events: list[str] = []

    async def start_ingestion(app) -> None:  # noqa: ANN001
        events.append("start_ingestion")

    async def stop_ingestion(app) -> None:  # noqa: ANN001
        events.append("stop_ingestion")

    class FakeHTTPClientManager:
        async def startup(self) -> None:
            events.append("http_startup")

        async def shutdown(self) -> None:
            events.append("http_shutdown")

    monkeypatch.setattr(main_module, "start_ingestion", start_ingestion)
    monkeypatch.setattr(main_module, "stop_ingestion", stop_ingestion)
    monkeypatch.setattr(main_module, "http_client_manager", FakeHTTPClientManager())

    paths = PathsConfig(data_dir=tmp_path / "fresh")
    settings = Settings(paths=paths)

    app = SimpleNamespace(state=SimpleNamespace(settings=settings))
    async with main_module.lifespan(app):
        events.append("inside")
        assert all(d.is_dir() for d in paths.all_dirs())

    assert events == [
        "http_startup",
        "start_ingestion",
        "inside",
        "stop_ingestion",
        "http_shutdown",
    ]


@pytest.mark.asyncio
async def test_ingestion_starts_and_stops_with_app(settings, dispatcher):
    app = main_module.create_app(settings)
    app.state.dispatcher = dispatcher

    await main_module.start_ingestion(app)
    try:
        assert app.state.engine.is_running
        assert app.state.watcher.is_watching
    finally:
        await main_module.stop_ingestion(app)

    assert app.state.engine.is_running is False
    assert app.state.watcher.is_watching is False
    assert app.state.watcher_task.done()


@pytest.mark.asyncio
async def test_create_app_serves_health(settings):
    app = main_module.create_app(settings)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert "X-Request-Id" in response.headers
