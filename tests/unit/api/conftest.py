"""Fixtures for HTTP API tests.

The app is driven through httpx.ASGITransport; the lifespan (watcher and
shared HTTP client) is not started.
"""

from __future__ import annotations

import httpx
import pytest

from cspp.main import create_app


@pytest.fixture
def app(settings, dispatcher):
    app = create_app(settings)
    app.state.dispatcher = dispatcher
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
