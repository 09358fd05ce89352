"""Unit tests for the usage page and service plumbing endpoints."""

from __future__ import annotations


class TestUsagePage:
    async def test_renders_html_with_base_url(self, client, settings):
        settings.server.base_url = "https://cspp.example.com/"

        response = await client.get("/usage")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "https://cspp.example.com/upload" in response.text
        assert "{{BASE_URL}}" not in response.text

    async def test_placeholder_without_base_url(self, client):
        response = await client.get("/usage")

        assert response.status_code == 200
        assert "&lt;service address&gt;/upload" in response.text or "<service address>/upload" in response.text


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

    async def test_request_id_in_error_body(self, client):
        response = await client.post(
            "/upload",
            files={"image": ("cat.png", b"img", "image/png")},
            headers={"X-Request-Id": "req-456"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["request_id"] == "req-456"
