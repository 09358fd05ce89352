"""Unit tests for the key management endpoints (POST/DELETE /api)."""

from __future__ import annotations

from cspp.api.dependencies import API_KEY_HEADER
from cspp.errors import SlackError


def credential_files(paths):
    return sorted(paths.credentials_dir.glob("*.json"))


class TestIssueKey:
    async def test_issues_key_and_sends_dm(self, client, paths, store, dispatcher):
        response = await client.post("/api", json={"slack_id": "U777"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "API key sent via direct message"}

        assert len(dispatcher.direct_messages) == 1
        slack_id, key = dispatcher.direct_messages[0]
        assert slack_id == "U777"
        assert key not in response.text

        assert credential_files(paths) == [store.path_for(key)]
        entry = store.load(key)
        assert entry.slack_id == "U777"
        assert entry.revoked is False

    async def test_each_request_issues_a_new_key(self, client, dispatcher):
        await client.post("/api", json={"slack_id": "U777"})
        await client.post("/api", json={"slack_id": "U777"})

        keys = {key for _, key in dispatcher.direct_messages}
        assert len(keys) == 2

    async def test_invalid_json(self, client, paths, dispatcher):
        response = await client.post(
            "/api",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert credential_files(paths) == []
        assert dispatcher.direct_messages == []

    async def test_missing_slack_id(self, client, paths):
        response = await client.post("/api", json={"user": "U777"})

        assert response.status_code == 400
        assert credential_files(paths) == []

    async def test_dm_failure_revokes_new_key(self, client, paths, store, dispatcher):
        dispatcher.dm_error = SlackError("Slack chat.postMessage failed: channel_not_found")

        response = await client.post("/api", json={"slack_id": "U777"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "slack_error"

        _, key = dispatcher.direct_messages[0]
        assert store.load(key).revoked is True
        assert store.validate(key)[0] is False


class TestRevokeKey:
    async def test_revokes_presented_key(self, client, store):
        entry = store.issue("U12345")

        response = await client.delete("/api", headers={API_KEY_HEADER: entry.api_key})

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert store.load(entry.api_key).revoked is True

    async def test_missing_header(self, client):
        response = await client.delete("/api")
        assert response.status_code == 511

    async def test_unknown_key_writes_nothing(self, client, paths):
        response = await client.delete(
            "/api", headers={API_KEY_HEADER: "00000000-0000-4000-8000-000000000000"}
        )

        assert response.status_code == 511
        assert credential_files(paths) == []

    async def test_already_revoked_key(self, client, store):
        entry = store.issue("U12345")
        store.revoke(entry.api_key)

        response = await client.delete("/api", headers={API_KEY_HEADER: entry.api_key})

        assert response.status_code == 511

    async def test_undecodable_credential_file(self, client, paths):
        key = "55555555-5555-4555-8555-555555555555"
        path = paths.credentials_dir / f"{key}.json"
        raw = b'{"api_key": "' + key.encode() + b'", "slack_id": "\xff\xfe", "revoked": false}'
        path.write_bytes(raw)

        response = await client.delete("/api", headers={API_KEY_HEADER: key})

        assert response.status_code == 511
        assert path.read_bytes() == raw

    async def test_credential_path_is_a_directory(self, client, paths):
        key = "66666666-6666-4666-8666-666666666666"
        (paths.credentials_dir / f"{key}.json").mkdir()

        response = await client.delete("/api", headers={API_KEY_HEADER: key})

        assert response.status_code == 511

    async def test_revoked_key_can_no_longer_upload(self, client, store):
        entry = store.issue("U12345")
        await client.delete("/api", headers={API_KEY_HEADER: entry.api_key})

        response = await client.post(
            "/upload",
            files={"image": ("cat.png", b"img", "image/png")},
            headers={API_KEY_HEADER: entry.api_key},
        )

        assert response.status_code == 401
