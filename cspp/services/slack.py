"""Slack Web API dispatcher.

Pure HTTP client for the handful of Slack methods CSPP needs:
- chat.postMessage: DM a newly issued key
- users.info: resolve a display name for the image title
- files.getUploadURLExternal / files.completeUploadExternal: publish images
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import structlog

from cspp.config import SlackConfig
from cspp.errors import RequestTimeoutError, SlackError
from cspp.services.dispatcher import UNKNOWN_AUTHOR, Dispatcher
from cspp.services.http import http_client_manager

logger = structlog.get_logger()

DEFAULT_COMMENT = "New image uploaded to Slack!"
PROJECT_URL = "https://github.com/stahnma/mandatoryFun/tree/main/cspp"


def _get_shared_client() -> httpx.AsyncClient | None:
    """Get shared HTTP client if available.

    Returns None if client manager is not initialized (e.g., in tests).
    """
    try:
        return http_client_manager.client
    except RuntimeError:
        return None


def build_key_message(key: str, base_url: str) -> str:
    """Text of the DM that delivers a new API key."""
    msg = "You are on your way to :poop:posting!\n"
    msg += (
        f"Your <{PROJECT_URL}|CSPP> API key is:  `{key}`. "
        "Please keep it safe and do not share it with anyone. "
    )
    msg += "In most cases, you can use your key with the entire CSPP service via something like the following command:\n"
    cmd = "curl -X POST \\\n "
    cmd += '-F "image=@/path/to/file" \\\n '
    cmd += '-F "caption=String you want to with the picture" \\\n '
    cmd += '-H "X-API-KEY: $API_KEY" \\\n '
    cmd += f"{base_url}/upload\n"
    msg += f"```{cmd}```"
    msg += f"\n See {base_url}/usage for more details."
    return msg


class SlackDispatcher(Dispatcher):
    """Dispatcher backed by the Slack Web API."""

    def __init__(
        self,
        config: SlackConfig,
        *,
        base_url: str = "<service address>",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            config: Slack token, channel and API endpoint
            base_url: Public address of this service, quoted in key DMs
            client: HTTP client to use instead of the shared one
        """
        self._config = config
        self._api_base = config.api_base_url.rstrip("/")
        self._base_url = base_url
        self._client = client
        self._log = logger.bind(component="slack")

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self._client or _get_shared_client()
        try:
            if client is not None:
                return await client.request(method, url, timeout=self._config.timeout_seconds, **kwargs)
            # Fallback: temporary client when the shared one is not started
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as temp_client:
                return await temp_client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            self._log.error("slack.timeout", url=url, timeout=self._config.timeout_seconds)
            raise RequestTimeoutError(f"Slack request timed out: {url}")
        except (httpx.RequestError, httpx.InvalidURL) as e:
            self._log.error("slack.request_error", url=url, error=str(e))
            raise SlackError(f"Slack request error: {e}")

    async def _call(
        self,
        api_method: str,
        *,
        http_method: str = "POST",
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call a Slack Web API method and return its JSON payload.

        Raises:
            SlackError: HTTP error, non-JSON body, or ``ok: false``
            RequestTimeoutError: Request timed out
        """
        response = await self._send(
            http_method,
            f"{self._api_base}/{api_method}",
            headers={"Authorization": f"Bearer {self._config.token}"},
            params=params,
            data=data,
            json=json_body,
        )

        if response.status_code >= 400:
            self._log.error(
                "slack.request_failed",
                method=api_method,
                status=response.status_code,
                body=response.text,
            )
            raise SlackError(f"Slack request failed: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise SlackError(f"Slack returned non-JSON response for {api_method}")

        if not isinstance(payload, dict):
            self._log.error("slack.unexpected_payload", method=api_method, body=response.text)
            raise SlackError(f"Slack returned an unexpected response for {api_method}")

        if not payload.get("ok"):
            error = payload.get("error", "unknown_error")
            self._log.error("slack.api_error", method=api_method, error=error)
            raise SlackError(f"Slack {api_method} failed: {error}", details={"error": error})

        return payload

    # -- Dispatcher --

    async def send_direct_message(self, identity: str, key: str) -> None:
        await self._call(
            "chat.postMessage",
            json_body={
                "channel": identity,
                "text": build_key_message(key, self._base_url),
            },
        )
        self._log.info("slack.key_dm_sent", slack_id=identity)

    async def resolve_display_name(self, identity: str) -> str:
        if not identity:
            return UNKNOWN_AUTHOR
        try:
            payload = await self._call(
                "users.info",
                http_method="GET",
                params={"user": identity},
            )
        except (SlackError, RequestTimeoutError) as e:
            self._log.error("slack.user_lookup_failed", slack_id=identity, error=str(e))
            return UNKNOWN_AUTHOR

        user = payload.get("user") or {}
        profile = user.get("profile") or {}
        name = profile.get("display_name_normalized") or user.get("real_name")
        if not name:
            return UNKNOWN_AUTHOR
        self._log.debug("slack.user_resolved", slack_id=identity, display_name=name)
        return name

    async def publish(self, file: Path, title: str, caption: str, channel: str) -> None:
        file = Path(file)
        try:
            content = await asyncio.to_thread(file.read_bytes)
        except OSError as e:
            raise SlackError(f"Cannot read {file.name}: {e}", details={"file": str(file)}) from e
        comment = caption or DEFAULT_COMMENT

        ticket = await self._call(
            "files.getUploadURLExternal",
            data={"filename": file.name, "length": str(len(content))},
        )
        upload_url = ticket.get("upload_url")
        file_id = ticket.get("file_id")
        if not upload_url or not file_id:
            raise SlackError("Slack did not return an upload URL")

        response = await self._send(
            "POST",
            upload_url,
            files={"file": (file.name, content)},
        )
        if response.status_code >= 400:
            self._log.error(
                "slack.upload_failed",
                file=file.name,
                status=response.status_code,
            )
            raise SlackError(f"Slack file upload failed: {response.status_code}")

        await self._call(
            "files.completeUploadExternal",
            data={
                "files": json.dumps([{"id": file_id, "title": title}]),
                "channel_id": channel,
                "initial_comment": comment,
            },
        )
        self._log.info("slack.published", file=file.name, channel=channel, title=title)
