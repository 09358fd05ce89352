"""API key management endpoints.

- POST /api: issue a key for a Slack identity and DM it to them
- DELETE /api: revoke the key presented in X-API-Key
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from cspp.api.dependencies import CredentialStoreDep, DispatcherDep, RevocableKeyDep
from cspp.errors import CsppError, NetworkAuthRequiredError, ValidationError
from cspp.services.api_key import key_prefix

logger = structlog.get_logger()

router = APIRouter()


# ---- Request/Response Models ----


class ApiKeyRequest(BaseModel):
    """Request body for key issuance."""

    slack_id: str = Field(..., min_length=1, description="Slack user ID to bind the key to")


class StatusResponse(BaseModel):
    status: str
    message: str | None = None


# ---- Endpoints ----


@router.post("/api", response_model=StatusResponse, response_model_exclude_none=True)
async def issue_api_key(
    request: Request,
    store: CredentialStoreDep,
    dispatcher: DispatcherDep,
) -> StatusResponse:
    """Issue a new API key and deliver it by Slack DM.

    The key itself is never returned in the response body.

    **Status Codes**:
    - 200: Key issued and delivered
    - 400: Body is not valid JSON or lacks slack_id
    - 502: Slack refused the DM (the new key is revoked again)
    """
    raw = await request.body()
    try:
        body = ApiKeyRequest.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError) as e:
        raise ValidationError("Request body must be JSON with a slack_id", details={"error": str(e)}) from e

    entry = store.issue(body.slack_id)
    try:
        await dispatcher.send_direct_message(body.slack_id, entry.api_key)
    except CsppError:
        logger.error(
            "api_key.delivery_failed",
            slack_id=body.slack_id,
            key_prefix=key_prefix(entry.api_key),
        )
        store.revoke(entry.api_key)
        raise

    return StatusResponse(status="ok", message="API key sent via direct message")


@router.delete("/api", response_model=StatusResponse, response_model_exclude_none=True)
async def revoke_api_key(
    api_key: RevocableKeyDep,
    store: CredentialStoreDep,
) -> StatusResponse:
    """Revoke the key presented in the X-API-Key header.

    **Status Codes**:
    - 200: Key revoked
    - 511: No key presented, or the key is unknown or already revoked
    """
    if not store.revoke(api_key):
        raise NetworkAuthRequiredError("API key is not valid")
    return StatusResponse(status="ok")
