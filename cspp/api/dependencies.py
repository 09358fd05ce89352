"""FastAPI dependencies for the CSPP API.

Provides dependency injection for:
- Settings
- Credential store and dispatcher (created once per app, kept on app.state)
- API key authentication for uploads and key management
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, Request

from cspp.config import Settings
from cspp.errors import NetworkAuthRequiredError, UnauthorizedError
from cspp.services.api_key import CredentialStore, key_prefix
from cspp.services.dispatcher import Dispatcher

logger = structlog.get_logger()

API_KEY_HEADER = "X-API-Key"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
CredentialStoreDep = Annotated[CredentialStore, Depends(get_credential_store)]
DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]


def require_upload_key(request: Request, store: CredentialStoreDep) -> str:
    """Authorize an upload by its X-API-Key header.

    Returns:
        The validated API key

    Raises:
        UnauthorizedError: Header missing, or key unknown, revoked or unreadable
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if not api_key:
        raise UnauthorizedError("API key required")

    valid, error = store.validate(api_key)
    if not valid:
        logger.info(
            "auth.upload_denied",
            key_prefix=key_prefix(api_key),
            reason=error.code if error else None,
        )
        raise UnauthorizedError("Invalid API key")

    logger.debug("auth.success", key_prefix=key_prefix(api_key))
    return api_key


def require_revocable_key(request: Request, store: CredentialStoreDep) -> str:
    """Authorize a key-management call by its X-API-Key header.

    Key management answers 511 rather than 401 when no usable key is
    presented: missing header, unknown key or already revoked key.

    Raises:
        NetworkAuthRequiredError
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if not api_key:
        raise NetworkAuthRequiredError("API key required")

    valid, error = store.validate(api_key)
    if not valid:
        raise NetworkAuthRequiredError(
            "API key is not valid",
            details={"reason": error.code if error else None},
        )
    return api_key


UploadKeyDep = Annotated[str, Depends(require_upload_key)]
RevocableKeyDep = Annotated[str, Depends(require_revocable_key)]
