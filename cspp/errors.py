"""CSPP error types.

Error codes are stable strings for programmatic handling. Each error carries
the HTTP status it maps to when it escapes an API handler.
"""

from __future__ import annotations

from typing import Any


class CsppError(Exception):
    """Base error for all CSPP exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render as the JSON error body returned to HTTP clients."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details,
            }
        }


class ValidationError(CsppError):
    """Request validation error (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class UnauthorizedError(CsppError):
    """Authentication required (401)."""

    code = "unauthorized"
    message = "Authentication required"
    status_code = 401


class NotFoundError(CsppError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class CredentialNotFoundError(NotFoundError):
    """No credential file exists for the API key (404)."""

    code = "credential_not_found"
    message = "API key not found"


class CredentialCorruptError(CsppError):
    """Credential file exists but is not a valid entry (401).

    Unreadable credentials never authorize anything.
    """

    code = "credential_corrupt"
    message = "API key record is unreadable"
    status_code = 401


class RevokedKeyError(CsppError):
    """API key has been revoked (401)."""

    code = "revoked"
    message = "API key has been revoked"
    status_code = 401


class NetworkAuthRequiredError(CsppError):
    """No usable credential presented to a key-management endpoint (511)."""

    code = "network_authentication_required"
    message = "Network authentication required"
    status_code = 511


class SlackError(CsppError):
    """Error from the Slack Web API (502)."""

    code = "slack_error"
    message = "Slack request failed"
    status_code = 502


class RequestTimeoutError(CsppError):
    """Outbound call timed out (504).

    Note: Named to avoid shadowing Python's builtin TimeoutError.
    """

    code = "timeout"
    message = "Operation timed out"
    status_code = 504


class ConfigError(CsppError):
    """Invalid or missing configuration; the process refuses to start."""

    code = "config_error"
    message = "Invalid configuration"
    status_code = 500
