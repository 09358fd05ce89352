"""HTTP client service package.

Provides the shared HTTP client used to talk to the Slack Web API.
"""

from cspp.services.http.client import (
    HTTPClientManager,
    http_client_manager,
)

__all__ = [
    "HTTPClientManager",
    "http_client_manager",
]
