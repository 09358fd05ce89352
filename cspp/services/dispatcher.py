"""Messaging dispatcher interface.

The ingestion pipeline and key issuance only need three things from the
messaging backend:
- deliver a freshly issued key to its owner
- turn an identity into a display name (best effort)
- publish a validated image
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

UNKNOWN_AUTHOR = "Author Unknown (Error retrieving user info from slack)"


class Dispatcher(ABC):
    """Abstract messaging backend."""

    @abstractmethod
    async def send_direct_message(self, identity: str, key: str) -> None:
        """Send a newly issued API key to the identity that requested it.

        Raises:
            CsppError: If delivery failed.
        """
        ...

    @abstractmethod
    async def resolve_display_name(self, identity: str) -> str:
        """Human-readable name for an identity.

        Never raises; returns UNKNOWN_AUTHOR when the lookup fails.
        """
        ...

    @abstractmethod
    async def publish(self, file: Path, title: str, caption: str, channel: str) -> None:
        """Upload and announce an image.

        Raises:
            CsppError: If the upload failed.
        """
        ...
