"""Datetime helpers."""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utcnow_iso() -> str:
    """Return current UTC time as an ISO-8601 string (``...+00:00``)."""
    return datetime.now(UTC).isoformat()


def timestamp_ms() -> int:
    """Milliseconds since the epoch, used to name uploaded files."""
    return time.time_ns() // 1_000_000
