"""Clock and identifier helpers."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """Generate an opaque, time-sortable identifier.

    12 hex chars of millisecond timestamp followed by 20 random hex chars,
    so lexical order follows creation order at millisecond resolution.
    """
    millis = time.time_ns() // 1_000_000
    return f"{millis:012x}{uuid.uuid4().hex[:20]}"
