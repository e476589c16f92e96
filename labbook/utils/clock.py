"""Application clock.

Timestamps are stored as naive UTC so SQLite and PostgreSQL compare them the
same way.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
