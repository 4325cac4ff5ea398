"""Time source for the engine. Timestamps are naive UTC to match the stored columns."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
