"""UTC time helpers shared by the processor, stores and payload builders."""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as ISO-8601 UTC with a ``Z`` suffix.

    SQLite drops tzinfo on the way back out, so naive values are taken as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def expiration_timestamp(expires_in: int, now: Optional[datetime] = None) -> datetime:
    """Absolute expiry for something valid for *expires_in* seconds from *now*."""
    return (now or utc_now()) + timedelta(seconds=expires_in)
