"""
Time helpers - all persisted timestamps are naive UTC
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as naive UTC, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
