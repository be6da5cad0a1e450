"""
Utility functions for ID generation and timestamps
"""
import itertools
import time
from datetime import datetime, timezone

_sequence = itertools.count(1)


def generate_session_id() -> str:
    """Generate a DJ session ID, unique for the process lifetime"""
    return f"dj_session_{int(time.time() * 1000)}_{next(_sequence)}"


def generate_track_id() -> str:
    """Generate a fallback track ID from the current time"""
    return f"track_{int(time.time() * 1000)}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime = None):
    """ISO-8601 with millisecond precision, or None"""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
