"""Time helpers shared by the server and the candidate client.

All timestamps are naive UTC, matching what the database stores.
"""

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def remaining_seconds(started_at: datetime, duration_minutes: int, now: datetime) -> int:
    """Whole seconds left, derived from the authoritative start time.

    ``remaining = max(0, duration - (now - started_at))``; never stored.
    """
    elapsed = (now - started_at).total_seconds()
    return max(0, math.floor(duration_minutes * 60 - elapsed))


def format_time(seconds: int) -> str:
    """Render a countdown as ``H:MM:SS`` or ``M:SS``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
