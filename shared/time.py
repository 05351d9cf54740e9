from datetime import datetime, timezone
from typing import Optional

# --- Internal override for testing ---
_current_time_override: Optional[datetime] = None


def utcnow() -> datetime:
    return _current_time_override or datetime.now(timezone.utc)


def set_fake_utcnow(fake_time: datetime) -> None:
    global _current_time_override
    _current_time_override = ensure_aware_utc(fake_time)


def clear_fake_utcnow() -> None:
    global _current_time_override
    _current_time_override = None


def ensure_aware_utc(dt: datetime) -> datetime:
    """Firestore returns aware datetimes, the memory store may hold naive ones: compare both as UTC."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
