from datetime import datetime, timezone
from typing import Optional

# --- Internal override for testing ---
_current_time_override: Optional[datetime] = None


# === Time Access ===

def utcnow() -> datetime:
    return _current_time_override or datetime.now(timezone.utc)


def set_fake_utcnow(fake_time: datetime) -> None:
    global _current_time_override
    _current_time_override = fake_time


def clear_fake_utcnow() -> None:
    global _current_time_override
    _current_time_override = None


# === Store timestamps ===
# The realtime store keeps timestamps as epoch milliseconds.

def now_ms() -> int:
    return to_epoch_ms(utcnow())


def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
