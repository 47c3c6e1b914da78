from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

"""
Timestamps are stored as naive UTC (lots' received_at, movements' occurred_at,
records' updated_at). FIFO lot order compares received_at directly, so every
value written must already be in UTC.
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an operator-entered ISO-8601 timestamp (e.g. a backdated receive).

    Blank input gives None. Offsets and a trailing Z are converted to UTC;
    a value without an offset is taken to be UTC already.
    """
    text = (value or "").strip()
    if not text:
        return None
    parsed = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z, for to_dict payloads."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
