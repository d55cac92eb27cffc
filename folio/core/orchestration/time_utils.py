from __future__ import annotations

from datetime import date, datetime, timezone


def parse_iso(dt_str: str) -> datetime:
    text = str(dt_str).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def seconds_between(a_iso: str, b_iso: str) -> float:
    return (parse_iso(b_iso) - parse_iso(a_iso)).total_seconds()


def utc_date(value: datetime | int | float) -> date:
    """Calendar date of a timestamp in UTC (epoch seconds or aware datetime)."""
    if isinstance(value, datetime):
        dt = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    else:
        dt = datetime.fromtimestamp(int(value), tz=timezone.utc)
    return dt.astimezone(timezone.utc).date()
