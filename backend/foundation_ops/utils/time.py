"""UTC clock and ISO 8601 conversions"""
from datetime import datetime, timezone, timedelta
from dateutil import parser as date_parser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # naive values are stored and exchanged as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """2025-03-01T10:00:00Z"""
    return _as_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Extended or basic ISO 8601, normalized to UTC"""
    return _as_utc(date_parser.isoparse(value))


def seconds_from_now(seconds: int) -> datetime:
    return utc_now() + timedelta(seconds=seconds)


def minutes_ago(minutes: int) -> datetime:
    return utc_now() - timedelta(minutes=minutes)
