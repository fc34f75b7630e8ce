"""Timestamp helpers.

All timestamps are stored as UTC ISO-8601 strings with microsecond precision
and an explicit ``+00:00`` offset, so that lexical order in SQL equals
chronological order.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as UTC.

    Raises ValueError for malformed input.
    """
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValueError('Timestamp must be a string')
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Optional[str]) -> Optional[str]:
    return isoformat(parse_timestamp(value))
