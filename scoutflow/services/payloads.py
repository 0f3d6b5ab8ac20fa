"""
Helpers for reading provider webhook payloads
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class MalformedEvent(ValueError):
    """The webhook body cannot be interpreted as a provider event."""


def dig(obj: Any, *path: str | int) -> Any:
    """
    Follow a key/index path through nested dicts and lists

    Returns None as soon as a step is missing or has the wrong type.
    """
    for step in path:
        if isinstance(step, int):
            if not isinstance(obj, list) or len(obj) <= step:
                return None
            obj = obj[step]
        else:
            if not isinstance(obj, dict):
                return None
            obj = obj.get(step)
        if obj is None:
            return None
    return obj


def as_str(value: Any) -> str | None:
    """Provider ids may arrive as numbers; empty values become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime

    Providers send "Z"-suffixed strings, sometimes with more than six
    fractional digits; the excess is truncated. Unparseable values are
    logged and returned as None.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip().replace("Z", "+00:00")
    date_part, dot, rest = text.partition(".")
    if dot:
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{date_part}.{digits[:6]}{rest}" if digits else f"{date_part}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        logger.error(f"Failed to parse datetime {value}: {e}")
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
