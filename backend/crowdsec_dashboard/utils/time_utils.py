"""Timestamp utilities for LAPI payloads"""
import re
from datetime import datetime, timezone
from typing import Optional

# Go trims trailing zeros and emits up to nanoseconds; fromisoformat on 3.10
# only takes exactly 3 or 6 fraction digits
_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp into a naive UTC datetime

    Args:
        value: Timestamp such as "2024-01-15T12:00:00.123456789Z"

    Returns:
        Naive datetime in UTC, or None if the value is empty or invalid
    """
    if not value:
        return None
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
