"""
Conversions from LAPI decision fields to stored values.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from crowdsec_dashboard.schemas.lapi_schemas import LapiDecision
from crowdsec_dashboard.services.geolocation import lookup_country
from crowdsec_dashboard.utils.time_utils import parse_rfc3339

# Go-style duration components, e.g. "3h59m43.191505609s". The minutes
# pattern must not match the "m" of a "ms" suffix.
DURATION_HOURS_RE = re.compile(r"([\d.]+)h")
DURATION_MINUTES_RE = re.compile(r"([\d.]+)m(?!s)")
DURATION_SECONDS_RE = re.compile(r"([\d.]+)s")

_UNIT_MS = (
    (DURATION_HOURS_RE, 3_600_000),
    (DURATION_MINUTES_RE, 60_000),
    (DURATION_SECONDS_RE, 1_000),
)


def parse_duration_ms(duration: Optional[str]) -> float:
    """
    Parse a Go-style duration string into milliseconds.

    Each unit is extracted independently and summed; a unit that is missing
    or does not parse contributes zero. A leading "-" (already expired)
    negates the whole value.

    >>> parse_duration_ms("1h30m")
    5400000.0
    """
    if not duration:
        return 0.0

    text = duration.strip()
    sign = -1 if text.startswith("-") else 1

    total = 0.0
    for pattern, unit_ms in _UNIT_MS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            total += float(match.group(1)) * unit_ms
        except ValueError:
            continue
    return sign * total


def compute_expires_at(decision: LapiDecision, now: Optional[datetime] = None) -> datetime:
    """Expiry from ``until`` when LAPI sends it, else now + remaining duration"""
    until = parse_rfc3339(decision.until)
    if until is not None:
        return until
    now = now or datetime.utcnow()
    return now + timedelta(milliseconds=parse_duration_ms(decision.duration))


__all__ = [
    "parse_duration_ms",
    "compute_expires_at",
    "lookup_country",
]
