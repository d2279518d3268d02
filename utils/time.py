"""
Time utilities for CampPoll bot.
Provides timezone-aware date/time operations and reminder timing tokens.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

TIMING_TOKEN_PATTERN = re.compile(r"^(\d+)([dhm])$")

# Hours per unit of a timing token
_UNIT_HOURS = {"d": 24.0, "h": 1.0, "m": 1.0 / 60.0}

FLAT_STALENESS = timedelta(hours=8)
CLOSURE_STALENESS = timedelta(hours=8)


class StalenessPolicy(Enum):
    """How late a due reminder may fire before it is skipped."""
    FLAT = "flat"
    ADAPTIVE = "adaptive"


def utc_now() -> datetime:
    """Get the current time in UTC."""
    return datetime.now(timezone.utc)

def parse_timing_token(token: str) -> Optional[Tuple[int, str]]:
    """
    Parse a reminder timing token such as "3d", "8h" or "30m".

    Args:
        token: Timing token

    Returns:
        Tuple of (value, unit) or None if invalid. Zero values are invalid.
    """
    if not isinstance(token, str):
        return None
    match = TIMING_TOKEN_PATTERN.fullmatch(token)
    if not match:
        return None
    value = int(match.group(1))
    if value <= 0:
        return None
    return (value, match.group(2))

def timing_to_hours(token: str) -> Optional[float]:
    """Convert a timing token to hours before the deadline."""
    parsed = parse_timing_token(token)
    if not parsed:
        return None
    value, unit = parsed
    return value * _UNIT_HOURS[unit]

def timing_label(token: str) -> str:
    """Human label for a timing token ("回答締切まで残り3日")."""
    parsed = parse_timing_token(token)
    if not parsed:
        return f"回答締切まで残り{token}"
    value, unit = parsed
    suffix = {"d": "日", "h": "時間", "m": "分"}[unit]
    return f"回答締切まで残り{value}{suffix}"

def staleness_threshold(token: str, policy: StalenessPolicy = StalenessPolicy.ADAPTIVE) -> timedelta:
    """
    Maximum lateness allowed for a due reminder before it is skipped.

    FLAT uses 8 hours for every token. ADAPTIVE scales with granularity:
    day tokens 8h, hour tokens max(2h, 25% of T), minute tokens max(30m, 50% of T).
    """
    if policy == StalenessPolicy.FLAT:
        return FLAT_STALENESS

    parsed = parse_timing_token(token)
    if not parsed:
        return FLAT_STALENESS

    value, unit = parsed
    if unit == "d":
        return FLAT_STALENESS
    if unit == "h":
        return max(timedelta(hours=2), timedelta(hours=value * 0.25))
    return max(timedelta(minutes=30), timedelta(minutes=value * 0.5))

def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is valid."""
    try:
        ZoneInfo(tz_name)
        return True
    except Exception as e:
        logger.warning(f"Invalid timezone '{tz_name}': {e}")
        return False

def format_datetime(dt: datetime, include_timezone: bool = True, tz_name: Optional[str] = None) -> str:
    """
    Format datetime for display.

    Args:
        dt: Datetime to format
        include_timezone: Whether to include timezone info
        tz_name: Optional timezone to convert to before formatting

    Returns:
        Formatted datetime string
    """
    if tz_name and is_valid_timezone(tz_name):
        dt = dt.astimezone(ZoneInfo(tz_name))
    if include_timezone:
        return dt.strftime("%Y-%m-%d %H:%M %Z")
    else:
        return dt.strftime("%Y-%m-%d %H:%M")

def to_unix_timestamp(dt: datetime) -> int:
    """
    Convert a datetime object to Unix timestamp (seconds since epoch).

    Args:
        dt: Datetime object (timezone-aware)

    Returns:
        Unix timestamp as an integer
    """
    return int(dt.timestamp())

def get_discord_timestamp(dt: datetime, style: str = "f") -> str:
    """
    Get a Discord-formatted timestamp for a datetime.

    Args:
        dt: Timezone-aware datetime
        style: Discord timestamp style (t=short time, T=long time, d=short date,
               D=long date, f=short date/time, F=long date/time, R=relative)

    Returns:
        Discord-formatted timestamp string (<t:timestamp:style>)
    """
    return f"<t:{to_unix_timestamp(dt)}:{style}>"
