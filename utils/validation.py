"""
Validation utilities for CampPoll bot.
Provides validation functions for schedules, reminder timings and mentions.
"""

import re
import logging
from typing import Any, List, Optional

from models import Schedule
from utils.time import FLAT_STALENESS, parse_timing_token, timing_to_hours, is_valid_timezone

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MAX_DATES_PER_SCHEDULE = 50
MAX_REMINDER_TIMINGS = 5
MAX_REMINDER_ADVANCE_DAYS = 30

# Scans must reach the longest accepted reminder through its whole freshness window
MIN_DEADLINE_LOOKAHEAD_HOURS = MAX_REMINDER_ADVANCE_DAYS * 24 + int(FLAT_STALENESS.total_seconds() // 3600)

_USER_MENTION = re.compile(r"^<@!?\d+>$")
_ROLE_MENTION = re.compile(r"^<@&\d+>$")
_USERNAME = re.compile(r"^@?[\w.\-]{2,32}$")


class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass


class ValidationResult:
    """Result of a validation operation."""

    def __init__(self, is_valid: bool, error_message: str = None, cleaned_value: Any = None):
        self.is_valid = is_valid
        self.error_message = error_message
        self.cleaned_value = cleaned_value

    def __bool__(self) -> bool:
        return self.is_valid

    def __str__(self) -> str:
        if self.is_valid:
            return "Valid"
        return f"Invalid: {self.error_message}"


def validate_timing_token(token: str) -> ValidationResult:
    """
    Validate a reminder timing token ("3d", "8h", "30m").

    Args:
        token: Token to validate

    Returns:
        ValidationResult with the token as cleaned value
    """
    if not token or not isinstance(token, str):
        return ValidationResult(False, "Timing token is required")

    if not parse_timing_token(token):
        return ValidationResult(
            False,
            f"Invalid timing '{token}'. Use a positive number followed by d, h or m (e.g., 3d, 8h, 30m)"
        )
    if timing_to_hours(token) > MAX_REMINDER_ADVANCE_DAYS * 24:
        return ValidationResult(
            False,
            f"Reminder timing '{token}' is more than {MAX_REMINDER_ADVANCE_DAYS} days before the deadline"
        )

    return ValidationResult(True, cleaned_value=token)


def validate_reminder_timings(tokens: Optional[List[str]]) -> ValidationResult:
    """
    Validate a list of custom reminder timings.

    Invalid tokens are dropped rather than failing the whole list; duplicates
    are collapsed keeping first-seen order. The result is invalid only when
    no usable token remains, in which case the caller falls back to defaults.

    Returns:
        ValidationResult whose cleaned value is the list of usable tokens
    """
    if not tokens:
        return ValidationResult(False, "No reminder timings given", cleaned_value=[])

    cleaned: List[str] = []
    for token in tokens:
        result = validate_timing_token(token)
        if not result:
            logger.debug(f"Dropping reminder timing: {result.error_message}")
            continue
        if result.cleaned_value not in cleaned:
            cleaned.append(result.cleaned_value)

    if not cleaned:
        return ValidationResult(False, "No valid reminder timings", cleaned_value=[])

    return ValidationResult(True, cleaned_value=cleaned)


def validate_mention(mention: str) -> ValidationResult:
    """Validate a reminder mention (@here, @everyone, <@id>, <@&id> or @username)."""
    if not mention or not isinstance(mention, str):
        return ValidationResult(False, "Mention is required")

    mention = mention.strip()
    if mention in ("@here", "@everyone"):
        return ValidationResult(True, cleaned_value=mention)
    if _USER_MENTION.match(mention) or _ROLE_MENTION.match(mention):
        return ValidationResult(True, cleaned_value=mention)
    if _USERNAME.match(mention):
        return ValidationResult(True, cleaned_value=mention)

    return ValidationResult(False, f"Invalid mention '{mention}'")


def validate_timezone(timezone_str: str) -> ValidationResult:
    """
    Validate timezone string.

    Args:
        timezone_str: Timezone string to validate

    Returns:
        ValidationResult with validation status
    """
    if not timezone_str or not isinstance(timezone_str, str):
        return ValidationResult(False, "Timezone string is required")

    timezone_str = timezone_str.strip()

    if not is_valid_timezone(timezone_str):
        return ValidationResult(
            False,
            f"Invalid timezone: '{timezone_str}'. Use IANA timezone names (e.g., Asia/Tokyo, Europe/Helsinki)"
        )

    return ValidationResult(True, cleaned_value=timezone_str)


def validate_schedule(schedule: Schedule) -> ValidationResult:
    """
    Validate a schedule before it is persisted.

    Checks title, date options (present, bounded, unique ids), the custom
    reminder timings and the mentions.
    """
    title = (schedule.title or "").strip()
    if not title:
        return ValidationResult(False, "Schedule title is required")
    if len(title) > MAX_TITLE_LENGTH:
        return ValidationResult(
            False,
            f"Schedule title too long. Maximum {MAX_TITLE_LENGTH} characters, got {len(title)}"
        )

    if not schedule.dates:
        return ValidationResult(False, "At least one date option is required")
    if len(schedule.dates) > MAX_DATES_PER_SCHEDULE:
        return ValidationResult(
            False,
            f"Too many date options. Maximum {MAX_DATES_PER_SCHEDULE}, got {len(schedule.dates)}"
        )

    date_ids = [date.id for date in schedule.dates]
    if len(set(date_ids)) != len(date_ids):
        return ValidationResult(False, "Date option ids must be unique")

    if len(schedule.reminder_timings) > MAX_REMINDER_TIMINGS:
        return ValidationResult(
            False,
            f"Too many reminder timings. Maximum {MAX_REMINDER_TIMINGS}, got {len(schedule.reminder_timings)}"
        )
    for token in schedule.reminder_timings:
        hours = timing_to_hours(token)
        if hours is not None and hours > MAX_REMINDER_ADVANCE_DAYS * 24:
            return ValidationResult(
                False,
                f"Reminder timing '{token}' is more than {MAX_REMINDER_ADVANCE_DAYS} days before the deadline"
            )

    for mention in schedule.reminder_mentions:
        result = validate_mention(mention)
        if not result:
            return result

    return ValidationResult(True, cleaned_value=schedule)


def validate_message_content(content: str, max_length: int = 2000) -> ValidationResult:
    """
    Validate Discord message content.

    Args:
        content: Message content to validate
        max_length: Maximum allowed length (Discord limit is 2000)

    Returns:
        ValidationResult with validation status
    """
    if not content:
        return ValidationResult(False, "Message content cannot be empty")

    if len(content) > max_length:
        return ValidationResult(
            False,
            f"Message too long. Maximum {max_length} characters, got {len(content)}"
        )

    return ValidationResult(True, cleaned_value=content)
