"""
Tests for validation utilities.
"""

import pytest

from models import DateOption, Schedule
from utils.validation import (
    ValidationResult, validate_mention, validate_message_content,
    validate_reminder_timings, validate_schedule, validate_timezone,
    validate_timing_token,
)


def make_schedule(**kwargs):
    defaults = dict(
        id="s1",
        group_id="g1",
        channel_id="c1",
        title="Camp",
        author_id="a1",
        dates=[DateOption("d1", "5/1")],
    )
    defaults.update(kwargs)
    return Schedule(**defaults)


class TestValidationResult:
    """Test ValidationResult class."""

    def test_valid_result(self):
        result = ValidationResult(True, cleaned_value="test")
        assert result.is_valid
        assert bool(result) is True
        assert result.cleaned_value == "test"
        assert str(result) == "Valid"

    def test_invalid_result(self):
        result = ValidationResult(False, "Error message")
        assert not result.is_valid
        assert bool(result) is False
        assert result.error_message == "Error message"
        assert str(result) == "Invalid: Error message"


class TestTimingValidation:
    """Test reminder timing validation."""

    def test_valid_token(self):
        result = validate_timing_token("6h")
        assert result.is_valid
        assert result.cleaned_value == "6h"

    def test_padded_token_rejected(self):
        assert not validate_timing_token(" 6h")
        assert not validate_timing_token("6h ")

    def test_token_bounds(self):
        assert validate_timing_token("30d")
        assert validate_timing_token("720h")
        assert not validate_timing_token("721h")
        assert not validate_timing_token("31d")

    def test_invalid_token(self):
        for token in ["", "6", "6x", "0m"]:
            result = validate_timing_token(token)
            assert not result.is_valid, f"Token {token!r} should be invalid"

    def test_list_drops_invalid_and_duplicates(self):
        result = validate_reminder_timings(["1d", "bogus", "1d", "12h"])

        assert result.is_valid
        assert result.cleaned_value == ["1d", "12h"]

    def test_list_with_nothing_usable(self):
        for tokens in (None, [], ["x", "0d"]):
            result = validate_reminder_timings(tokens)
            assert not result.is_valid
            assert result.cleaned_value == []


class TestMentionValidation:

    def test_valid_mentions(self):
        for mention in ["@here", "@everyone", "<@123>", "<@!123>", "<@&456>", "@alice", "bob.smith"]:
            assert validate_mention(mention).is_valid, f"Mention {mention} should be valid"

    def test_invalid_mentions(self):
        for mention in ["", "@", "<@abc>", "@" + "x" * 40]:
            assert not validate_mention(mention).is_valid, f"Mention {mention!r} should be invalid"


class TestScheduleValidation:

    def test_valid_schedule(self):
        assert validate_schedule(make_schedule(reminder_timings=["2d", "bad"])).is_valid

    def test_title_required(self):
        assert not validate_schedule(make_schedule(title="   "))

    def test_title_too_long(self):
        result = validate_schedule(make_schedule(title="a" * 101))
        assert not result
        assert "too long" in result.error_message

    def test_dates_required(self):
        assert not validate_schedule(make_schedule(dates=[]))

    def test_too_many_dates(self):
        dates = [DateOption(f"d{i}", str(i)) for i in range(51)]
        assert not validate_schedule(make_schedule(dates=dates))

    def test_duplicate_date_ids(self):
        dates = [DateOption("d1", "a"), DateOption("d1", "b")]
        assert not validate_schedule(make_schedule(dates=dates))

    def test_too_many_timings(self):
        assert not validate_schedule(make_schedule(reminder_timings=["1d", "2d", "3d", "4d", "5d", "6d"]))

    def test_timing_too_far_ahead(self):
        assert validate_schedule(make_schedule(reminder_timings=["30d"]))
        assert not validate_schedule(make_schedule(reminder_timings=["31d"]))

    def test_invalid_mention(self):
        assert not validate_schedule(make_schedule(reminder_mentions=["<@abc>"]))


class TestTimezoneValidation:

    def test_valid(self):
        result = validate_timezone("Asia/Tokyo")
        assert result.is_valid
        assert result.cleaned_value == "Asia/Tokyo"

    def test_invalid(self):
        assert not validate_timezone("Invalid/Zone")
        assert not validate_timezone("")


class TestMessageValidation:

    def test_valid_message(self):
        assert validate_message_content("hello").is_valid

    def test_empty_message(self):
        assert not validate_message_content("")

    def test_too_long(self):
        result = validate_message_content("a" * 2001)
        assert not result
        assert "too long" in result.error_message
