"""
Configuration management for CampPoll bot.
Handles environment variables and deadline scheduler settings.
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

from utils.validation import MIN_DEADLINE_LOOKAHEAD_HOURS, validate_timezone

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{value}'")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{value}'")


@dataclass
class BotConfig:
    """Bot configuration from environment variables."""
    token: str
    timezone: str = "Asia/Tokyo"
    tick_interval_minutes: int = 15

    # Dispatch profiles
    reminder_batch_size: int = 20
    reminder_batch_delay: float = 0.1
    closure_batch_size: int = 5
    closure_batch_delay: float = 1.0
    max_retries: int = 2

    # Deadline scanning
    staleness_policy: str = "adaptive"
    lookback_hours: int = 168
    lookahead_hours: int = MIN_DEADLINE_LOOKAHEAD_HOURS

    member_cache_ttl: int = 300

    # Data paths
    data_dir: str = "data"

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Create config from environment variables."""
        token = os.getenv("DISCORD_BOT_TOKEN")
        if not token:
            raise ValueError("DISCORD_BOT_TOKEN environment variable is required")

        policy = os.getenv("STALENESS_POLICY", "adaptive").strip().lower()
        if policy not in ("adaptive", "flat"):
            raise ValueError(f"STALENESS_POLICY must be 'adaptive' or 'flat', got '{policy}'")

        tz_result = validate_timezone(os.getenv("TIMEZONE", "Asia/Tokyo"))
        if not tz_result:
            raise ValueError(f"TIMEZONE: {tz_result.error_message}")

        lookahead_hours = _env_int("DEADLINE_LOOKAHEAD_HOURS", MIN_DEADLINE_LOOKAHEAD_HOURS)
        if lookahead_hours < MIN_DEADLINE_LOOKAHEAD_HOURS:
            raise ValueError(
                f"DEADLINE_LOOKAHEAD_HOURS must be at least {MIN_DEADLINE_LOOKAHEAD_HOURS}, got {lookahead_hours}"
            )

        return cls(
            token=token,
            timezone=tz_result.cleaned_value,
            tick_interval_minutes=_env_int("TICK_INTERVAL_MINUTES", 15),
            reminder_batch_size=_env_int("REMINDER_BATCH_SIZE", 20),
            reminder_batch_delay=_env_float("REMINDER_BATCH_DELAY", 0.1),
            closure_batch_size=_env_int("CLOSURE_BATCH_SIZE", 5),
            closure_batch_delay=_env_float("CLOSURE_BATCH_DELAY", 1.0),
            max_retries=_env_int("NOTIFICATION_MAX_RETRIES", 2),
            staleness_policy=policy,
            lookback_hours=_env_int("DEADLINE_LOOKBACK_HOURS", 168),
            lookahead_hours=lookahead_hours,
            member_cache_ttl=_env_int("MEMBER_CACHE_TTL", 300),
            data_dir=os.getenv("DATA_DIR", "data"),
        )

# Global config instance
config: Optional[BotConfig] = None

def get_config() -> BotConfig:
    """Get the global configuration instance."""
    global config
    if config is None:
        config = BotConfig.from_env()
    return config
