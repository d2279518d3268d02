"""
Tests for environment configuration.
"""

import pytest

import config
from config import BotConfig

ENV_VARS = [
    "DISCORD_BOT_TOKEN", "DATA_DIR", "TIMEZONE", "TICK_INTERVAL_MINUTES",
    "REMINDER_BATCH_SIZE", "REMINDER_BATCH_DELAY", "CLOSURE_BATCH_SIZE",
    "CLOSURE_BATCH_DELAY", "NOTIFICATION_MAX_RETRIES", "STALENESS_POLICY",
    "DEADLINE_LOOKBACK_HOURS", "DEADLINE_LOOKAHEAD_HOURS", "MEMBER_CACHE_TTL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "config", None)


def test_defaults(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")

    cfg = BotConfig.from_env()

    assert cfg.token == "token"
    assert cfg.timezone == "Asia/Tokyo"
    assert cfg.tick_interval_minutes == 15
    assert cfg.reminder_batch_size == 20
    assert cfg.reminder_batch_delay == 0.1
    assert cfg.closure_batch_size == 5
    assert cfg.closure_batch_delay == 1.0
    assert cfg.max_retries == 2
    assert cfg.staleness_policy == "adaptive"
    assert cfg.lookback_hours == 168
    assert cfg.lookahead_hours == 728
    assert cfg.member_cache_ttl == 300
    assert cfg.data_dir == "data"


def test_overrides(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("TICK_INTERVAL_MINUTES", "5")
    monkeypatch.setenv("CLOSURE_BATCH_DELAY", "2.5")
    monkeypatch.setenv("STALENESS_POLICY", " FLAT ")
    monkeypatch.setenv("DATA_DIR", "/var/lib/camppoll")

    cfg = BotConfig.from_env()

    assert cfg.tick_interval_minutes == 5
    assert cfg.closure_batch_delay == 2.5
    assert cfg.staleness_policy == "flat"
    assert cfg.data_dir == "/var/lib/camppoll"


def test_token_required():
    with pytest.raises(ValueError, match="DISCORD_BOT_TOKEN"):
        BotConfig.from_env()


def test_invalid_number_names_variable(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("REMINDER_BATCH_SIZE", "lots")

    with pytest.raises(ValueError, match="REMINDER_BATCH_SIZE"):
        BotConfig.from_env()


def test_invalid_policy(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("STALENESS_POLICY", "sometimes")

    with pytest.raises(ValueError, match="STALENESS_POLICY"):
        BotConfig.from_env()


def test_get_config_is_cached(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")

    assert config.get_config() is config.get_config()


def test_invalid_timezone(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("TIMEZONE", "Mars/Olympus")

    with pytest.raises(ValueError, match="TIMEZONE"):
        BotConfig.from_env()


def test_lookahead_below_longest_timing(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("DEADLINE_LOOKAHEAD_HOURS", "168")

    with pytest.raises(ValueError, match="DEADLINE_LOOKAHEAD_HOURS"):
        BotConfig.from_env()
