"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from paysync.core.settings import Settings


def test_defaults(monkeypatch) -> None:
    """Only the database URL is required; everything else has a default."""
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://localhost/paysync")
    settings = Settings(_env_file=None)
    expected = {
        "poll_interval_seconds": 10,
        "shutdown_timeout_seconds": 30,
        "account_batch_size": 5,
        "discovery_batch_size": 1,
        "extraction_batch_size": 3,
        "max_messages_per_account": 10000,
        "messages_per_page": 50,
        "initial_sync_days": 365,
        "token_refresh_window_seconds": 300,
    }
    for name, value in expected.items():
        if getattr(settings, name) != value:
            msg = f"Expected {name}={value}, got {getattr(settings, name)}"
            raise AssertionError(msg)


def test_environment_overrides(monkeypatch) -> None:
    """Environment variables override defaults, case-insensitively."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "3")
    monkeypatch.setenv("LLM_STREAM", "true")
    settings = Settings(_env_file=None)
    if settings.poll_interval_seconds != 3 or settings.llm_stream is not True:  # noqa: PLR2004
        msg = f"Expected overrides to apply, got {settings}"
        raise AssertionError(msg)


def test_database_url_is_required(monkeypatch) -> None:
    """Without a database URL the settings refuse to load."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
