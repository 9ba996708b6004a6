"""Unit tests for core/config.py -- the SECRET_KEY policy and session defaults."""

import pytest
from pydantic import ValidationError

from core.config import Settings

KEY = "k" * 40


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DEBUG", "SECRET_KEY", "SESSION_DURATION_SECONDS", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's local .env out of these tests.
    monkeypatch.setitem(Settings.model_config, "env_file", None)


def test_missing_secret_outside_debug_refuses_to_start():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings()


def test_debug_generates_a_secret():
    settings = Settings(debug=True)
    assert len(settings.secret_key) == 64
    assert Settings(debug=True).secret_key != settings.secret_key


def test_short_secret_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(secret_key="too-short")


def test_secret_from_environment(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", KEY)
    monkeypatch.setenv("SESSION_DURATION_SECONDS", "600")
    settings = Settings()
    assert settings.secret_key == KEY
    assert settings.session_duration_seconds == 600


def test_defaults():
    settings = Settings(secret_key=KEY)
    assert settings.session_duration_seconds == 12 * 60 * 60
    assert settings.login_rate_limit == "10/minute"
    assert settings.secure_cookies is False


@pytest.mark.parametrize("duration", [0, -1])
def test_non_positive_duration_rejected(duration):
    with pytest.raises(ValidationError, match="SESSION_DURATION_SECONDS"):
        Settings(secret_key=KEY, session_duration_seconds=duration)
