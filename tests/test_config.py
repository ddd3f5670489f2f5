from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from conversion_service.config import ConfigurationError, Settings

ENV_VARS = (
    "APP_ENV",
    "RATE_LIMIT_ENABLED",
    "RATE_LIMIT_WINDOW",
    "RATE_LIMIT_MAX",
    "RATE_LIMIT_SWEEP_INTERVAL",
    "RATE_LIMIT_BACKEND",
    "UPLOADS_DIR",
    "CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_production_defaults():
    settings = Settings()
    assert settings.environment == "production"
    assert settings.rate_limit_enabled is True
    assert settings.rate_limit_window_ms == 900_000
    assert settings.rate_limit_max_requests == 100
    assert settings.rate_limit_sweep_interval_ms == 900_000
    assert settings.rate_limit_backend == "memory"
    assert settings.uploads_dir == Path("uploads")
    assert settings.cors_origins == ("*",)
    assert settings.validate() == []


def test_only_the_literal_false_disables_limiting(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    assert Settings().rate_limit_enabled is False
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "0")
    assert Settings().rate_limit_enabled is True


def test_environment_profiles(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    assert Settings().rate_limit_enabled is False
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    assert Settings().rate_limit_enabled is True

    monkeypatch.setenv("APP_ENV", "development")
    assert Settings().rate_limit_max_requests == 1000


def test_values_are_read_from_the_environment(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_WINDOW", "60000")
    monkeypatch.setenv("RATE_LIMIT_MAX", "5")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    settings = Settings()
    assert settings.rate_limit_window_ms == 60_000
    assert settings.rate_limit_max_requests == 5
    assert settings.cors_origins == ("https://a.example", "https://b.example")


def test_check_reports_every_problem():
    settings = replace(Settings(), rate_limit_window_ms=0, rate_limit_backend="memcached", http_port=0)
    with pytest.raises(ConfigurationError) as excinfo:
        settings.check()
    message = str(excinfo.value)
    assert "Invalid server port" in message
    assert "Invalid rate limit window" in message
    assert "Unknown rate limit backend: memcached" in message


def test_disabled_limiter_skips_limit_checks():
    settings = replace(Settings(), rate_limit_enabled=False, rate_limit_max_requests=0)
    assert settings.check() is settings
