"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from fitness_tracker.config import Settings


def test_missing_stripe_secret_is_fatal(monkeypatch):
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)

    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None)

    assert "STRIPE_SECRET_KEY" in str(exc_info.value)


def test_defaults(monkeypatch):
    for name in ("STRIPE_WEBHOOK_SECRET", "ANALYSIS_WEBHOOK_URL", "WORKOUT_STORE_BACKEND", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_defaults")

    config = Settings(_env_file=None)

    assert config.STRIPE_WEBHOOK_SECRET == ""
    assert config.WORKOUT_STORE_BACKEND == "database"
    assert config.PORT == 3001
    assert config.ANALYSIS_WEBHOOK_URL.endswith("/webhook/workout-analysis")


def test_client_url_added_to_cors_origins(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_cors")
    monkeypatch.setenv("CLIENT_URL", "https://fitness.example.com")

    config = Settings(_env_file=None)

    assert "https://fitness.example.com" in config.cors_origins
    assert "http://localhost:3000" in config.cors_origins


def test_unknown_store_backend_rejected(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_backend")
    monkeypatch.setenv("WORKOUT_STORE_BACKEND", "memory")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
