"""Tests for Settings."""

import pytest

from billing_sync.config import Settings


@pytest.mark.parametrize(
    "environment, override, expected",
    [
        ("development", None, True),
        ("production", None, False),
        ("preview", None, False),
        ("production", True, True),
        ("development", False, False),
    ],
)
def test_should_notify(environment, override, expected):
    settings = Settings(_env_file=None, environment=environment, notifications_enabled=override)

    assert settings.should_notify is expected


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_env")
    monkeypatch.setenv("ENVIRONMENT", "production")

    settings = Settings(_env_file=None)

    assert settings.stripe_webhook_secret == "whsec_env"
    assert settings.should_notify is False
