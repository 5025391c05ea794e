"""Shared fixtures: signed Stripe payloads and mocked collaborators."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any
from unittest.mock import AsyncMock

import pytest

from billing_sync.config import Settings
from billing_sync.services.db_client import BillingStore, User
from billing_sync.services.notifications import EmailNotifier

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for payload using the v1 scheme."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def make_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": 1700000000,
            "livemode": False,
            "data": {"object": obj},
        }
    )


def make_subscription(**overrides: Any) -> dict[str, Any]:
    subscription = {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": "active",
        "latest_invoice": "in_1",
        "cancel_at_period_end": False,
        "current_period_start": 1700000000,
        "current_period_end": 1702592000,
        "items": {"data": [{"plan": {"interval": "month"}}]},
    }
    subscription.update(overrides)
    return subscription


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        stripe_webhook_secret=WEBHOOK_SECRET,
        app_url="https://app.example.com",
        environment="production",
    )


@pytest.fixture
def user() -> User:
    return User(id="u1", email="a@b.com", name="Ada", stripe_customer_id="cus_1")


@pytest.fixture
def mock_store(user: User) -> AsyncMock:
    store = AsyncMock(spec=BillingStore)
    store.get_user_by_stripe_customer_id.return_value = user
    store.remove_subscription.return_value = True
    return store


@pytest.fixture
def mock_notifier() -> AsyncMock:
    notifier = AsyncMock(spec=EmailNotifier)
    notifier.send.return_value = "email_1"
    return notifier
