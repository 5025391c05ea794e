"""Stripe webhook signature verification.

This is the only path that produces a TrustedEvent. Every failure, whatever
its cause, surfaces as SignatureInvalid so that nothing untrusted reaches the
reconciliation handlers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import stripe
from loguru import logger

from billing_sync.errors import SignatureInvalid

DEFAULT_TOLERANCE = 300


@dataclass(frozen=True)
class TrustedEvent:
    """A Stripe event whose signature has been verified."""

    id: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    created: int | None = None
    livemode: bool = False


def _reject(reason: str) -> SignatureInvalid:
    logger.warning("Webhook signature verification failed: {}", reason)
    return SignatureInvalid(reason)


def verify_event(
    body: bytes | str,
    signature: str | None,
    secret: str | None,
    tolerance: int = DEFAULT_TOLERANCE,
) -> TrustedEvent:
    """Verify a raw webhook body and build a TrustedEvent from it.

    Args:
        body: Raw request body exactly as received.
        signature: Value of the Stripe-Signature header.
        secret: Endpoint signing secret.
        tolerance: Maximum age of the signed timestamp, in seconds.

    Returns:
        The verified event.

    Raises:
        SignatureInvalid: On any verification or parsing failure.
    """
    if not secret:
        raise _reject("signing secret not configured")
    if not signature:
        raise _reject("missing signature header")

    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
    except UnicodeDecodeError as e:
        raise _reject(f"malformed body: {e}") from e

    try:
        stripe.WebhookSignature.verify_header(text, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise _reject(str(e)) from e
    except Exception as e:
        raise _reject(f"{type(e).__name__}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise _reject(f"malformed body: {e}") from e

    if not isinstance(data, dict):
        raise _reject("event body is not an object")

    event_id = data.get("id")
    event_type = data.get("type")
    if not isinstance(event_id, str) or not isinstance(event_type, str):
        raise _reject("event body lacks id or type")

    container = data.get("data")
    obj = container.get("object") if isinstance(container, dict) else None
    if not isinstance(obj, dict):
        raise _reject("event body lacks data.object")

    return TrustedEvent(
        id=event_id,
        type=event_type,
        payload=obj,
        created=data.get("created"),
        livemode=bool(data.get("livemode", False)),
    )
