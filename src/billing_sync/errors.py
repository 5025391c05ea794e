"""Exceptions raised while verifying and reconciling billing events."""

from __future__ import annotations


class WebhookError(Exception):
    """Base class for webhook processing errors."""


class SignatureInvalid(WebhookError):
    """Raised when an inbound payload cannot be trusted."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Webhook signature verification failed: {reason}")
        self.reason = reason


class MissingRequiredField(WebhookError):
    """Raised when an event lacks a field the handler cannot proceed without."""

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"Missing required field(s): {', '.join(fields)}")
        self.fields = fields


class UserNotFound(WebhookError):
    """Raised when no user is linked to a Stripe customer id."""

    def __init__(self, customer_id: str) -> None:
        super().__init__(f"User not found for stripe customer id: {customer_id}")
        self.customer_id = customer_id


class DuplicatePurchaseError(WebhookError):
    """Raised by the store when a purchase reference is already recorded."""

    def __init__(self, stripe_purchase_id: str) -> None:
        super().__init__(f"Purchase already recorded: {stripe_purchase_id}")
        self.stripe_purchase_id = stripe_purchase_id
