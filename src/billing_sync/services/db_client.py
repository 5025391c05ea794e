"""Database client for Supabase integration.

This module provides the billing store the webhook reconciles into:
- users: internal accounts, linked to a Stripe customer id
- purchases: one row per completed checkout, unique on stripe_purchase_id
- subscriptions: one row per Stripe subscription, unique on stripe_subscription_id

Uniqueness on the external ids is what makes redelivered events safe; the
store enforces it, not the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from loguru import logger
from postgrest.exceptions import APIError
from supabase import create_client

from billing_sync.config import settings
from billing_sync.errors import DuplicatePurchaseError

UNIQUE_VIOLATION = "23505"


class DatabaseClientProtocol(Protocol):
    """Protocol for database client to enable mocking/testing."""

    def table(self, table_name: str) -> Any:
        """Get a table reference."""
        ...


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _to_iso(value: int | None) -> str | None:
    """Convert a Stripe unix timestamp to ISO-8601 UTC."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


@dataclass
class User:
    """An application user linked to a Stripe customer."""

    id: str
    email: str
    name: str | None = None
    stripe_customer_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> User:
        """Create User from database row."""
        return cls(
            id=str(row["id"]),
            email=row["email"],
            name=row.get("name"),
            stripe_customer_id=row.get("stripe_customer_id"),
        )


@dataclass
class Purchase:
    """A one-off course purchase."""

    id: str
    user_id: str
    course_id: str
    amount: int
    stripe_purchase_id: str
    purchased_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Purchase:
        """Create Purchase from database row."""
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            course_id=str(row["course_id"]),
            amount=int(row["amount"]),
            stripe_purchase_id=row["stripe_purchase_id"],
            purchased_at=_parse_timestamp(row.get("purchased_at")),
        )


@dataclass
class Subscription:
    """A recurring plan, mirrored from Stripe."""

    id: str
    user_id: str
    stripe_subscription_id: str
    status: str
    plan_type: str  # 'month' or 'year'
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Subscription:
        """Create Subscription from database row."""
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            stripe_subscription_id=row["stripe_subscription_id"],
            status=row["status"],
            plan_type=row["plan_type"],
            current_period_start=_parse_timestamp(row.get("current_period_start")),
            current_period_end=_parse_timestamp(row.get("current_period_end")),
            cancel_at_period_end=bool(row.get("cancel_at_period_end", False)),
        )


class BillingStore:
    """Supabase-backed store for users, purchases and subscriptions."""

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        client: DatabaseClientProtocol | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            url: Supabase URL. Defaults to settings.supabase_url.
            key: Supabase service role key. Defaults to settings.supabase_service_key.
            client: Optional pre-configured client (for testing/mocking).

        Raises:
            RuntimeError: If credentials are missing.
        """
        self._client: DatabaseClientProtocol

        if client is not None:
            self._client = client
            logger.info("BillingStore initialized with custom client")
            return

        self._url = url or settings.supabase_url
        self._key = key or settings.supabase_service_key

        if not self._url or not self._key:
            raise RuntimeError(
                "Supabase URL and service key are required. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables."
            )

        self._client = create_client(self._url, self._key)
        logger.info("BillingStore initialized with Supabase")

    async def get_user_by_stripe_customer_id(self, stripe_customer_id: str) -> User | None:
        """Resolve a Stripe customer id to a user.

        Args:
            stripe_customer_id: Stripe customer id (cus_...).

        Returns:
            User or None if no user is linked to the customer.
        """
        try:
            response = (
                self._client.table("users")
                .select("*")
                .eq("stripe_customer_id", stripe_customer_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("Failed to look up user for customer {}: {}", stripe_customer_id, e)
            raise
        if response.data:
            return User.from_row(response.data[0])
        return None

    async def create_purchase(
        self,
        user_id: str,
        course_id: str,
        amount: int,
        stripe_purchase_id: str,
    ) -> Purchase:
        """Record a course purchase.

        Args:
            user_id: Buyer's user id.
            course_id: Purchased course id.
            amount: Amount charged, in the currency's minor unit.
            stripe_purchase_id: External reference; unique per purchase.

        Returns:
            The created Purchase.

        Raises:
            DuplicatePurchaseError: If stripe_purchase_id is already recorded.
        """
        try:
            response = (
                self._client.table("purchases")
                .insert(
                    {
                        "user_id": user_id,
                        "course_id": course_id,
                        "amount": amount,
                        "stripe_purchase_id": stripe_purchase_id,
                        "purchased_at": datetime.now(timezone.utc).isoformat(),
                    }
                )
                .execute()
            )
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicatePurchaseError(stripe_purchase_id) from e
            logger.error("Failed to create purchase {}: {}", stripe_purchase_id, e)
            raise
        except Exception as e:
            logger.error("Failed to create purchase {}: {}", stripe_purchase_id, e)
            raise
        return Purchase.from_row(response.data[0])

    async def upsert_subscription(
        self,
        user_id: str,
        stripe_subscription_id: str,
        status: str,
        plan_type: str,
        current_period_start: int | None,
        current_period_end: int | None,
        cancel_at_period_end: bool,
    ) -> Subscription:
        """Create or update a subscription keyed by its Stripe id.

        Period bounds are Stripe unix timestamps.
        """
        row = {
            "user_id": user_id,
            "stripe_subscription_id": stripe_subscription_id,
            "status": status,
            "plan_type": plan_type,
            "current_period_start": _to_iso(current_period_start),
            "current_period_end": _to_iso(current_period_end),
            "cancel_at_period_end": cancel_at_period_end,
        }
        try:
            response = (
                self._client.table("subscriptions")
                .upsert(row, on_conflict="stripe_subscription_id")
                .execute()
            )
        except Exception as e:
            logger.error("Failed to upsert subscription {}: {}", stripe_subscription_id, e)
            raise
        return Subscription.from_row(response.data[0])

    async def remove_subscription(self, stripe_subscription_id: str) -> bool:
        """Delete a subscription by its Stripe id.

        Returns:
            True if a row was deleted, False if none matched.
        """
        try:
            response = (
                self._client.table("subscriptions")
                .delete()
                .eq("stripe_subscription_id", stripe_subscription_id)
                .execute()
            )
        except Exception as e:
            logger.error("Failed to remove subscription {}: {}", stripe_subscription_id, e)
            raise
        return bool(response.data)


# Global instance for dependency injection
_billing_store: BillingStore | None = None


def get_billing_store() -> BillingStore:
    """Get or create global billing store instance.

    Raises:
        RuntimeError: If the store cannot be initialized.
    """
    global _billing_store
    if _billing_store is None:
        _billing_store = BillingStore()
    return _billing_store


def set_billing_store(store: BillingStore | None) -> None:
    """Set global billing store instance (useful for testing).

    Args:
        store: BillingStore instance or None to reset.
    """
    global _billing_store
    _billing_store = store
