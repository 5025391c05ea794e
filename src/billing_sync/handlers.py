"""Stripe event reconciliation.

Routes a verified event to its handler and mirrors the resulting state into
the billing store. Fatal errors propagate to the caller; the subscription
handlers contain their own mutation failures so that a store hiccup on a
secondary event does not make Stripe redeliver indefinitely.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from loguru import logger

from billing_sync.config import Settings
from billing_sync.errors import DuplicatePurchaseError, MissingRequiredField, UserNotFound
from billing_sync.services.db_client import BillingStore
from billing_sync.services.notifications import (
    EmailNotifier,
    render_pro_plan_welcome,
    render_purchase_confirmation,
)
from billing_sync.verification import TrustedEvent

PLAN_TYPES = ("month", "year")

StoreFactory = Callable[[], BillingStore]


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _plan_interval(subscription: dict[str, Any]) -> str | None:
    item = _first_item(subscription)
    plan = item.get("plan") or {}
    if plan.get("interval"):
        return plan["interval"]
    recurring = (item.get("price") or {}).get("recurring") or {}
    return recurring.get("interval")


def _period_bounds(subscription: dict[str, Any]) -> tuple[int | None, int | None]:
    # Newer API versions report the billing period per item.
    item = _first_item(subscription)
    start = subscription.get("current_period_start") or item.get("current_period_start")
    end = subscription.get("current_period_end") or item.get("current_period_end")
    return start, end


async def handle_checkout_session_completed(
    session: dict[str, Any],
    store: BillingStore,
    notifier: EmailNotifier,
    settings: Settings,
) -> None:
    """Record a course purchase for a completed checkout session."""
    metadata = session.get("metadata") or {}
    course_id = metadata.get("courseId")
    stripe_customer_id = session.get("customer")

    missing = [
        name
        for name, value in (("courseId", course_id), ("customer", stripe_customer_id))
        if not value
    ]
    if missing:
        raise MissingRequiredField(missing)

    user = await store.get_user_by_stripe_customer_id(stripe_customer_id)
    if user is None:
        raise UserNotFound(stripe_customer_id)

    amount = session.get("amount_total") or 0
    try:
        await store.create_purchase(
            user_id=user.id,
            course_id=course_id,
            amount=amount,
            stripe_purchase_id=session["id"],
        )
    except DuplicatePurchaseError:
        logger.warning("Purchase {} already recorded, skipping", session["id"])
        return
    logger.info("Recorded purchase of course {} for user {}", course_id, user.id)

    course_title = metadata.get("courseTitle")
    course_image_url = metadata.get("courseImageUrl")
    if course_title and course_image_url and settings.should_notify:
        html = render_purchase_confirmation(
            course_title=course_title,
            course_image_url=course_image_url,
            amount=amount,
            course_url=f"{settings.app_url}/courses/{course_id}",
        )
        await notifier.send(to=user.email, subject="Purchase Confirmed", html=html)


async def handle_subscription_upsert(
    subscription: dict[str, Any],
    event_type: str,
    store: BillingStore,
    notifier: EmailNotifier,
    settings: Settings,
) -> None:
    """Mirror an active subscription into the store."""
    subscription_id = subscription.get("id")
    status = subscription.get("status")

    if status != "active" or not subscription.get("latest_invoice"):
        logger.info("Skipping subscription {} - Status: {}", subscription_id, status)
        return

    stripe_customer_id = subscription.get("customer")
    user = await store.get_user_by_stripe_customer_id(stripe_customer_id)
    if user is None:
        raise UserNotFound(stripe_customer_id)

    try:
        plan_type = _plan_interval(subscription)
        if plan_type not in PLAN_TYPES:
            raise ValueError(f"Unsupported plan interval: {plan_type}")
        period_start, period_end = _period_bounds(subscription)

        await store.upsert_subscription(
            user_id=user.id,
            stripe_subscription_id=subscription_id,
            status=status,
            plan_type=plan_type,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end", False)),
        )
        logger.info("Successfully processed {} for subscription {}", event_type, subscription_id)

        if settings.should_notify:
            html = render_pro_plan_welcome(
                user_name=user.name,
                plan_type=plan_type,
                period_start=period_start,
                period_end=period_end,
                app_url=settings.app_url,
            )
            await notifier.send(to=user.email, subject="Welcome to MasterClass Pro!", html=html)
    except Exception:
        logger.exception(
            "Error processing {} for subscription {}", event_type, subscription_id
        )


async def handle_subscription_deleted(
    subscription: dict[str, Any],
    get_store: StoreFactory,
) -> None:
    """Remove a cancelled subscription. Never raises."""
    subscription_id = subscription.get("id")
    try:
        removed = await get_store().remove_subscription(subscription_id)
        if removed:
            logger.info("Successfully deleted subscription {}", subscription_id)
        else:
            logger.info("Subscription {} not found, nothing to delete", subscription_id)
    except Exception:
        logger.exception("Error deleting subscription {}", subscription_id)


async def _on_checkout_completed(event, get_store, notifier, settings) -> None:
    await handle_checkout_session_completed(event.payload, get_store(), notifier, settings)


async def _on_subscription_upsert(event, get_store, notifier, settings) -> None:
    await handle_subscription_upsert(event.payload, event.type, get_store(), notifier, settings)


async def _on_subscription_deleted(event, get_store, notifier, settings) -> None:
    await handle_subscription_deleted(event.payload, get_store)


EventHandler = Callable[[TrustedEvent, StoreFactory, EmailNotifier, Settings], Awaitable[None]]

# Map of Stripe event types to handlers
EVENT_HANDLERS: dict[str, EventHandler] = {
    "checkout.session.completed": _on_checkout_completed,
    "customer.subscription.created": _on_subscription_upsert,
    "customer.subscription.updated": _on_subscription_upsert,
    "customer.subscription.deleted": _on_subscription_deleted,
}


async def dispatch_event(
    event: TrustedEvent,
    get_store: StoreFactory,
    notifier: EmailNotifier,
    settings: Settings,
) -> bool:
    """Run the handler registered for the event's type.

    The store is only built once a handler asks for it, so unhandled
    types never depend on store configuration.

    Returns:
        True if a handler ran, False if the type is not handled.
    """
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.info("Unhandled event type: {}", event.type)
        return False
    await handler(event, get_store, notifier, settings)
    return True
