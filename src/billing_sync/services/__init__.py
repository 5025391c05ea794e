"""Services module for store and notification collaborators."""

from billing_sync.services.db_client import (
    BillingStore,
    Purchase,
    Subscription,
    User,
    get_billing_store,
    set_billing_store,
)
from billing_sync.services.notifications import (
    EmailNotifier,
    NotificationError,
    get_notifier,
    set_notifier,
)

__all__ = [
    # Billing Store
    "BillingStore",
    "Purchase",
    "Subscription",
    "User",
    "get_billing_store",
    "set_billing_store",
    # Notifications
    "EmailNotifier",
    "NotificationError",
    "get_notifier",
    "set_notifier",
]
