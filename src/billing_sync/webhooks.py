"""
Webhook endpoint for Stripe billing events.

This module provides the FastAPI router that receives Stripe events,
verifies them, and reconciles purchases and subscriptions into the
billing store.

Every failure is reported as 400 so Stripe treats it as a rejected
delivery; there is no 5xx path.
"""

from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from billing_sync import config
from billing_sync.errors import SignatureInvalid
from billing_sync.handlers import dispatch_event
from billing_sync.services.db_client import get_billing_store
from billing_sync.services.notifications import get_notifier
from billing_sync.verification import verify_event

SIGNATURE_FAILED_MESSAGE = "Webhook signature verification failed."
PROCESSING_FAILED_MESSAGE = "Error processing webhook"

# Create router
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
) -> Response:
    """
    Handle Stripe webhook events.

    Events handled:
    - checkout.session.completed: Record course purchase
    - customer.subscription.created / updated: Upsert active subscription
    - customer.subscription.deleted: Remove subscription
    """
    settings = config.settings
    payload = await request.body()

    try:
        event = verify_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )
    except SignatureInvalid:
        return PlainTextResponse(SIGNATURE_FAILED_MESSAGE, status_code=400)

    logger.info("Received Stripe webhook: {} (ID: {})", event.type, event.id)

    try:
        handled = await dispatch_event(
            event,
            get_store=get_billing_store,
            notifier=get_notifier(),
            settings=settings,
        )
    except Exception:
        logger.exception("Error processing webhook ({}, ID: {})", event.type, event.id)
        return PlainTextResponse(PROCESSING_FAILED_MESSAGE, status_code=400)

    if handled:
        logger.info("Successfully processed {} (ID: {})", event.type, event.id)
    return Response(status_code=200)


@router.get("/health")
async def webhook_health() -> JSONResponse:
    """Health check endpoint for webhook service."""
    settings = config.settings
    return JSONResponse({
        "status": "healthy",
        "stripe_configured": bool(settings.stripe_webhook_secret),
        "store_configured": bool(settings.supabase_url and settings.supabase_service_key),
        "email_configured": bool(settings.resend_api_key),
        "environment": settings.environment,
        "notifications_enabled": settings.should_notify,
    })
