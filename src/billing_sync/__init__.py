"""Stripe webhook ingestion for course purchases and subscriptions."""
