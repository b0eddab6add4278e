"""Stripe helper functions.

Checkout creation for the premium plan. Webhook processing is in
alia/stripe_webhook.py.
"""
from __future__ import annotations

from typing import Any

import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from alia import db
from alia.errors import CheckoutError
from alia.models import Profile

ACTIVE_STATUSES = ("active", "trialing")


def configure_stripe() -> None:
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY") or None


def payment_return_url(marker: str) -> str:
    app_url = current_app.config.get("APP_URL") or "http://localhost:5000/"
    return f"{app_url}?payment={marker}"


def ensure_customer(profile: Profile) -> str:
    """Return the profile's Stripe customer id, creating the customer when missing."""
    if profile.stripe_customer_id:
        return profile.stripe_customer_id

    customer = stripe.Customer.create(
        email=profile.user.email,
        name=profile.full_name or profile.user.email,
        metadata={"user_id": profile.id},
    )
    profile.stripe_customer_id = customer.id
    db.session.commit()
    return customer.id


def create_checkout_session(profile: Profile) -> Any:
    """Create a subscription checkout session for the premium plan."""
    configure_stripe()
    price_id = current_app.config.get("STRIPE_PRICE_ID")
    if not price_id:
        current_app.logger.error("STRIPE_PRICE_ID is not configured")
        raise CheckoutError()

    try:
        customer_id = ensure_customer(profile)
        return stripe.checkout.Session.create(
            payment_method_types=["card"],
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=payment_return_url("success"),
            cancel_url=payment_return_url("cancelled"),
            metadata={"user_id": profile.id},
        )
    except stripe.StripeError as e:
        current_app.logger.exception("Checkout session creation failed for profile %s", profile.id)
        raise CheckoutError(e.user_message or CheckoutError.default_message) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Could not store Stripe customer for profile %s", profile.id)
        raise CheckoutError() from e


def plan_is_active(subscription_status: str) -> bool:
    return subscription_status in ACTIVE_STATUSES
