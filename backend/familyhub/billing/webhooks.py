"""Stripe webhook event handlers: process subscription lifecycle events."""

import logging
from collections.abc import Awaitable, Callable

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.billing.stripe_client import get_subscription
from familyhub.billing.sync import subscription_values
from familyhub.database import utcnow
from familyhub.models.subscription import Subscription
from familyhub.services.subscription_service import (
    get_subscription_by_stripe_customer,
    get_subscription_by_stripe_subscription,
    update_subscription_status,
)

logger = logging.getLogger(__name__)


async def _find_local(db: AsyncSession, subscription_id: str | None, customer_id: str | None) -> Subscription | None:
    """Look up by subscription ID first, then by customer ID.

    The customer fallback only matches a row not yet tied to another
    subscription, so late events for a replaced subscription are ignored.
    """
    subscription = None
    if subscription_id:
        subscription = await get_subscription_by_stripe_subscription(db, subscription_id)
    if subscription is None and customer_id:
        subscription = await get_subscription_by_stripe_customer(db, customer_id)
        if subscription is not None and subscription.stripe_subscription_id not in (None, subscription_id):
            logger.info(
                "Ignoring event for Stripe subscription %s: customer %s is now on %s",
                subscription_id,
                customer_id,
                subscription.stripe_subscription_id,
            )
            return None
    if subscription is None:
        logger.warning(
            "No local subscription found for Stripe subscription %s (customer %s)",
            subscription_id,
            customer_id,
        )
    return subscription


def _invoice_subscription_id(invoice) -> str | None:
    subscription_id = getattr(invoice, "subscription", None)
    if subscription_id is None:
        # API 2025-03-31 (basil) moved it under parent.subscription_details
        parent = getattr(invoice, "parent", None)
        details = getattr(parent, "subscription_details", None) if parent else None
        subscription_id = getattr(details, "subscription", None) if details else None
    if subscription_id is not None and not isinstance(subscription_id, str):
        subscription_id = subscription_id.id
    return subscription_id


async def _apply_stripe_subscription(
    db: AsyncSession, subscription: Subscription, stripe_sub: stripe.Subscription
) -> None:
    values = subscription_values(stripe_sub, subscription.plan_type)
    await update_subscription_status(
        db,
        subscription,
        status=values.pop("status"),
        is_active=values.pop("is_active"),
        stripe_customer_id=stripe_sub.customer or subscription.stripe_customer_id,
        **values,
    )


# ---------------------------------------------------------------------------
# customer.subscription.*
# ---------------------------------------------------------------------------


async def handle_subscription_updated(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.created/updated: sync plan, status, and period."""
    stripe_sub = event.data.object
    subscription = await _find_local(db, stripe_sub.id, stripe_sub.customer)
    if subscription is None:
        return

    await _apply_stripe_subscription(db, subscription, stripe_sub)
    logger.info(
        "Subscription %s: %s, plan=%s, status=%s",
        event.type,
        stripe_sub.id,
        subscription.plan_type.value,
        stripe_sub.status,
    )


async def handle_subscription_deleted(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.deleted: mark canceled, keep the row for audit."""
    stripe_sub = event.data.object
    subscription = await _find_local(db, stripe_sub.id, stripe_sub.customer)
    if subscription is None:
        return

    await update_subscription_status(
        db,
        subscription,
        status="canceled",
        is_active=False,
        canceled_at=subscription.canceled_at or utcnow(),
    )
    logger.info("Subscription deleted: %s marked canceled", stripe_sub.id)


async def handle_subscription_paused(db: AsyncSession, event: stripe.Event) -> None:
    stripe_sub = event.data.object
    subscription = await _find_local(db, stripe_sub.id, stripe_sub.customer)
    if subscription is None:
        return
    await update_subscription_status(db, subscription, status="paused", is_active=False)


async def handle_subscription_resumed(db: AsyncSession, event: stripe.Event) -> None:
    stripe_sub = event.data.object
    subscription = await _find_local(db, stripe_sub.id, stripe_sub.customer)
    if subscription is None:
        return
    await update_subscription_status(db, subscription, status="active", is_active=True)


async def handle_trial_will_end(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.trial_will_end: informational only."""
    stripe_sub = event.data.object
    logger.info("Stripe trial for subscription %s ends at %s", stripe_sub.id, getattr(stripe_sub, "trial_end", None))


# ---------------------------------------------------------------------------
# invoice.*
# ---------------------------------------------------------------------------


async def handle_invoice_paid(db: AsyncSession, event: stripe.Event) -> None:
    """Handle invoice.paid / invoice.payment_succeeded: confirm active and refresh period."""
    invoice = event.data.object
    subscription_id = _invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping", invoice.id)
        return

    subscription = await _find_local(db, subscription_id, getattr(invoice, "customer", None))
    if subscription is None:
        return

    # Fetch full subscription from Stripe to get price and current period
    stripe_sub = await get_subscription(subscription_id)
    await _apply_stripe_subscription(db, subscription, stripe_sub)
    if not subscription.is_active:
        await update_subscription_status(db, subscription, status="active", is_active=True)
    logger.info("Invoice paid: subscription %s confirmed active", subscription_id)


async def _mark_from_invoice(db: AsyncSession, event: stripe.Event, status: str, is_active: bool) -> None:
    invoice = event.data.object
    subscription_id = _invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping %s", invoice.id, event.type)
        return

    subscription = await _find_local(db, subscription_id, getattr(invoice, "customer", None))
    if subscription is None:
        return

    await update_subscription_status(db, subscription, status=status, is_active=is_active)
    logger.info("%s: subscription %s marked %s", event.type, subscription_id, status)


async def handle_invoice_payment_failed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle invoice.payment_failed: mark subscription as past_due."""
    await _mark_from_invoice(db, event, "past_due", False)


async def handle_invoice_payment_action_required(db: AsyncSession, event: stripe.Event) -> None:
    await _mark_from_invoice(db, event, "incomplete", False)


EVENT_HANDLERS: dict[str, Callable[[AsyncSession, stripe.Event], Awaitable[None]]] = {
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "customer.subscription.paused": handle_subscription_paused,
    "customer.subscription.resumed": handle_subscription_resumed,
    "customer.subscription.trial_will_end": handle_trial_will_end,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_succeeded": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "invoice.payment_action_required": handle_invoice_payment_action_required,
}
