"""Async Stripe API wrapper for FamilyHub.

Every call goes through ``call_provider``, which bounds it with
``settings.stripe_timeout_seconds`` and turns SDK errors and timeouts into
``ProviderError``. Network retries are off so a refund is never replayed.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import stripe
from stripe import StripeClient

from familyhub.billing.plans import PlanType, get_plan
from familyhub.config import settings
from familyhub.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(timeout=settings.stripe_timeout_seconds),
        max_network_retries=0,
    )


async def call_provider(action: str, awaitable: Awaitable[T]) -> T:
    """Await a Stripe call with a hard timeout, mapping failures to ProviderError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=settings.stripe_timeout_seconds)
    except TimeoutError:
        logger.warning("Stripe %s timed out after %ss", action, settings.stripe_timeout_seconds)
        raise ProviderError(f"stripe {action} timed out") from None
    except stripe.StripeError as exc:
        logger.warning("Stripe %s failed: %s", action, exc.user_message or exc.__class__.__name__)
        raise ProviderError(f"stripe {action} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


async def find_customer_by_email(email: str) -> stripe.Customer | None:
    client = get_stripe_client()
    customers = await call_provider(
        "customers.list", client.v1.customers.list_async(params={"email": email, "limit": 1})
    )
    return customers.data[0] if customers.data else None


async def create_customer(email: str, name: str, user_id: str) -> stripe.Customer:
    """Create a Stripe customer linked to a FamilyHub user."""
    client = get_stripe_client()
    logger.info("Creating Stripe customer for user %s", user_id)
    customer = await call_provider(
        "customers.create",
        client.v1.customers.create_async(
            params={
                "email": email,
                "name": name,
                "metadata": {"familyhub_user_id": user_id},
            }
        ),
    )
    logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
    return customer


async def find_or_create_customer(email: str, name: str, user_id: str) -> stripe.Customer:
    customer = await find_customer_by_email(email)
    if customer is not None:
        return customer
    return await create_customer(email, name, user_id)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


async def list_active_subscriptions(customer_id: str) -> list[stripe.Subscription]:
    client = get_stripe_client()
    subscriptions = await call_provider(
        "subscriptions.list",
        client.v1.subscriptions.list_async(params={"customer": customer_id, "status": "active", "limit": 1}),
    )
    return list(subscriptions.data)


async def get_subscription(subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription by ID."""
    client = get_stripe_client()
    return await call_provider("subscriptions.retrieve", client.v1.subscriptions.retrieve_async(subscription_id))


async def cancel_subscription(subscription_id: str) -> stripe.Subscription:
    client = get_stripe_client()
    logger.info("Canceling Stripe subscription %s", subscription_id)
    return await call_provider("subscriptions.cancel", client.v1.subscriptions.cancel_async(subscription_id))


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


async def create_checkout_session(
    customer_id: str,
    plan_type: PlanType,
    user_id: str,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """Create a subscription-mode Checkout Session priced from the plan table."""
    plan = get_plan(plan_type)
    client = get_stripe_client()
    logger.info("Creating checkout session for customer %s, plan %s", customer_id, plan.name.value)
    return await call_provider(
        "checkout.sessions.create",
        client.v1.checkout.sessions.create_async(
            params={
                "mode": "subscription",
                "customer": customer_id,
                "line_items": [
                    {
                        "price_data": {
                            "currency": settings.stripe_currency,
                            "product_data": {"name": plan.display_name},
                            "unit_amount": plan.price_cents,
                            "recurring": {"interval": plan.billing_interval},
                        },
                        "quantity": 1,
                    }
                ],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": {"user_id": user_id, "plan_type": plan.name.value},
            }
        ),
    )


# ---------------------------------------------------------------------------
# Invoices and refunds
# ---------------------------------------------------------------------------


async def get_latest_paid_invoice(subscription_id: str) -> stripe.Invoice | None:
    client = get_stripe_client()
    invoices = await call_provider(
        "invoices.list",
        client.v1.invoices.list_async(
            params={
                "subscription": subscription_id,
                "status": "paid",
                "limit": 1,
                "expand": ["data.payments"],
            }
        ),
    )
    return invoices.data[0] if invoices.data else None


async def create_refund(charge_id: str | None = None, payment_intent_id: str | None = None) -> stripe.Refund:
    """Refund a charge in full, by charge id or (newer invoices) payment intent id."""
    params: dict = {"reason": "requested_by_customer"}
    if charge_id:
        params["charge"] = charge_id
    elif payment_intent_id:
        params["payment_intent"] = payment_intent_id
    else:
        raise ValueError("create_refund needs a charge or payment intent id")

    client = get_stripe_client()
    logger.info("Refunding %s", charge_id or payment_intent_id)
    return await call_provider("refunds.create", client.v1.refunds.create_async(params=params))


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous)."""
    client = get_stripe_client()
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)
