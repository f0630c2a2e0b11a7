"""Payment-provider synchronizer: Stripe state -> local subscription rows.

Lifecycle: free -> checkout pending -> pro / pro_annual -> canceled
(optionally refunded). Stripe is the source of truth for paid plans; this
module copies its state into the owner's row.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import stripe
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.billing import stripe_client
from familyhub.billing.entitlements import Entitlement, resolve
from familyhub.billing.plans import PAID_PLANS, PlanType, get_plan_by_price
from familyhub.database import utcnow
from familyhub.errors import (
    AlreadySubscribedError,
    NotFoundError,
    ProviderError,
    ReconciliationRequiredError,
)
from familyhub.models.household import Household
from familyhub.models.subscription import Subscription
from familyhub.models.user import User
from familyhub.services.subscription_service import (
    ensure_default_subscription,
    get_subscription,
    upsert_subscription,
)

logger = logging.getLogger(__name__)

# Stripe statuses that grant the paid plan
ACTIVE_STATUSES = ("active", "trialing")


def _ts_to_naive(ts: int | None) -> datetime | None:
    """Convert Stripe Unix timestamp to naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def _get_first_item(stripe_sub: stripe.Subscription):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() in newer Stripe API versions.
    """
    sub_items = stripe_sub["items"]
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def plan_from_subscription(stripe_sub: stripe.Subscription) -> PlanType | None:
    """Map the first item's price (amount + interval) to a plan, or None if unknown."""
    item = _get_first_item(stripe_sub)
    if item is None:
        return None
    price = item.price
    recurring = getattr(price, "recurring", None)
    interval = getattr(recurring, "interval", None) if recurring else None
    return get_plan_by_price(getattr(price, "unit_amount", None), interval)


def get_period(stripe_sub: stripe.Subscription) -> tuple[datetime | None, datetime | None]:
    """Extract current period start/end.

    In Stripe API 2025-08-27 (basil), current_period_start/end moved
    from the subscription object to the subscription item.
    """
    item = _get_first_item(stripe_sub)
    source = item if item is not None and getattr(item, "current_period_end", None) else stripe_sub
    return (
        _ts_to_naive(getattr(source, "current_period_start", None)),
        _ts_to_naive(getattr(source, "current_period_end", None)),
    )


def subscription_values(stripe_sub: stripe.Subscription, fallback_plan: PlanType) -> dict:
    """Row values for an upsert from a Stripe subscription object."""
    plan = plan_from_subscription(stripe_sub)
    if plan is None:
        logger.warning(
            "Unrecognized price on Stripe subscription %s, keeping plan %s",
            stripe_sub.id,
            fallback_plan.value,
        )
        plan = fallback_plan

    period_start, period_end = get_period(stripe_sub)
    status = stripe_sub.status
    return {
        "plan_type": plan,
        "stripe_subscription_id": stripe_sub.id,
        "status": status,
        "is_active": status in ACTIVE_STATUSES,
        "subscription_start_date": _ts_to_naive(getattr(stripe_sub, "start_date", None)) or period_start,
        "subscription_end_date": period_end,
    }


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RefreshResult:
    entitlement: Entitlement
    synced: bool


async def sync(db: AsyncSession, user: User, create_customer: bool = False) -> Subscription:
    """Pull the owner's Stripe state into their subscription row.

    Raises:
        ProviderError: a Stripe call failed or timed out. No local change is made.
    """
    subscription = await ensure_default_subscription(db, user.id)

    if create_customer:
        customer = await stripe_client.find_or_create_customer(user.email, user.name, str(user.id))
    else:
        customer = await stripe_client.find_customer_by_email(user.email)

    if customer is None:
        logger.info("No Stripe customer for user %s, nothing to sync", user.id)
        return subscription

    active = await stripe_client.list_active_subscriptions(customer.id)
    if not active:
        # Plan is left as-is; only webhooks and cancellation downgrade
        logger.info("No active Stripe subscription for user %s (customer %s)", user.id, customer.id)
        return await upsert_subscription(db, user.id, stripe_customer_id=customer.id)

    stripe_sub = active[0]
    values = subscription_values(stripe_sub, subscription.plan_type)
    subscription = await upsert_subscription(db, user.id, stripe_customer_id=customer.id, **values)
    logger.info(
        "Synced user %s to Stripe subscription %s: plan=%s until %s",
        user.id,
        stripe_sub.id,
        subscription.plan_type.value,
        subscription.subscription_end_date,
    )
    return subscription


async def refresh_entitlement(db: AsyncSession, user: User, now: datetime | None = None) -> RefreshResult:
    """Sync, then resolve. Falls back to the last-known local state if Stripe is down."""
    try:
        await sync(db, user)
    except ProviderError as exc:
        logger.warning("Subscription sync for user %s failed, serving local state: %s", user.id, exc)
        return RefreshResult(await resolve(db, user.id, now), synced=False)
    return RefreshResult(await resolve(db, user.id, now), synced=True)


async def create_checkout(
    db: AsyncSession,
    user: User,
    plan_type: PlanType,
    success_url: str,
    cancel_url: str,
) -> str:
    """Start a Stripe Checkout for a paid plan and return its redirect URL."""
    if plan_type not in PAID_PLANS:
        raise ValueError(f"Cannot check out plan '{plan_type.value}'")

    subscription = await sync(db, user, create_customer=True)
    if subscription.is_active and subscription.plan_type in PAID_PLANS and subscription.stripe_subscription_id:
        raise AlreadySubscribedError(f"user {user.id} already on {subscription.plan_type.value}")

    session = await stripe_client.create_checkout_session(
        customer_id=subscription.stripe_customer_id,
        plan_type=plan_type,
        user_id=str(user.id),
        success_url=success_url,
        cancel_url=cancel_url,
    )
    logger.info("Checkout session %s created for user %s (%s)", session.id, user.id, plan_type.value)
    return session.url


# ---------------------------------------------------------------------------
# Cancellation with refund
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CancellationResult:
    stripe_subscription_id: str
    canceled_at: datetime
    refund_id: str | None
    refund_amount: int  # cents; 0 when nothing was refunded


def _object_id(value) -> str | None:
    return value if isinstance(value, str) or value is None else value.id


def _refund_target(invoice) -> tuple[str | None, str | None]:
    """Charge and payment intent ids of a paid invoice.

    Current API versions only report these on the invoice's ``payments``
    list (requested with ``expand``); older invoices carry them top-level.
    """
    payments = getattr(invoice, "payments", None)
    for invoice_payment in getattr(payments, "data", None) or []:
        if getattr(invoice_payment, "status", "paid") != "paid":
            continue
        payment = invoice_payment.payment
        charge_id = _object_id(getattr(payment, "charge", None))
        intent_id = _object_id(getattr(payment, "payment_intent", None))
        if charge_id or intent_id:
            return charge_id, intent_id

    return _object_id(getattr(invoice, "charge", None)), _object_id(getattr(invoice, "payment_intent", None))


async def cancel_and_refund(
    db: AsyncSession,
    stripe_subscription_id: str,
    owner_id: uuid.UUID,
    now: datetime | None = None,
) -> CancellationResult:
    """Refund the latest paid invoice, cancel the subscription, mark the row canceled.

    Steps run in that order. Once a refund has been issued, any later
    failure raises ``ReconciliationRequiredError`` instead of retrying.
    """
    subscription = await get_subscription(db, owner_id)
    if subscription is None or subscription.stripe_subscription_id != stripe_subscription_id:
        raise NotFoundError(f"subscription {stripe_subscription_id} not found for user {owner_id}")

    invoice = await stripe_client.get_latest_paid_invoice(stripe_subscription_id)

    refund_id = None
    refund_amount = 0
    if invoice is not None:
        charge_id, intent_id = _refund_target(invoice)
        if charge_id or intent_id:
            refund = await stripe_client.create_refund(charge_id=charge_id, payment_intent_id=intent_id)
            refund_id = refund.id
            refund_amount = invoice.amount_paid or 0
            logger.info("Refund %s issued for subscription %s", refund_id, stripe_subscription_id)
        else:
            logger.info("Latest invoice %s on %s has no charge to refund", invoice.id, stripe_subscription_id)

    try:
        await stripe_client.cancel_subscription(stripe_subscription_id)
    except ProviderError as exc:
        if refund_id is None:
            raise
        logger.error(
            "Refund %s issued but cancel of %s failed; manual reconciliation required",
            refund_id,
            stripe_subscription_id,
        )
        raise ReconciliationRequiredError(
            str(exc),
            failed_step="cancel_subscription",
            stripe_subscription_id=stripe_subscription_id,
            refund_id=refund_id,
        ) from exc

    now = now or utcnow()
    values = {"status": "canceled", "is_active": False, "canceled_at": now, "updated_at": now}
    if refund_id is not None:
        values.update(refunded_at=now, refund_id=refund_id)

    try:
        await db.execute(
            update(Subscription)
            .where(
                Subscription.user_id == owner_id,
                Subscription.stripe_subscription_id == stripe_subscription_id,
            )
            .values(**values)
        )
    except SQLAlchemyError as exc:
        logger.exception(
            "Stripe subscription %s canceled (refund %s) but local update failed",
            stripe_subscription_id,
            refund_id,
        )
        raise ReconciliationRequiredError(
            str(exc),
            failed_step="update_local_record",
            stripe_subscription_id=stripe_subscription_id,
            refund_id=refund_id,
        ) from exc

    logger.info("Subscription %s canceled for user %s", stripe_subscription_id, owner_id)
    return CancellationResult(stripe_subscription_id, now, refund_id, refund_amount)


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


async def sync_all_households(db: AsyncSession) -> dict:
    """Sync every household owner once. One failure never stops the batch."""
    result = await db.execute(
        select(User).where(User.id.in_(select(Household.owner_id).distinct())).order_by(User.created_at)
    )
    owners = list(result.scalars().all())

    processed = 0
    errors: list[dict] = []
    for owner in owners:
        try:
            async with db.begin_nested():
                await sync(db, owner)
        except (ProviderError, SQLAlchemyError) as exc:
            logger.warning("Cron sync failed for user %s: %s", owner.id, exc)
            errors.append({"user_id": str(owner.id), "error": str(exc)})
            continue
        processed += 1

    logger.info("Cron sync finished: %d processed, %d errors", processed, len(errors))
    return {"processed": processed, "errors": errors}
