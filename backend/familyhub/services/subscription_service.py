"""Subscription service: reads and upserts of the per-owner subscription row."""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.billing.plans import PlanType
from familyhub.config import settings
from familyhub.database import utcnow
from familyhub.errors import TrialUnavailableError
from familyhub.models.subscription import Subscription

logger = logging.getLogger(__name__)


def _dialect_insert(db: AsyncSession):
    """Dialect-native INSERT that supports ON CONFLICT."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(Subscription)
    return postgresql.insert(Subscription)


async def get_subscription(db: AsyncSession, user_id: uuid.UUID) -> Subscription | None:
    """Fetch the owner's subscription row, reloading it from the database."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def ensure_default_subscription(
    db: AsyncSession, user_id: uuid.UUID, household_id: uuid.UUID | None = None
) -> Subscription:
    """Create a free-tier row for the owner if none exists. Safe to call repeatedly."""
    stmt = (
        _dialect_insert(db)
        .values(
            id=uuid.uuid4(),
            user_id=user_id,
            household_id=household_id,
            plan_type=PlanType.FREE,
            is_active=True,
            status="active",
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)
    logger.debug("Ensured free-tier subscription for user %s", user_id)
    return await get_subscription(db, user_id)


async def upsert_subscription(db: AsyncSession, user_id: uuid.UUID, **values) -> Subscription:
    """Insert or update the owner's row in one statement, keyed on ``user_id``."""
    values["updated_at"] = utcnow()
    stmt = _dialect_insert(db).values(id=uuid.uuid4(), user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=["user_id"], set_=values)
    await db.execute(stmt)

    subscription = await get_subscription(db, user_id)
    logger.info(
        "Upserted subscription for user %s: plan=%s, status=%s, active=%s",
        user_id,
        subscription.plan_type.value,
        subscription.status,
        subscription.is_active,
    )
    return subscription


async def activate_trial(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> Subscription:
    """Start the one-time free trial for an owner.

    Raises:
        TrialUnavailableError: the owner already had a trial.
    """
    now = now or utcnow()
    subscription = await ensure_default_subscription(db, user_id, household_id)
    if subscription.trial_start_date is not None or subscription.trial_end_date is not None:
        raise TrialUnavailableError(f"user {user_id} already used a trial")

    subscription.trial_start_date = now
    subscription.trial_end_date = now + timedelta(days=settings.trial_days)
    if household_id is not None and subscription.household_id is None:
        subscription.household_id = household_id
    await db.flush()
    logger.info(
        "Trial activated for user %s until %s", user_id, subscription.trial_end_date.isoformat()
    )
    return subscription


async def get_subscription_by_stripe_customer(
    db: AsyncSession, stripe_customer_id: str
) -> Subscription | None:
    """Look up subscription by Stripe customer ID (used by webhooks)."""
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_customer_id == stripe_customer_id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_subscription_by_stripe_subscription(
    db: AsyncSession, stripe_subscription_id: str
) -> Subscription | None:
    """Look up subscription by Stripe subscription ID (used by webhooks)."""
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


async def update_subscription_status(
    db: AsyncSession,
    subscription: Subscription,
    status: str,
    is_active: bool,
    **fields,
) -> Subscription:
    """Apply a provider-reported status change to a row."""
    subscription.status = status
    subscription.is_active = is_active
    for name, value in fields.items():
        setattr(subscription, name, value)
    await db.flush()
    logger.info(
        "Subscription %s (user %s) status=%s, active=%s",
        subscription.id,
        subscription.user_id,
        status,
        is_active,
    )
    return subscription
