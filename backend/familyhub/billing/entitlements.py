"""Entitlement resolver: what plan an owner is effectively on right now.

Read-only. Trial state is recomputed from ``trial_end_date`` on every read
and never stored.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.billing.plans import PlanType, parse_plan_type
from familyhub.database import utcnow
from familyhub.errors import NotFoundError
from familyhub.models.household import Household
from familyhub.models.subscription import Subscription
from familyhub.services.subscription_service import get_subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entitlement:
    plan_type: PlanType
    is_trial_active: bool
    trial_end_date: datetime | None = None
    subscription_end_date: datetime | None = None
    is_active: bool = True
    status: str = "active"


FREE_ENTITLEMENT = Entitlement(plan_type=PlanType.FREE, is_trial_active=False)


def is_trial_active(trial_end_date: datetime | None, now: datetime) -> bool:
    return trial_end_date is not None and now < trial_end_date


def resolve_subscription(subscription: Subscription | None, now: datetime | None = None) -> Entitlement:
    """Pure resolution of a (possibly missing) subscription row."""
    if subscription is None:
        return FREE_ENTITLEMENT

    now = now or utcnow()
    plan_type = parse_plan_type(subscription.plan_type)
    if not subscription.is_active:
        # Canceled / past_due rows keep their stored plan for audit only
        plan_type = PlanType.FREE

    return Entitlement(
        plan_type=plan_type,
        is_trial_active=is_trial_active(subscription.trial_end_date, now),
        trial_end_date=subscription.trial_end_date,
        subscription_end_date=subscription.subscription_end_date,
        is_active=subscription.is_active,
        status=subscription.status,
    )


async def resolve(db: AsyncSession, owner_id: uuid.UUID, now: datetime | None = None) -> Entitlement:
    """Resolve an owner's entitlement from their subscription row."""
    return resolve_subscription(await get_subscription(db, owner_id), now)


async def resolve_household(
    db: AsyncSession, household_id: uuid.UUID, now: datetime | None = None
) -> tuple[Household, Entitlement]:
    """Resolve a household's entitlement, which is its owner's."""
    household = await db.get(Household, household_id)
    if household is None:
        raise NotFoundError(f"household {household_id} not found")
    return household, await resolve(db, household.owner_id, now)
