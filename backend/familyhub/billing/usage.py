"""Usage counting and quota checks for gated resources.

Counts are per owner and per calendar month. A check that cannot count
(database error, timeout) allows the action and logs a warning: a broken
counter must never lock a family out of their own data.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.billing.access import feature_limits, is_unlimited, is_within_limit
from familyhub.billing.entitlements import Entitlement, resolve
from familyhub.billing.plans import PlanType
from familyhub.config import settings
from familyhub.database import utcnow
from familyhub.errors import CountingError
from familyhub.models.bill import Bill
from familyhub.models.calendar_event import CalendarEvent
from familyhub.models.child import ChildProfile
from familyhub.models.household import Household, HouseholdMember

logger = logging.getLogger(__name__)


class ResourceType(str, Enum):
    BILLS = "bills"
    EVENTS = "events"
    MEMBERS = "members"


@dataclass(frozen=True)
class QuotaCheck:
    resource_type: ResourceType
    allowed: bool
    limit: int
    current: int | None  # None when the count failed
    plan_type: PlanType

    @property
    def degraded(self) -> bool:
        return self.current is None


def period_start(now: datetime | None = None, tz_name: str | None = None) -> datetime:
    """Start of the current calendar month in ``tz_name``, as naive UTC."""
    now = now or utcnow()
    tz = ZoneInfo(tz_name or settings.usage_timezone)
    local = now.replace(tzinfo=timezone.utc).astimezone(tz)
    start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def _owned_households(owner_id: uuid.UUID):
    return select(Household.id).where(Household.owner_id == owner_id)


async def count_usage(
    db: AsyncSession,
    resource_type: ResourceType,
    owner_id: uuid.UUID,
    household_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> int:
    """Current-period usage of ``resource_type`` for an owner.

    Bills and events are counted across every household the owner owns.
    Members are adults plus children, in ``household_id`` if given.
    """
    if resource_type in (ResourceType.BILLS, ResourceType.EVENTS):
        model = Bill if resource_type is ResourceType.BILLS else CalendarEvent
        stmt = (
            select(func.count())
            .select_from(model)
            .where(
                model.household_id.in_(_owned_households(owner_id)),
                model.created_at >= period_start(now),
            )
        )
        return (await db.execute(stmt)).scalar_one()

    if resource_type is ResourceType.MEMBERS:
        scope = [household_id] if household_id is not None else _owned_households(owner_id)
        adults = select(func.count()).select_from(HouseholdMember).where(HouseholdMember.household_id.in_(scope))
        children = select(func.count()).select_from(ChildProfile).where(ChildProfile.household_id.in_(scope))
        return (await db.execute(adults)).scalar_one() + (await db.execute(children)).scalar_one()

    raise CountingError(f"no counter for resource type {resource_type!r}")


def _limit_for(entitlement: Entitlement, resource_type: ResourceType) -> int:
    limits = feature_limits(entitlement.plan_type, entitlement.is_trial_active)
    return {
        ResourceType.BILLS: limits.bills_per_month,
        ResourceType.EVENTS: limits.events_per_month,
        ResourceType.MEMBERS: limits.household_members,
    }[resource_type]


async def check_quota(
    db: AsyncSession,
    resource_type: ResourceType,
    owner_id: uuid.UUID,
    household_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> QuotaCheck:
    """Compare current usage with the owner's limit. Fails open."""
    resource_type = ResourceType(resource_type)
    entitlement = await resolve(db, owner_id, now)
    limit = _limit_for(entitlement, resource_type)

    if is_unlimited(limit):
        return QuotaCheck(resource_type, True, limit, None, entitlement.plan_type)

    try:
        # Savepoint keeps the request's transaction usable after a failed count.
        # Slow queries are bounded by the driver's command_timeout.
        async with db.begin_nested():
            current = await count_usage(db, resource_type, owner_id, household_id, now)
    except (SQLAlchemyError, CountingError, TimeoutError) as exc:
        logger.warning(
            "Usage count for %s (owner %s) failed, allowing: %s",
            resource_type.value,
            owner_id,
            exc,
        )
        return QuotaCheck(resource_type, True, limit, None, entitlement.plan_type)

    return QuotaCheck(resource_type, is_within_limit(current, limit), limit, current, entitlement.plan_type)


async def can_create(
    db: AsyncSession,
    resource_type: ResourceType | str,
    owner_id: uuid.UUID,
    household_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> bool:
    """Whether the owner may create one more ``resource_type`` this period."""
    check = await check_quota(db, ResourceType(resource_type), owner_id, household_id, now)
    return check.allowed
