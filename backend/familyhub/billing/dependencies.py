"""Plan gating dependencies: enforce features and usage limits per household plan."""

import logging
import uuid

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.auth.dependencies import get_current_active_user, get_household_for_member
from familyhub.billing.access import has_access
from familyhub.billing.entitlements import resolve_household
from familyhub.billing.usage import QuotaCheck, ResourceType, check_quota
from familyhub.database import get_db
from familyhub.models.user import User

logger = logging.getLogger(__name__)

UPGRADE_URL = "/api/v1/billing/create-checkout-session"

_LABELS = {
    ResourceType.BILLS: "Monthly bill limit",
    ResourceType.EVENTS: "Monthly event limit",
    ResourceType.MEMBERS: "Household member limit",
}


def _payment_required(check: QuotaCheck) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "message": (
                f"{_LABELS[check.resource_type]} reached ({check.current}/{check.limit}). "
                "Upgrade to Family Pro for unlimited access."
            ),
            "limit": check.limit,
            "current": check.current,
            "plan": check.plan_type.value,
            "upgrade_url": UPGRADE_URL,
        },
    )


async def _enforce_quota(
    db: AsyncSession, user: User, household_id: uuid.UUID, resource_type: ResourceType
) -> None:
    household, _ = await get_household_for_member(db, household_id, user)
    check = await check_quota(db, resource_type, household.owner_id, household.id)
    if not check.allowed:
        logger.info(
            "Quota %s reached for household %s (%s/%s)",
            resource_type.value,
            household.id,
            check.current,
            check.limit,
        )
        raise _payment_required(check)


async def check_bill_limit(
    household_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> None:
    """Raise 402 if the household owner has used up this month's bills."""
    await _enforce_quota(db, user, household_id, ResourceType.BILLS)


async def check_event_limit(
    household_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> None:
    """Raise 402 if the household owner has used up this month's calendar events."""
    await _enforce_quota(db, user, household_id, ResourceType.EVENTS)


async def check_member_limit(
    household_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> None:
    """Raise 402 if the household is at its member cap (adults plus children)."""
    await _enforce_quota(db, user, household_id, ResourceType.MEMBERS)


def require_feature(feature_name: str):
    """Dependency factory: raise 402 unless the household's plan includes ``feature_name``."""

    async def _require_feature(
        household_id: uuid.UUID,
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_active_user),
    ) -> None:
        await get_household_for_member(db, household_id, user)
        _, entitlement = await resolve_household(db, household_id)
        if not has_access(entitlement.plan_type, feature_name, entitlement.is_trial_active):
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail={
                    "message": f"'{feature_name}' requires Family Pro or an active trial.",
                    "plan": entitlement.plan_type.value,
                    "upgrade_url": UPGRADE_URL,
                },
            )

    return _require_feature
