"""Plan definitions: pricing tiers, feature sets and usage limits."""

import logging
from dataclasses import dataclass
from enum import Enum

from familyhub.config import settings

logger = logging.getLogger(__name__)

UNLIMITED = -1  # sentinel for "no cap"


class PlanType(str, Enum):
    """Closed set of plan tiers stored on a subscription row."""

    FREE = "free"
    PRO = "pro"
    PRO_ANNUAL = "pro_annual"


# Features available on the free tier without a trial.
FREE_FEATURES: frozenset[str] = frozenset({"basic_calendar", "basic_bills", "basic_notes"})

# Everything the app gates. Pro and trial owners get all of these (and any
# feature name, known or not).
ALL_FEATURES: frozenset[str] = FREE_FEATURES | frozenset(
    {
        "advanced_calendar",
        "unlimited_bills",
        "unlimited_tasks",
        "mini_coach",
        "priority_support",
    }
)


@dataclass(frozen=True)
class PlanLimits:
    """Pricing, feature tier and usage limits for a subscription plan."""

    name: PlanType
    display_name: str
    full_access: bool  # every feature, no usage caps
    bills_per_month: int  # UNLIMITED = no cap
    events_per_month: int
    household_members: int
    price_cents: int
    billing_interval: str | None  # "month" / "year"; None for free tier


PLANS: dict[PlanType, PlanLimits] = {
    PlanType.FREE: PlanLimits(
        name=PlanType.FREE,
        display_name="Free",
        full_access=False,
        bills_per_month=10,
        events_per_month=20,
        household_members=6,
        price_cents=0,
        billing_interval=None,
    ),
    PlanType.PRO: PlanLimits(
        name=PlanType.PRO,
        display_name="Family Pro",
        full_access=True,
        bills_per_month=UNLIMITED,
        events_per_month=UNLIMITED,
        household_members=UNLIMITED,
        price_cents=settings.pro_monthly_price_cents,
        billing_interval="month",
    ),
    PlanType.PRO_ANNUAL: PlanLimits(
        name=PlanType.PRO_ANNUAL,
        display_name="Family Pro Annual",
        full_access=True,
        bills_per_month=UNLIMITED,
        events_per_month=UNLIMITED,
        household_members=UNLIMITED,
        price_cents=settings.pro_annual_price_cents,
        billing_interval="year",
    ),
}

PAID_PLANS: tuple[PlanType, ...] = tuple(p for p, limits in PLANS.items() if limits.billing_interval)


def parse_plan_type(value: "PlanType | str | None") -> PlanType:
    """Coerce a stored or requested plan name to PlanType. Unknown values are free."""
    if isinstance(value, PlanType):
        return value
    try:
        return PlanType(value)
    except ValueError:
        logger.warning("Unknown plan type %r, treating as free", value)
        return PlanType.FREE


def get_plan(plan_type: "PlanType | str | None") -> PlanLimits:
    """Get plan limits by type. Defaults to free if unknown."""
    return PLANS[parse_plan_type(plan_type)]


def get_plan_by_price(unit_amount: int | None, interval: str | None) -> PlanType | None:
    """Reverse lookup: provider price (amount + interval) -> plan type.

    Matches on the exact amount, so changing a price at the provider without
    updating settings leaves existing subscriptions unmapped (None).
    """
    for plan in PLANS.values():
        if plan.billing_interval and plan.billing_interval == interval and plan.price_cents == unit_amount:
            return plan.name
    return None
