"""Feature access gate: pure plan/trial -> feature and limit decisions."""

from dataclasses import asdict, dataclass

from familyhub.billing.plans import FREE_FEATURES, UNLIMITED, PlanType, get_plan


@dataclass(frozen=True)
class FeatureLimits:
    bills_per_month: int
    events_per_month: int
    household_members: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def has_access(plan_type: PlanType | str | None, feature_name: str, is_trial_active: bool) -> bool:
    """Whether an owner on ``plan_type`` may use ``feature_name``.

    A running trial unlocks everything. Paid plans unlock everything,
    including feature names the app does not know yet. The free tier only
    gets the basic features.
    """
    if is_trial_active:
        return True
    if get_plan(plan_type).full_access:
        return True
    return feature_name in FREE_FEATURES


def feature_limits(plan_type: PlanType | str | None, is_trial_active: bool) -> FeatureLimits:
    """Monthly usage limits for an owner. ``UNLIMITED`` (-1) means no cap."""
    if is_trial_active:
        return FeatureLimits(UNLIMITED, UNLIMITED, UNLIMITED)
    plan = get_plan(plan_type)
    return FeatureLimits(
        bills_per_month=plan.bills_per_month,
        events_per_month=plan.events_per_month,
        household_members=plan.household_members,
    )


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def is_within_limit(count: int, limit: int) -> bool:
    """True if one more item fits under ``limit``."""
    return is_unlimited(limit) or count < limit
