"""Tests for the entitlement resolver and subscription row lifecycle."""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.billing.entitlements import (
    is_trial_active,
    resolve,
    resolve_household,
    resolve_subscription,
)
from familyhub.billing.plans import PlanType
from familyhub.database import utcnow
from familyhub.errors import NotFoundError, TrialUnavailableError
from familyhub.models.subscription import Subscription
from familyhub.services.subscription_service import (
    activate_trial,
    ensure_default_subscription,
    get_subscription,
)

from factories import create_household, create_user, set_plan, start_trial


class TestIsTrialActive:
    """Trial state is derived from the end date on every read."""

    def test_no_trial(self):
        assert is_trial_active(None, datetime(2026, 1, 1)) is False

    def test_before_end(self):
        assert is_trial_active(datetime(2026, 1, 15), datetime(2026, 1, 1)) is True

    def test_at_end_is_over(self):
        end = datetime(2026, 1, 15)
        assert is_trial_active(end, end) is False

    def test_after_end(self):
        assert is_trial_active(datetime(2026, 1, 15), datetime(2026, 2, 1)) is False


class TestResolveSubscription:
    """Pure resolution of a subscription row."""

    def test_missing_row_is_free_without_trial(self):
        entitlement = resolve_subscription(None)
        assert entitlement.plan_type is PlanType.FREE
        assert entitlement.is_trial_active is False

    def test_inactive_paid_row_resolves_to_free(self):
        row = Subscription(plan_type=PlanType.PRO, is_active=False, status="canceled")
        entitlement = resolve_subscription(row, datetime(2026, 1, 1))
        assert entitlement.plan_type is PlanType.FREE
        assert entitlement.status == "canceled"

    def test_active_paid_row(self):
        end = datetime(2026, 2, 1)
        row = Subscription(plan_type=PlanType.PRO_ANNUAL, is_active=True, status="active", subscription_end_date=end)
        entitlement = resolve_subscription(row, datetime(2026, 1, 1))
        assert entitlement.plan_type is PlanType.PRO_ANNUAL
        assert entitlement.subscription_end_date == end


class TestDefaultSubscription:
    """Idempotent creation of the free-tier row."""

    async def test_no_row_resolves_free(self, db_session: AsyncSession):
        entitlement = await resolve(db_session, uuid.uuid4())
        assert entitlement.plan_type is PlanType.FREE
        assert entitlement.is_trial_active is False

    async def test_ensure_many_times_leaves_one_free_row(self, db_session: AsyncSession):
        user = await create_user(db_session)
        for _ in range(5):
            subscription = await ensure_default_subscription(db_session, user.id)

        count = (
            await db_session.execute(
                select(func.count()).select_from(Subscription).where(Subscription.user_id == user.id)
            )
        ).scalar_one()
        assert count == 1
        assert subscription.plan_type is PlanType.FREE
        assert subscription.is_active is True

    async def test_ensure_does_not_downgrade_existing_plan(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await set_plan(db_session, user, PlanType.PRO, stripe_subscription_id="sub_keep")

        subscription = await ensure_default_subscription(db_session, user.id)
        assert subscription.plan_type is PlanType.PRO
        assert subscription.stripe_subscription_id == "sub_keep"


class TestResolve:
    """Resolution against stored rows."""

    async def test_trial_on_free_plan(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await start_trial(db_session, user)

        entitlement = await resolve(db_session, user.id)
        assert entitlement.plan_type is PlanType.FREE
        assert entitlement.is_trial_active is True
        assert entitlement.trial_end_date is not None

    async def test_expired_trial(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await start_trial(db_session, user)

        later = utcnow() + timedelta(days=15)
        entitlement = await resolve(db_session, user.id, now=later)
        assert entitlement.is_trial_active is False

    async def test_past_due_pro_resolves_free(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await set_plan(db_session, user, PlanType.PRO, is_active=False, status="past_due")

        entitlement = await resolve(db_session, user.id)
        assert entitlement.plan_type is PlanType.FREE
        assert entitlement.is_active is False

    async def test_household_uses_owner_plan(self, db_session: AsyncSession):
        owner = await create_user(db_session)
        household = await create_household(db_session, owner)
        await set_plan(db_session, owner, PlanType.PRO)

        found, entitlement = await resolve_household(db_session, household.id)
        assert found.id == household.id
        assert entitlement.plan_type is PlanType.PRO

    async def test_missing_household(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await resolve_household(db_session, uuid.uuid4())


class TestActivateTrial:
    """One trial per owner."""

    async def test_activate_sets_fourteen_day_window(self, db_session: AsyncSession):
        user = await create_user(db_session)
        now = datetime(2026, 3, 1, 12, 0)

        subscription = await activate_trial(db_session, user.id, now=now)
        assert subscription.trial_start_date == now
        assert subscription.trial_end_date == now + timedelta(days=14)

    async def test_second_trial_rejected(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await activate_trial(db_session, user.id)

        with pytest.raises(TrialUnavailableError):
            await activate_trial(db_session, user.id)

    async def test_activate_creates_row_when_missing(self, db_session: AsyncSession):
        user_id = (await create_user(db_session)).id
        subscription = await activate_trial(db_session, user_id)
        assert (await get_subscription(db_session, user_id)).id == subscription.id
