"""Tests for the Stripe synchronizer: sync, checkout, cancel+refund, batch."""

from contextlib import ExitStack, contextmanager
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Update

from familyhub.billing.plans import PlanType
from familyhub.billing.sync import (
    cancel_and_refund,
    create_checkout,
    get_period,
    plan_from_subscription,
    refresh_entitlement,
    sync,
    sync_all_households,
)
from familyhub.errors import (
    AlreadySubscribedError,
    NotFoundError,
    ProviderError,
    ReconciliationRequiredError,
)
from familyhub.services.subscription_service import get_subscription

from factories import StripeObj, create_household, create_user, set_plan, stripe_subscription

STRIPE = "familyhub.billing.stripe_client"


@contextmanager
def mock_stripe(**functions):
    """Patch several stripe_client functions at once with AsyncMocks."""
    with ExitStack() as stack:
        yield [
            stack.enter_context(patch(f"{STRIPE}.{name}", new=AsyncMock(**spec)))
            for name, spec in functions.items()
        ]


class TestPriceParsing:
    """Mapping a Stripe subscription's first item to a plan and period."""

    def test_monthly(self):
        assert plan_from_subscription(stripe_subscription()) is PlanType.PRO

    def test_annual(self):
        sub = stripe_subscription(unit_amount=6999, interval="year")
        assert plan_from_subscription(sub) is PlanType.PRO_ANNUAL

    def test_unknown_price(self):
        assert plan_from_subscription(stripe_subscription(unit_amount=1234)) is None

    def test_no_items(self):
        sub = StripeObj(id="sub_x", customer="cus_x", status="active", items=StripeObj(data=[]))
        assert plan_from_subscription(sub) is None

    def test_period_from_item(self):
        assert get_period(stripe_subscription()) == (datetime(2026, 1, 1), datetime(2026, 2, 1))

    def test_period_falls_back_to_subscription(self):
        sub = StripeObj(
            id="sub_old",
            status="active",
            items=StripeObj(data=[StripeObj(price=StripeObj(unit_amount=799, recurring=None))]),
            current_period_start=1_767_225_600,
            current_period_end=1_769_904_000,
        )
        assert get_period(sub) == (datetime(2026, 1, 1), datetime(2026, 2, 1))


class TestSync:
    """Pulling Stripe state into the owner's row."""

    async def test_active_monthly_subscription(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(
            find_customer_by_email={"return_value": StripeObj(id="cus_1")},
            list_active_subscriptions={"return_value": [stripe_subscription("sub_1", "cus_1")]},
        ):
            subscription = await sync(db_session, user)

        assert subscription.plan_type is PlanType.PRO
        assert subscription.is_active is True
        assert subscription.status == "active"
        assert subscription.stripe_customer_id == "cus_1"
        assert subscription.stripe_subscription_id == "sub_1"
        assert subscription.subscription_end_date == datetime(2026, 2, 1)
        # first billing date, not the current period
        assert subscription.subscription_start_date == datetime(2025, 12, 1)

    async def test_unknown_price_keeps_plan(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await set_plan(db_session, user, PlanType.PRO_ANNUAL, stripe_subscription_id="sub_1")
        with mock_stripe(
            find_customer_by_email={"return_value": StripeObj(id="cus_1")},
            list_active_subscriptions={"return_value": [stripe_subscription("sub_1", unit_amount=5000)]},
        ):
            subscription = await sync(db_session, user)

        assert subscription.plan_type is PlanType.PRO_ANNUAL
        assert subscription.subscription_end_date == datetime(2026, 2, 1)

    async def test_no_customer_changes_nothing(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(
            find_customer_by_email={"return_value": None},
            list_active_subscriptions={"return_value": []},
        ) as (_, list_active):
            subscription = await sync(db_session, user)

        list_active.assert_not_awaited()
        assert subscription.plan_type is PlanType.FREE
        assert subscription.stripe_customer_id is None

    async def test_no_active_subscription_only_links_customer(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(
            find_customer_by_email={"return_value": StripeObj(id="cus_9")},
            list_active_subscriptions={"return_value": []},
        ):
            subscription = await sync(db_session, user)

        assert subscription.stripe_customer_id == "cus_9"
        assert subscription.plan_type is PlanType.FREE
        assert subscription.stripe_subscription_id is None

    async def test_provider_error_propagates_without_change(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(find_customer_by_email={"side_effect": ProviderError("timeout")}):
            with pytest.raises(ProviderError):
                await sync(db_session, user)

        assert (await get_subscription(db_session, user.id)).stripe_customer_id is None


class TestRefreshEntitlement:
    """Sync-then-resolve with a local fallback."""

    async def test_synced(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(
            find_customer_by_email={"return_value": StripeObj(id="cus_1")},
            list_active_subscriptions={"return_value": [stripe_subscription()]},
        ):
            result = await refresh_entitlement(db_session, user)

        assert result.synced is True
        assert result.entitlement.plan_type is PlanType.PRO

    async def test_provider_down_serves_local_state(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await set_plan(db_session, user, PlanType.PRO, stripe_subscription_id="sub_1")
        with mock_stripe(find_customer_by_email={"side_effect": ProviderError("stripe down")}):
            result = await refresh_entitlement(db_session, user)

        assert result.synced is False
        assert result.entitlement.plan_type is PlanType.PRO


class TestCreateCheckout:
    """Checkout session creation."""

    async def test_free_plan_rejected(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with pytest.raises(ValueError):
            await create_checkout(db_session, user, PlanType.FREE, "https://x/ok", "https://x/cancel")

    async def test_returns_session_url(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(
            find_or_create_customer={"return_value": StripeObj(id="cus_new")},
            list_active_subscriptions={"return_value": []},
            create_checkout_session={"return_value": StripeObj(id="cs_1", url="https://checkout.stripe.com/cs_1")},
        ) as (_, _list, create_session):
            url = await create_checkout(db_session, user, PlanType.PRO_ANNUAL, "https://x/ok", "https://x/cancel")

        assert url == "https://checkout.stripe.com/cs_1"
        kwargs = create_session.await_args.kwargs
        assert kwargs["customer_id"] == "cus_new"
        assert kwargs["plan_type"] is PlanType.PRO_ANNUAL
        assert kwargs["user_id"] == str(user.id)

    async def test_already_subscribed(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with mock_stripe(
            find_or_create_customer={"return_value": StripeObj(id="cus_1")},
            list_active_subscriptions={"return_value": [stripe_subscription("sub_1", "cus_1")]},
            create_checkout_session={"return_value": StripeObj(id="cs_1", url="https://x")},
        ) as (_, _list, create_session):
            with pytest.raises(AlreadySubscribedError):
                await create_checkout(db_session, user, PlanType.PRO, "https://x/ok", "https://x/cancel")

        create_session.assert_not_awaited()


class TestCancelAndRefund:
    """Refund, cancel, then mark the row canceled."""

    @pytest.fixture
    async def pro_user(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await set_plan(db_session, user, PlanType.PRO, stripe_subscription_id="sub_1", stripe_customer_id="cus_1")
        return user

    async def test_happy_path(self, db_session: AsyncSession, pro_user):
        invoice = StripeObj(id="in_1", charge="ch_1", payment_intent=None, amount_paid=799)
        now = datetime(2026, 1, 10, 8, 0)
        with mock_stripe(
            get_latest_paid_invoice={"return_value": invoice},
            create_refund={"return_value": StripeObj(id="re_1")},
            cancel_subscription={"return_value": StripeObj(id="sub_1", status="canceled")},
        ) as (_, refund, cancel):
            result = await cancel_and_refund(db_session, "sub_1", pro_user.id, now=now)

        refund.assert_awaited_once_with(charge_id="ch_1", payment_intent_id=None)
        cancel.assert_awaited_once_with("sub_1")
        assert result.refund_id == "re_1"
        assert result.refund_amount == 799
        assert result.canceled_at == now

        row = await get_subscription(db_session, pro_user.id)
        assert row.status == "canceled"
        assert row.is_active is False
        assert row.canceled_at == now
        assert row.refunded_at == now
        assert row.refund_id == "re_1"

    async def test_refund_by_payment_intent(self, db_session: AsyncSession, pro_user):
        invoice = StripeObj(id="in_1", payment_intent=StripeObj(id="pi_1"), amount_paid=799)
        with mock_stripe(
            get_latest_paid_invoice={"return_value": invoice},
            create_refund={"return_value": StripeObj(id="re_2")},
            cancel_subscription={"return_value": StripeObj(id="sub_1")},
        ) as (_, refund, _cancel):
            await cancel_and_refund(db_session, "sub_1", pro_user.id)

        refund.assert_awaited_once_with(charge_id=None, payment_intent_id="pi_1")

    async def test_refund_from_invoice_payments(self, db_session: AsyncSession, pro_user):
        invoice = stripe.Invoice.construct_from(
            {
                "id": "in_1",
                "object": "invoice",
                "amount_paid": 499,
                "payments": {
                    "object": "list",
                    "data": [
                        {
                            "id": "inpay_1",
                            "status": "paid",
                            "payment": {"type": "payment_intent", "payment_intent": "pi_1"},
                        }
                    ],
                },
            },
            "sk_test",
        )
        with mock_stripe(
            get_latest_paid_invoice={"return_value": invoice},
            create_refund={"return_value": StripeObj(id="re_3")},
            cancel_subscription={"return_value": StripeObj(id="sub_1")},
        ) as (_, refund, _cancel):
            result = await cancel_and_refund(db_session, "sub_1", pro_user.id)

        refund.assert_awaited_once_with(charge_id=None, payment_intent_id="pi_1")
        assert (result.refund_id, result.refund_amount) == ("re_3", 499)
        assert (await get_subscription(db_session, pro_user.id)).refund_id == "re_3"

    async def test_open_invoice_payment_is_skipped(self, db_session: AsyncSession, pro_user):
        payments = StripeObj(
            data=[
                StripeObj(status="open", payment=StripeObj(charge=None, payment_intent="pi_open")),
                StripeObj(status="paid", payment=StripeObj(charge="ch_paid", payment_intent=None)),
            ]
        )
        invoice = StripeObj(id="in_1", payments=payments, amount_paid=799)
        with mock_stripe(
            get_latest_paid_invoice={"return_value": invoice},
            create_refund={"return_value": StripeObj(id="re_4")},
            cancel_subscription={"return_value": StripeObj(id="sub_1")},
        ) as (_, refund, _cancel):
            await cancel_and_refund(db_session, "sub_1", pro_user.id)

        refund.assert_awaited_once_with(charge_id="ch_paid", payment_intent_id=None)

    async def test_no_paid_invoice_cancels_without_refund(self, db_session: AsyncSession, pro_user):
        with mock_stripe(
            get_latest_paid_invoice={"return_value": None},
            create_refund={"return_value": StripeObj(id="re_x")},
            cancel_subscription={"return_value": StripeObj(id="sub_1")},
        ) as (_, refund, _cancel):
            result = await cancel_and_refund(db_session, "sub_1", pro_user.id)

        refund.assert_not_awaited()
        assert result.refund_id is None
        assert result.refund_amount == 0
        row = await get_subscription(db_session, pro_user.id)
        assert row.status == "canceled"
        assert row.refund_id is None

    async def test_other_users_subscription_not_found(self, db_session: AsyncSession, pro_user):
        with mock_stripe(get_latest_paid_invoice={"return_value": None}) as (invoice,):
            with pytest.raises(NotFoundError):
                await cancel_and_refund(db_session, "sub_someone_else", pro_user.id)

        invoice.assert_not_awaited()

    async def test_invoice_lookup_failure_is_plain_provider_error(self, db_session: AsyncSession, pro_user):
        with mock_stripe(get_latest_paid_invoice={"side_effect": ProviderError("timeout")}):
            with pytest.raises(ProviderError) as exc_info:
                await cancel_and_refund(db_session, "sub_1", pro_user.id)

        assert not isinstance(exc_info.value, ReconciliationRequiredError)
        assert (await get_subscription(db_session, pro_user.id)).is_active is True

    async def test_cancel_failure_after_refund_needs_reconciliation(self, db_session: AsyncSession, pro_user):
        invoice = StripeObj(id="in_1", charge="ch_1", amount_paid=799)
        with mock_stripe(
            get_latest_paid_invoice={"return_value": invoice},
            create_refund={"return_value": StripeObj(id="re_1")},
            cancel_subscription={"side_effect": ProviderError("stripe 500")},
        ):
            with pytest.raises(ReconciliationRequiredError) as exc_info:
                await cancel_and_refund(db_session, "sub_1", pro_user.id)

        error = exc_info.value
        assert error.failed_step == "cancel_subscription"
        assert error.refund_id == "re_1"
        assert error.stripe_subscription_id == "sub_1"
        assert error.payload()["reconciliation_required"] is True
        assert (await get_subscription(db_session, pro_user.id)).is_active is True

    async def test_cancel_failure_without_refund_is_retryable(self, db_session: AsyncSession, pro_user):
        with mock_stripe(
            get_latest_paid_invoice={"return_value": None},
            cancel_subscription={"side_effect": ProviderError("stripe 500")},
        ):
            with pytest.raises(ProviderError) as exc_info:
                await cancel_and_refund(db_session, "sub_1", pro_user.id)

        assert not isinstance(exc_info.value, ReconciliationRequiredError)

    async def test_local_update_failure_needs_reconciliation(self, db_session: AsyncSession, pro_user):
        real_execute = db_session.execute

        async def failing_update(statement, *args, **kwargs):
            if isinstance(statement, Update):
                raise SQLAlchemyError("database is locked")
            return await real_execute(statement, *args, **kwargs)

        invoice = StripeObj(id="in_1", charge="ch_1", amount_paid=799)
        with mock_stripe(
            get_latest_paid_invoice={"return_value": invoice},
            create_refund={"return_value": StripeObj(id="re_1")},
            cancel_subscription={"return_value": StripeObj(id="sub_1")},
        ):
            with patch.object(db_session, "execute", new=failing_update):
                with pytest.raises(ReconciliationRequiredError) as exc_info:
                    await cancel_and_refund(db_session, "sub_1", pro_user.id)

        assert exc_info.value.failed_step == "update_local_record"
        assert exc_info.value.refund_id == "re_1"


class TestSyncAllHouseholds:
    """Cron batch over household owners."""

    async def test_one_failure_does_not_stop_the_batch(self, db_session: AsyncSession):
        good = await create_user(db_session, prefix="good")
        bad = await create_user(db_session, prefix="bad")
        await create_household(db_session, good)
        await create_household(db_session, bad)
        await create_household(db_session, good, name="Second home")
        await create_user(db_session, prefix="no-household")

        seen = []

        async def fake_sync(db, user, create_customer=False):
            seen.append(user.id)
            if user.id == bad.id:
                raise ProviderError("stripe down")

        with patch("familyhub.billing.sync.sync", new=fake_sync):
            result = await sync_all_households(db_session)

        assert sorted(seen) == sorted([good.id, bad.id])
        assert result["processed"] == 1
        assert result["errors"] == [{"user_id": str(bad.id), "error": "stripe down"}]

    async def test_empty(self, db_session: AsyncSession):
        assert await sync_all_households(db_session) == {"processed": 0, "errors": []}
