"""Billing API endpoints: entitlement status, Stripe Checkout, cancel-with-refund, trials."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.api.deps import get_current_active_user, get_db, get_household_for_member
from familyhub.billing.access import feature_limits, has_access
from familyhub.billing.entitlements import Entitlement, resolve, resolve_subscription
from familyhub.billing.plans import ALL_FEATURES, PLANS
from familyhub.billing.sync import cancel_and_refund, create_checkout, refresh_entitlement
from familyhub.config import settings
from familyhub.models.user import User
from familyhub.schemas.billing import (
    CancelRequest,
    CancelResponse,
    CheckoutRequest,
    CheckoutResponse,
    LimitsResponse,
    PlanResponse,
    PlansListResponse,
    SubscriptionResponse,
    TrialRequest,
)
from familyhub.services.subscription_service import activate_trial

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _subscription_response(entitlement: Entitlement, synced: bool | None = None) -> SubscriptionResponse:
    limits = feature_limits(entitlement.plan_type, entitlement.is_trial_active)
    return SubscriptionResponse(
        plan_type=entitlement.plan_type.value,
        is_trial_active=entitlement.is_trial_active,
        trial_end_date=entitlement.trial_end_date,
        subscription_end_date=entitlement.subscription_end_date,
        is_active=entitlement.is_active,
        status=entitlement.status,
        limits=LimitsResponse(**limits.as_dict()),
        features={
            name: has_access(entitlement.plan_type, name, entitlement.is_trial_active)
            for name in sorted(ALL_FEATURES)
        },
        synced=synced,
    )


@router.get("/plans", response_model=PlansListResponse)
async def list_plans() -> PlansListResponse:
    """List available plans (public, no auth required)."""
    return PlansListResponse(
        plans=[
            PlanResponse(
                name=p.name.value,
                display_name=p.display_name,
                price_cents=p.price_cents,
                billing_interval=p.billing_interval,
                bills_per_month=p.bills_per_month,
                events_per_month=p.events_per_month,
                household_members=p.household_members,
            )
            for p in PLANS.values()
        ]
    )


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Current entitlement from the local record only (no Stripe call)."""
    return _subscription_response(await resolve(db, current_user.id))


@router.post("/check-subscription-status", response_model=SubscriptionResponse)
async def check_subscription_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Sync with Stripe (e.g. after the checkout redirect), then report the entitlement."""
    result = await refresh_entitlement(db, current_user)
    return _subscription_response(result.entitlement, synced=result.synced)


@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a paid plan."""
    success_url = body.success_url or f"{settings.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = body.cancel_url or f"{settings.frontend_url}/subscription"

    try:
        url = await create_checkout(db, current_user, body.plan_type, success_url, cancel_url)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return CheckoutResponse(url=url)


@router.post("/refund-cancel-subscription", response_model=CancelResponse)
async def refund_cancel_subscription(
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CancelResponse:
    """Refund the latest payment and cancel the subscription immediately."""
    result = await cancel_and_refund(db, body.subscription_id, current_user.id)
    return CancelResponse(
        subscription_id=result.stripe_subscription_id,
        canceled_at=result.canceled_at,
        refund_id=result.refund_id,
        refund_amount=result.refund_amount,
    )


@router.post("/trial", response_model=SubscriptionResponse)
async def start_trial(
    body: TrialRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Start the one-time free trial."""
    if body.household_id is not None:
        household, role = await get_household_for_member(db, body.household_id, current_user)
        if role != "owner":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the household owner can start a trial",
            )

    subscription = await activate_trial(db, current_user.id, body.household_id)
    return _subscription_response(resolve_subscription(subscription))
