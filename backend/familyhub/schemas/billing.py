"""Pydantic v2 request/response schemas for billing endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from familyhub.billing.plans import PlanType

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session."""

    plan_type: PlanType = PlanType.PRO
    success_url: str | None = None
    cancel_url: str | None = None


class CancelRequest(BaseModel):
    """Cancel a subscription and refund its latest paid invoice."""

    subscription_id: str = Field(..., min_length=1)


class TrialRequest(BaseModel):
    household_id: uuid.UUID | None = None


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display."""

    name: str
    display_name: str
    price_cents: int
    billing_interval: str | None
    bills_per_month: int  # -1 = unlimited
    events_per_month: int
    household_members: int


class PlansListResponse(BaseModel):
    """All available plans."""

    plans: list[PlanResponse]


class LimitsResponse(BaseModel):
    bills_per_month: int
    events_per_month: int
    household_members: int


class SubscriptionResponse(BaseModel):
    """Effective entitlement for the authenticated owner."""

    plan_type: str
    is_trial_active: bool
    trial_end_date: datetime | None = None
    subscription_end_date: datetime | None = None
    is_active: bool
    status: str
    limits: LimitsResponse
    features: dict[str, bool]
    synced: bool | None = None  # set by check-subscription-status


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    url: str


class CancelResponse(BaseModel):
    success: bool = True
    subscription_id: str
    canceled_at: datetime
    refund_id: str | None = None
    refund_amount: int  # cents
