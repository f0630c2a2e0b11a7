"""Household bills API routes: creation is quota gated per month."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.api.deps import (
    check_bill_limit,
    get_current_active_user,
    get_db,
    get_household_for_member,
)
from familyhub.models.bill import Bill
from familyhub.models.user import User
from familyhub.schemas.bill import BillCreate, BillResponse

router = APIRouter(prefix="/api/v1/households/{household_id}/bills", tags=["bills"])


@router.post(
    "",
    response_model=BillResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a bill",
)
async def create_bill(
    household_id: uuid.UUID,
    body: BillCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    _limit_check: None = Depends(check_bill_limit),  # Plan gating
) -> BillResponse:
    """Create a bill in the household."""
    bill = Bill(household_id=household_id, created_by=current_user.id, **body.model_dump())
    db.add(bill)
    await db.flush()
    await db.refresh(bill)
    return BillResponse.model_validate(bill)


@router.get("", response_model=list[BillResponse], summary="List bills")
async def list_bills(
    household_id: uuid.UUID,
    unpaid_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[BillResponse]:
    """Bills of the household, soonest due first."""
    await get_household_for_member(db, household_id, current_user)

    filters = [Bill.household_id == household_id]
    if unpaid_only:
        filters.append(Bill.is_paid.is_(False))

    result = await db.execute(select(Bill).where(*filters).order_by(Bill.due_date).offset(skip).limit(limit))
    return [BillResponse.model_validate(b) for b in result.scalars().all()]
