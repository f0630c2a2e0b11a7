"""Household API routes: households, members, children and caregiver codes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.api.deps import (
    check_member_limit,
    get_current_active_user,
    get_db,
    get_household_for_member,
)
from familyhub.auth.verification import (
    generate_token,
    list_active_tokens,
    revoke_token,
    set_child_pin,
)
from familyhub.models.child import ChildProfile
from familyhub.models.household import Household, HouseholdMember
from familyhub.models.user import User
from familyhub.schemas.access import CaregiverTokenResponse, CaregiverTokenSummary
from familyhub.schemas.auth import MessageResponse
from familyhub.schemas.household import (
    ChildCreate,
    ChildResponse,
    DeviceUpdate,
    HouseholdCreate,
    HouseholdResponse,
    MemberAdd,
    MemberResponse,
    PinUpdate,
)
from familyhub.services.subscription_service import ensure_default_subscription

router = APIRouter(prefix="/api/v1/households", tags=["households"])


def _child_response(child: ChildProfile) -> ChildResponse:
    return ChildResponse(
        id=child.id,
        household_id=child.household_id,
        display_name=child.display_name,
        avatar_selection=child.avatar_selection,
        has_pin=child.pin_hash is not None,
        device_registered=child.device_id is not None,
    )


async def _get_child(db: AsyncSession, household_id: uuid.UUID, child_id: uuid.UUID) -> ChildProfile:
    child = await db.get(ChildProfile, child_id)
    if child is None or child.household_id != household_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Child not found")
    return child


# ---------------------------------------------------------------------------
# Households
# ---------------------------------------------------------------------------


@router.post("", response_model=HouseholdResponse, status_code=status.HTTP_201_CREATED)
async def create_household(
    body: HouseholdCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> HouseholdResponse:
    """Create a household owned by the current user."""
    household = Household(owner_id=current_user.id, **body.model_dump())
    db.add(household)
    await db.flush()

    db.add(HouseholdMember(household_id=household.id, user_id=current_user.id, role="owner"))
    await ensure_default_subscription(db, current_user.id, household.id)
    await db.flush()
    await db.refresh(household)

    response = HouseholdResponse.model_validate(household)
    response.role = "owner"
    return response


@router.get("", response_model=list[HouseholdResponse])
async def list_households(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[HouseholdResponse]:
    """Households the current user belongs to."""
    result = await db.execute(
        select(Household, HouseholdMember.role)
        .join(HouseholdMember, HouseholdMember.household_id == Household.id)
        .where(HouseholdMember.user_id == current_user.id)
        .order_by(Household.created_at)
    )
    households = []
    for household, role in result.all():
        item = HouseholdResponse.model_validate(household)
        item.role = role
        households.append(item)
    return households


# ---------------------------------------------------------------------------
# Members and children (quota gated)
# ---------------------------------------------------------------------------


@router.post(
    "/{household_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    household_id: uuid.UUID,
    body: MemberAdd,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    _limit_check: None = Depends(check_member_limit),  # Plan gating
) -> MemberResponse:
    """Add an existing adult account to the household."""
    await get_household_for_member(db, household_id, current_user, manage=True)

    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    existing = await db.execute(
        select(HouseholdMember).where(
            HouseholdMember.household_id == household_id,
            HouseholdMember.user_id == user.id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already a member")

    member = HouseholdMember(household_id=household_id, user_id=user.id, role=body.role)
    db.add(member)
    await db.flush()
    await db.refresh(member)
    return MemberResponse.model_validate(member)


@router.post(
    "/{household_id}/children",
    response_model=ChildResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_child(
    household_id: uuid.UUID,
    body: ChildCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    _limit_check: None = Depends(check_member_limit),  # Plan gating
) -> ChildResponse:
    """Create a child profile, optionally with a PIN."""
    await get_household_for_member(db, household_id, current_user, manage=True)

    child = ChildProfile(
        household_id=household_id,
        display_name=body.display_name,
        avatar_selection=body.avatar_selection,
        created_by=current_user.id,
    )
    db.add(child)
    await db.flush()
    if body.pin is not None:
        await set_child_pin(db, child, body.pin)
    return _child_response(child)


@router.put("/{household_id}/children/{child_id}/pin", response_model=MessageResponse)
async def update_child_pin(
    household_id: uuid.UUID,
    child_id: uuid.UUID,
    body: PinUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Set or change a child's PIN."""
    await get_household_for_member(db, household_id, current_user, manage=True)
    child = await _get_child(db, household_id, child_id)
    await set_child_pin(db, child, body.pin)
    return MessageResponse(message="PIN updated")


@router.put("/{household_id}/children/{child_id}/device", response_model=ChildResponse)
async def register_child_device(
    household_id: uuid.UUID,
    child_id: uuid.UUID,
    body: DeviceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ChildResponse:
    """Register the device a child signs in from."""
    await get_household_for_member(db, household_id, current_user, manage=True)
    child = await _get_child(db, household_id, child_id)

    taken = await db.execute(
        select(ChildProfile.id).where(ChildProfile.device_id == body.device_id, ChildProfile.id != child.id)
    )
    if taken.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Device already registered")

    child.device_id = body.device_id
    await db.flush()
    return _child_response(child)


# ---------------------------------------------------------------------------
# Caregiver codes
# ---------------------------------------------------------------------------


@router.post(
    "/{household_id}/caregiver-tokens",
    response_model=CaregiverTokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_caregiver_token(
    household_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CaregiverTokenResponse:
    """Generate a one-hour, single-use caregiver code. The code is shown once."""
    await get_household_for_member(db, household_id, current_user, manage=True)
    token = await generate_token(db, household_id, created_by=current_user.id)
    return CaregiverTokenResponse.model_validate(token)


@router.get("/{household_id}/caregiver-tokens", response_model=list[CaregiverTokenSummary])
async def list_caregiver_tokens(
    household_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[CaregiverTokenSummary]:
    """Active codes for the household (codes themselves are not returned)."""
    await get_household_for_member(db, household_id, current_user, manage=True)
    tokens = await list_active_tokens(db, household_id)
    return [CaregiverTokenSummary.model_validate(t) for t in tokens]


@router.delete("/{household_id}/caregiver-tokens/{token_id}", response_model=MessageResponse)
async def revoke_caregiver_token(
    household_id: uuid.UUID,
    token_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Revoke an unused caregiver code."""
    await get_household_for_member(db, household_id, current_user, manage=True)
    if not await revoke_token(db, token_id, household_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    return MessageResponse(message="Token revoked")
