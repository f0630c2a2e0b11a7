"""Child and caregiver access: PIN, device and one-time code logins.

These endpoints are unauthenticated. Each success issues a short-lived
session token scoped to one household.
"""

import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.api.deps import HouseholdSession, get_db, get_household_session
from familyhub.auth.jwt import create_session_token
from familyhub.auth.verification import find_child_by_device, verify_pin, verify_token
from familyhub.config import settings
from familyhub.schemas.access import (
    CaregiverTokenRequest,
    ChildPinRequest,
    ChildSessionResponse,
    CurrentSessionResponse,
    DeviceLoginRequest,
    SessionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/access", tags=["access"])

_SESSION_SECONDS = settings.session_token_expire_minutes * 60


def _child_session(child_id: uuid.UUID, household_id: uuid.UUID, name: str, avatar: str | None) -> ChildSessionResponse:
    return ChildSessionResponse(
        access_token=create_session_token("child", household_id, str(child_id)),
        scope="child",
        household_id=household_id,
        expires_in=_SESSION_SECONDS,
        child_id=child_id,
        child_name=name,
        avatar_selection=avatar,
    )


@router.post("/caregiver", response_model=SessionResponse)
async def caregiver_login(body: CaregiverTokenRequest, db: AsyncSession = Depends(get_db)) -> SessionResponse:
    """Consume a one-time caregiver code and start a caregiver session."""
    household_id = await verify_token(db, body.token)
    return SessionResponse(
        access_token=create_session_token("caregiver", household_id, uuid.uuid4().hex),
        scope="caregiver",
        household_id=household_id,
        expires_in=_SESSION_SECONDS,
    )


@router.post("/child-pin", response_model=ChildSessionResponse)
async def child_pin_login(body: ChildPinRequest, db: AsyncSession = Depends(get_db)) -> ChildSessionResponse:
    """Sign a child in with their household PIN."""
    identity = await verify_pin(db, body.pin, body.household_id)
    return _child_session(identity.child_id, identity.household_id, identity.display_name, identity.avatar_selection)


@router.post("/child-device-login", response_model=ChildSessionResponse)
async def child_device_login(body: DeviceLoginRequest, db: AsyncSession = Depends(get_db)) -> ChildSessionResponse:
    """Sign a child in from their registered device."""
    child = await find_child_by_device(db, body.device_id, body.household_id)
    logger.info("Child %s signed in by device", child.id)
    return _child_session(child.id, child.household_id, child.display_name, child.avatar_selection)


@router.get("/session", response_model=CurrentSessionResponse)
async def current_session(session: HouseholdSession = Depends(get_household_session)) -> CurrentSessionResponse:
    """Describe the household session carried by the bearer token."""
    return CurrentSessionResponse(
        scope=session.scope,
        household_id=session.household_id,
        subject=session.subject,
        child_id=uuid.UUID(session.subject) if session.is_child else None,
    )
