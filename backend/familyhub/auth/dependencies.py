"""FastAPI authentication dependencies for route protection."""

import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.auth.jwt import SESSION_SCOPES, decode_token
from familyhub.database import get_db
from familyhub.models.household import MANAGER_ROLES, Household, HouseholdMember
from familyhub.models.user import User

# Strict bearer: rejects requests without an Authorization header
_bearer_scheme = HTTPBearer()


@dataclass(frozen=True)
class HouseholdSession:
    """A child or caregiver session, limited to one household.

    ``subject`` is the child profile id for child sessions and an opaque
    session id for caregiver sessions.
    """

    scope: str
    household_id: uuid.UUID
    subject: str

    @property
    def is_child(self) -> bool:
        return self.scope == "child"


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_typed(token: str, expected_type: str) -> dict:
    try:
        payload = decode_token(token)
    except JWTError:
        raise _credentials_exception() from None

    if payload.get("type") != expected_type:
        raise _credentials_exception("Invalid token type")
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is invalid, expired, wrong type, or user not found.
    """
    # Only accept access tokens, not refresh or household session tokens
    payload = _decode_typed(credentials.credentials, "access")

    sub: str | None = payload.get("sub")
    if sub is None:
        raise _credentials_exception()

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise _credentials_exception() from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise _credentials_exception()

    return user


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account is inactive.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


async def get_household_session(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> HouseholdSession:
    """Turn a child / caregiver session token into a ``HouseholdSession``.

    Raises:
        HTTPException 401: If the token is not a valid household session.
    """
    payload = _decode_typed(credentials.credentials, "session")

    scope = payload.get("scope")
    sub = payload.get("sub")
    if scope not in SESSION_SCOPES or sub is None:
        raise _credentials_exception()

    try:
        household_id = uuid.UUID(payload.get("household_id", ""))
    except ValueError:
        raise _credentials_exception() from None

    return HouseholdSession(scope=scope, household_id=household_id, subject=sub)


async def get_household_for_member(
    db: AsyncSession,
    household_id: uuid.UUID,
    user: User,
    manage: bool = False,
) -> tuple[Household, str]:
    """Load a household the user belongs to, with the user's role.

    Args:
        manage: require an owner or admin role.

    Raises:
        HTTPException 404: household does not exist or user is not a member.
        HTTPException 403: ``manage`` is set and the user is a plain member.
    """
    household = await db.get(Household, household_id)
    if household is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Household not found")

    if household.owner_id == user.id:
        role = "owner"
    else:
        result = await db.execute(
            select(HouseholdMember.role).where(
                HouseholdMember.household_id == household_id,
                HouseholdMember.user_id == user.id,
            )
        )
        role = result.scalar_one_or_none()
        if role is None:
            # Same response as a missing household so ids cannot be guessed
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Household not found")

    if manage and role not in MANAGER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only household owners and admins can do this",
        )
    return household, role


async def get_household_reader(
    household_id: uuid.UUID,
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> uuid.UUID:
    """Allow read access to a household for members and for its own child / caregiver sessions.

    Returns the household id once access is established.
    """
    try:
        token_type = decode_token(credentials.credentials).get("type")
    except JWTError:
        raise _credentials_exception() from None

    if token_type == "session":
        session = await get_household_session(credentials)
        if session.household_id != household_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Household not found")
        return household_id

    user = await get_current_active_user(await get_current_user(credentials, db))
    household, _ = await get_household_for_member(db, household_id, user)
    return household.id
