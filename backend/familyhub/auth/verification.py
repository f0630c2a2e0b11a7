"""Caregiver token and child PIN / device verification.

Caregiver tokens are single-use: consuming one is a single conditional
UPDATE, so two concurrent verifications of the same code cannot both win.
Every failure reaches the caller as the same generic rejection; the
specific cause is only logged.
"""

import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.auth.passwords import hash_pin, verify_pin_hash
from familyhub.config import settings
from familyhub.database import utcnow
from familyhub.errors import (
    ForbiddenError,
    InvalidPinError,
    NotFoundError,
    PinConflictError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from familyhub.models.child import ChildProfile
from familyhub.models.nanny_token import NannyAccessToken

logger = logging.getLogger(__name__)

# No 0/O, 1/I: codes are read aloud and typed by hand.
TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

PIN_PATTERN = re.compile(r"^\d{4,6}$")


@dataclass(frozen=True)
class ChildIdentity:
    """Minimal payload needed to start a child session."""

    child_id: uuid.UUID
    display_name: str
    avatar_selection: str | None
    household_id: uuid.UUID


def _new_code(length: int) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def normalize_token(token: str) -> str:
    return token.strip().replace("-", "").replace(" ", "").upper()


# ---------------------------------------------------------------------------
# Caregiver tokens
# ---------------------------------------------------------------------------


async def generate_token(
    db: AsyncSession,
    household_id: uuid.UUID,
    created_by: uuid.UUID | None = None,
    now: datetime | None = None,
) -> NannyAccessToken:
    """Create a one-hour, single-use caregiver code for a household."""
    now = now or utcnow()
    token = NannyAccessToken(
        token=_new_code(settings.nanny_token_length),
        household_id=household_id,
        created_by=created_by,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.nanny_token_ttl_minutes),
        is_active=True,
    )
    db.add(token)
    await db.flush()
    logger.info(
        "Generated caregiver token %s for household %s (expires %s)",
        token.id,
        household_id,
        token.expires_at.isoformat(),
    )
    return token


async def verify_token(db: AsyncSession, token: str, now: datetime | None = None) -> uuid.UUID:
    """Consume a caregiver code and return its household id.

    Raises:
        TokenNotFoundError: no such code.
        TokenExpiredError: the code exists but its window has passed.
        TokenAlreadyUsedError: the code was consumed or revoked.
    """
    now = now or utcnow()
    code = normalize_token(token)

    result = await db.execute(
        update(NannyAccessToken)
        .where(
            NannyAccessToken.token == code,
            NannyAccessToken.is_active.is_(True),
            NannyAccessToken.used_at.is_(None),
            NannyAccessToken.expires_at > now,
        )
        .values(used_at=now, is_active=False)
        .returning(NannyAccessToken.id, NannyAccessToken.household_id)
    )
    row = result.one_or_none()
    if row is not None:
        logger.info("Caregiver token %s consumed for household %s", row.id, row.household_id)
        return row.household_id

    # Lost the conditional update: classify the cause for operators only.
    existing = (
        await db.execute(
            select(NannyAccessToken)
            .where(NannyAccessToken.token == code)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()

    if existing is None:
        logger.warning("Caregiver token verification failed: unknown code")
        raise TokenNotFoundError("caregiver token not found")
    if existing.used_at is not None or not existing.is_active:
        logger.warning("Caregiver token %s verification failed: already used or revoked", existing.id)
        raise TokenAlreadyUsedError(f"caregiver token {existing.id} already used")
    logger.warning("Caregiver token %s verification failed: expired at %s", existing.id, existing.expires_at)
    raise TokenExpiredError(f"caregiver token {existing.id} expired")


async def list_active_tokens(
    db: AsyncSession, household_id: uuid.UUID, now: datetime | None = None
) -> list[NannyAccessToken]:
    """Unused, unrevoked, unexpired codes for a household, newest first."""
    now = now or utcnow()
    result = await db.execute(
        select(NannyAccessToken)
        .where(
            NannyAccessToken.household_id == household_id,
            NannyAccessToken.is_active.is_(True),
            NannyAccessToken.used_at.is_(None),
            NannyAccessToken.expires_at > now,
        )
        .order_by(NannyAccessToken.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke_token(db: AsyncSession, token_id: uuid.UUID, household_id: uuid.UUID) -> bool:
    """Deactivate a code before it is used. Returns False if nothing was revoked."""
    result = await db.execute(
        update(NannyAccessToken)
        .where(
            NannyAccessToken.id == token_id,
            NannyAccessToken.household_id == household_id,
            NannyAccessToken.is_active.is_(True),
        )
        .values(is_active=False)
        .returning(NannyAccessToken.id)
    )
    revoked = result.scalar_one_or_none() is not None
    if revoked:
        logger.info("Caregiver token %s revoked in household %s", token_id, household_id)
    return revoked


async def purge_expired_tokens(db: AsyncSession, now: datetime | None = None) -> int:
    """Delete codes that are expired or no longer usable."""
    now = now or utcnow()
    result = await db.execute(
        delete(NannyAccessToken)
        .where(
            or_(
                NannyAccessToken.expires_at <= now,
                NannyAccessToken.is_active.is_(False),
            )
        )
        .returning(NannyAccessToken.id)
    )
    purged = len(result.all())
    logger.info("Purged %d caregiver tokens", purged)
    return purged


# ---------------------------------------------------------------------------
# Child PINs and devices
# ---------------------------------------------------------------------------


async def _children_with_pins(db: AsyncSession, household_id: uuid.UUID) -> list[ChildProfile]:
    result = await db.execute(
        select(ChildProfile).where(
            ChildProfile.household_id == household_id,
            ChildProfile.pin_hash.is_not(None),
        )
    )
    return list(result.scalars().all())


async def set_child_pin(db: AsyncSession, child: ChildProfile, pin: str) -> None:
    """Set or replace a child's PIN. Must be unique within the household."""
    if not PIN_PATTERN.match(pin):
        raise ValueError("PIN must be 4 to 6 digits")

    for sibling in await _children_with_pins(db, child.household_id):
        if sibling.id != child.id and verify_pin_hash(pin, sibling.pin_hash):
            raise PinConflictError(f"PIN collides with child {sibling.id} in household {child.household_id}")

    child.pin_hash = hash_pin(pin)
    await db.flush()
    logger.info("PIN updated for child %s", child.id)


async def verify_pin(db: AsyncSession, pin: str, household_id: uuid.UUID) -> ChildIdentity:
    """Resolve a PIN to a child within one household.

    Raises:
        InvalidPinError: no child in that household has this PIN.
    """
    if PIN_PATTERN.match(pin):
        for child in await _children_with_pins(db, household_id):
            if verify_pin_hash(pin, child.pin_hash):
                logger.info("Child %s signed in by PIN", child.id)
                return ChildIdentity(
                    child_id=child.id,
                    display_name=child.display_name,
                    avatar_selection=child.avatar_selection,
                    household_id=child.household_id,
                )

    logger.warning("PIN verification failed for household %s", household_id)
    raise InvalidPinError(f"no PIN match in household {household_id}")


async def find_child_by_device(
    db: AsyncSession, device_id: str, household_id: uuid.UUID | None = None
) -> ChildProfile:
    """Look up the child registered to a device, optionally checking its household.

    Raises:
        NotFoundError: no child is registered to the device.
        ForbiddenError: the child does not belong to ``household_id``.
    """
    result = await db.execute(select(ChildProfile).where(ChildProfile.device_id == device_id))
    child = result.scalar_one_or_none()
    if child is None:
        raise NotFoundError("no child account registered to this device")
    if household_id is not None and child.household_id != household_id:
        logger.warning("Device login for child %s rejected for household %s", child.id, household_id)
        raise ForbiddenError(f"child {child.id} is not a member of household {household_id}")
    return child
