"""Tests for caregiver tokens and child PIN / device verification."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.auth.verification import (
    TOKEN_ALPHABET,
    find_child_by_device,
    generate_token,
    list_active_tokens,
    normalize_token,
    purge_expired_tokens,
    revoke_token,
    set_child_pin,
    verify_pin,
    verify_token,
)
from familyhub.errors import (
    ForbiddenError,
    InvalidPinError,
    NotFoundError,
    PinConflictError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
    VerificationError,
)
from familyhub.models.nanny_token import NannyAccessToken

from factories import create_child, create_household, create_user

NOW = datetime(2026, 6, 1, 9, 0)


@pytest.fixture
async def household(db_session: AsyncSession):
    owner = await create_user(db_session)
    return await create_household(db_session, owner)


class TestGenerateToken:
    """Caregiver code creation."""

    async def test_code_shape_and_expiry(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)

        assert len(token.token) == 10
        assert set(token.token) <= set(TOKEN_ALPHABET)
        assert token.expires_at == NOW + timedelta(minutes=60)
        assert token.is_active is True
        assert token.used_at is None

    async def test_codes_are_unique(self, db_session: AsyncSession, household):
        codes = {(await generate_token(db_session, household.id)).token for _ in range(20)}
        assert len(codes) == 20

    def test_alphabet_has_no_ambiguous_characters(self):
        assert not set("01OI") & set(TOKEN_ALPHABET)

    def test_normalize(self):
        assert normalize_token("  abcd-efgh 23 ") == "ABCDEFGH23"


class TestVerifyToken:
    """Single-use consumption."""

    async def test_valid_code_returns_household(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)

        household_id = await verify_token(db_session, token.token, now=NOW + timedelta(minutes=5))

        assert household_id == household.id
        row = (
            await db_session.execute(
                select(NannyAccessToken)
                .where(NannyAccessToken.id == token.id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert row.is_active is False
        assert row.used_at == NOW + timedelta(minutes=5)

    async def test_code_is_single_use(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)
        await verify_token(db_session, token.token, now=NOW)

        with pytest.raises(TokenAlreadyUsedError):
            await verify_token(db_session, token.token, now=NOW)

    async def test_lowercase_and_dashes_accepted(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)
        typed = f"{token.token[:5].lower()}-{token.token[5:].lower()}"

        assert await verify_token(db_session, typed, now=NOW) == household.id

    async def test_unknown_code(self, db_session: AsyncSession, household):
        with pytest.raises(TokenNotFoundError):
            await verify_token(db_session, "ZZZZZZZZZZ", now=NOW)

    async def test_expired_code(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)

        with pytest.raises(TokenExpiredError):
            await verify_token(db_session, token.token, now=NOW + timedelta(minutes=61))

    async def test_expiry_boundary_is_exclusive(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)

        with pytest.raises(TokenExpiredError):
            await verify_token(db_session, token.token, now=token.expires_at)

    async def test_revoked_code(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)
        assert await revoke_token(db_session, token.id, household.id) is True

        with pytest.raises(TokenAlreadyUsedError):
            await verify_token(db_session, token.token, now=NOW)

    def test_failures_share_a_public_message(self):
        messages = {
            cls.public_message
            for cls in (TokenNotFoundError, TokenExpiredError, TokenAlreadyUsedError)
        }
        assert messages == {VerificationError.public_message}


class TestTokenManagement:
    """Listing, revoking and purging codes."""

    async def test_list_active_excludes_used_and_expired(self, db_session: AsyncSession, household):
        fresh = await generate_token(db_session, household.id, now=NOW)
        used = await generate_token(db_session, household.id, now=NOW)
        await generate_token(db_session, household.id, now=NOW - timedelta(hours=2))
        await verify_token(db_session, used.token, now=NOW)

        active = await list_active_tokens(db_session, household.id, now=NOW)
        assert [t.id for t in active] == [fresh.id]

    async def test_revoke_in_other_household_does_nothing(self, db_session: AsyncSession, household):
        token = await generate_token(db_session, household.id, now=NOW)
        other = await create_household(db_session, await create_user(db_session, prefix="other"))

        assert await revoke_token(db_session, token.id, other.id) is False
        assert await verify_token(db_session, token.token, now=NOW) == household.id

    async def test_purge(self, db_session: AsyncSession, household):
        keep = await generate_token(db_session, household.id, now=NOW)
        await generate_token(db_session, household.id, now=NOW - timedelta(hours=2))
        used = await generate_token(db_session, household.id, now=NOW)
        await verify_token(db_session, used.token, now=NOW)

        assert await purge_expired_tokens(db_session, now=NOW) == 2

        remaining = (await db_session.execute(select(NannyAccessToken.id))).scalars().all()
        assert remaining == [keep.id]


class TestChildPin:
    """Household-scoped PINs."""

    async def test_set_and_verify(self, db_session: AsyncSession, household):
        child = await create_child(db_session, household, "Ana")
        await set_child_pin(db_session, child, "1234")

        identity = await verify_pin(db_session, "1234", household.id)
        assert identity.child_id == child.id
        assert identity.display_name == "Ana"
        assert identity.household_id == household.id
        assert child.pin_hash != "1234"

    @pytest.mark.parametrize("pin", ["123", "1234567", "12a4", ""])
    async def test_rejects_bad_format(self, db_session: AsyncSession, household, pin):
        child = await create_child(db_session, household)
        with pytest.raises(ValueError):
            await set_child_pin(db_session, child, pin)

    async def test_sibling_conflict(self, db_session: AsyncSession, household):
        ana = await create_child(db_session, household, "Ana")
        leo = await create_child(db_session, household, "Leo")
        await set_child_pin(db_session, ana, "4321")

        with pytest.raises(PinConflictError):
            await set_child_pin(db_session, leo, "4321")

    async def test_resetting_own_pin_is_allowed(self, db_session: AsyncSession, household):
        ana = await create_child(db_session, household, "Ana")
        await set_child_pin(db_session, ana, "4321")
        await set_child_pin(db_session, ana, "4321")

    async def test_same_pin_in_other_household_is_allowed(self, db_session: AsyncSession, household):
        other = await create_household(db_session, await create_user(db_session, prefix="other"))
        mine = await create_child(db_session, household, "Ana")
        theirs = await create_child(db_session, other, "Mia")
        await set_child_pin(db_session, mine, "1111")
        await set_child_pin(db_session, theirs, "1111")

        assert (await verify_pin(db_session, "1111", other.id)).child_id == theirs.id

    async def test_wrong_pin(self, db_session: AsyncSession, household):
        child = await create_child(db_session, household)
        await set_child_pin(db_session, child, "1234")

        with pytest.raises(InvalidPinError):
            await verify_pin(db_session, "9999", household.id)

    async def test_pin_does_not_cross_households(self, db_session: AsyncSession, household):
        child = await create_child(db_session, household)
        await set_child_pin(db_session, child, "1234")
        other = await create_household(db_session, await create_user(db_session, prefix="other"))

        with pytest.raises(InvalidPinError):
            await verify_pin(db_session, "1234", other.id)


class TestDeviceLookup:
    async def test_registered_device(self, db_session: AsyncSession, household):
        child = await create_child(db_session, household, device_id="ipad-123")
        assert (await find_child_by_device(db_session, "ipad-123")).id == child.id

    async def test_unknown_device(self, db_session: AsyncSession, household):
        with pytest.raises(NotFoundError):
            await find_child_by_device(db_session, "nope")

    async def test_wrong_household(self, db_session: AsyncSession, household):
        await create_child(db_session, household, device_id="ipad-123")
        other = await create_household(db_session, await create_user(db_session, prefix="other"))

        with pytest.raises(ForbiddenError):
            await find_child_by_device(db_session, "ipad-123", other.id)
