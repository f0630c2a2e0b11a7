"""JWT creation and verification for account tokens and household sessions."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt

from familyhub.config import settings

SESSION_SCOPES = ("child", "caregiver")


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + lifetime, "iat": now, "type": token_type})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token.

    Args:
        data: Payload data. Must include ``sub`` (user UUID as string).
        expires_delta: Custom expiration duration. Defaults to
            ``settings.jwt_access_token_expire_minutes`` minutes.

    Returns:
        Encoded JWT string.
    """
    return _encode(
        data, "access", expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token.

    Args:
        data: Payload data. Must include ``sub`` (user UUID as string).
        expires_delta: Custom expiration duration. Defaults to
            ``settings.jwt_refresh_token_expire_days`` days.

    Returns:
        Encoded JWT string.
    """
    return _encode(data, "refresh", expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days))


def create_session_token(
    scope: str,
    household_id: uuid.UUID,
    subject: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a household-scoped session token for a child or caregiver.

    Args:
        scope: ``"child"`` or ``"caregiver"``.
        household_id: The household the session is limited to.
        subject: Child profile id for child sessions; an opaque session id
            for caregiver sessions.
        expires_delta: Defaults to ``settings.session_token_expire_minutes``.

    Returns:
        Encoded JWT string with ``type="session"``.
    """
    if scope not in SESSION_SCOPES:
        raise ValueError(f"Unknown session scope: {scope}")
    payload = {"sub": subject, "scope": scope, "household_id": str(household_id)}
    return _encode(
        payload, "session", expires_delta or timedelta(minutes=settings.session_token_expire_minutes)
    )


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def create_token_pair(user_id: str) -> dict[str, str]:
    """Create both access and refresh tokens for a user."""
    payload = {"sub": user_id}
    return {
        "access_token": create_access_token(payload),
        "refresh_token": create_refresh_token(payload),
        "token_type": "bearer",
    }
