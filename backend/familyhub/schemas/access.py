"""Pydantic v2 schemas for child and caregiver access endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class CaregiverTokenRequest(BaseModel):
    """A caregiver code as typed by the caregiver."""

    token: str = Field(..., min_length=1, max_length=64)


class ChildPinRequest(BaseModel):
    household_id: uuid.UUID
    pin: str = Field(..., min_length=1, max_length=16)


class DeviceLoginRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    household_id: uuid.UUID | None = None


# --- Response schemas ---


class SessionResponse(BaseModel):
    """Scoped session issued after a successful verification."""

    access_token: str
    token_type: str = "bearer"
    scope: str
    household_id: uuid.UUID
    expires_in: int  # seconds


class ChildSessionResponse(SessionResponse):
    child_id: uuid.UUID
    child_name: str
    avatar_selection: str | None = None


class CurrentSessionResponse(BaseModel):
    scope: str
    household_id: uuid.UUID
    subject: str
    child_id: uuid.UUID | None = None


class CaregiverTokenResponse(BaseModel):
    """A freshly generated code. The code itself is only returned once."""

    id: uuid.UUID
    token: str
    household_id: uuid.UUID
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CaregiverTokenSummary(BaseModel):
    """Listing entry for an active code, without the code."""

    id: uuid.UUID
    household_id: uuid.UUID
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)
