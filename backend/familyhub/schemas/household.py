"""Pydantic v2 request/response schemas for household endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class HouseholdCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class MemberAdd(BaseModel):
    """Add an existing adult account to a household by email."""

    email: EmailStr
    role: str = Field("member", pattern="^(admin|member)$")


class ChildCreate(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=100)
    avatar_selection: str | None = Field(None, max_length=100)
    pin: str | None = Field(None, pattern=r"^\d{4,6}$")


class PinUpdate(BaseModel):
    pin: str = Field(..., pattern=r"^\d{4,6}$")


class DeviceUpdate(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    role: str
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChildResponse(BaseModel):
    """Child profile. The PIN hash is never exposed."""

    id: uuid.UUID
    household_id: uuid.UUID
    display_name: str
    avatar_selection: str | None = None
    has_pin: bool = False
    device_registered: bool = False


class HouseholdResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    description: str | None = None
    role: str | None = None  # caller's role
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
