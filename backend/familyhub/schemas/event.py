"""Pydantic v2 request/response schemas for calendar event endpoints."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=50)
    start_datetime: datetime
    end_datetime: datetime | None = None

    @field_validator("start_datetime", "end_datetime")
    @classmethod
    def _to_naive_utc(cls, value: datetime | None) -> datetime | None:
        # Stored as naive UTC
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def _end_after_start(self) -> "EventCreate":
        if self.end_datetime is not None and self.end_datetime < self.start_datetime:
            raise ValueError("end_datetime must not be before start_datetime")
        return self


class EventResponse(BaseModel):
    id: uuid.UUID
    household_id: uuid.UUID
    title: str
    description: str | None = None
    category: str | None = None
    start_datetime: datetime
    end_datetime: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EventConflict(BaseModel):
    """Two events of the same household whose time ranges overlap."""

    first: EventResponse
    second: EventResponse
