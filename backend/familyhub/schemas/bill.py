"""Pydantic v2 request/response schemas for bill endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class BillCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    category: str = Field("other", max_length=50)
    due_date: date


class BillResponse(BaseModel):
    id: uuid.UUID
    household_id: uuid.UUID
    name: str
    amount: Decimal
    category: str
    due_date: date
    is_paid: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
