"""Household bill model."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Numeric, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from familyhub.database import Base, UUIDPrimaryKeyMixin


class Bill(UUIDPrimaryKeyMixin, Base):
    """A bill tracked by a household. Counted against the monthly bill quota."""

    __tablename__ = "bills"

    household_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="other")
    due_date: Mapped[date] = mapped_column(nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), index=True)

    def __repr__(self) -> str:
        return f"<Bill(id={self.id}, name={self.name!r}, amount={self.amount})>"
