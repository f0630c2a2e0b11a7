"""One-time caregiver access codes."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, true
from sqlalchemy.orm import Mapped, mapped_column

from familyhub.database import Base, UUIDPrimaryKeyMixin


class NannyAccessToken(UUIDPrimaryKeyMixin, Base):
    """A single-use code granting a caregiver a session in one household."""

    __tablename__ = "nanny_access_tokens"

    token: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    household_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        # Never include the code itself.
        return f"<NannyAccessToken(id={self.id}, household_id={self.household_id}, active={self.is_active})>"
