"""Child profile model: PIN and device credentials scoped to a household."""

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from familyhub.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ChildProfile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A child account. Logs in with a household-scoped PIN or a registered device."""

    __tablename__ = "child_profiles"

    household_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_selection: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # bcrypt hash; the raw PIN is never stored. Not globally unique.
    pin_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    household: Mapped["Household"] = relationship(back_populates="children", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return f"<ChildProfile(id={self.id}, household_id={self.household_id}, name={self.display_name!r})>"
