"""Household and membership models."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from familyhub.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

HOUSEHOLD_ROLES = ("owner", "admin", "member")
MANAGER_ROLES = ("owner", "admin")


class Household(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A family household. The owner's subscription is the household's plan."""

    __tablename__ = "households"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    # Relationships
    members: Mapped[list["HouseholdMember"]] = relationship(
        back_populates="household", lazy="selectin", cascade="all, delete-orphan"
    )
    children: Mapped[list["ChildProfile"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="household", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Household(id={self.id}, name={self.name!r}, owner_id={self.owner_id})>"


class HouseholdMember(UUIDPrimaryKeyMixin, Base):
    """An adult's membership in a household."""

    __tablename__ = "household_members"
    __table_args__ = (UniqueConstraint("household_id", "user_id", name="uq_household_members_household_user"),)

    household_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")  # owner, admin, member
    joined_at: Mapped[datetime] = mapped_column(server_default=func.now())

    # Relationships
    household: Mapped["Household"] = relationship(back_populates="members", lazy="selectin")
    user: Mapped["User"] = relationship(back_populates="memberships", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return f"<HouseholdMember(household_id={self.household_id}, user_id={self.user_id}, role={self.role!r})>"
