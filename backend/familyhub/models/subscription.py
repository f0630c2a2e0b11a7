"""Subscription model: plan and Stripe billing state per owner."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, String, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from familyhub.billing.plans import PlanType
from familyhub.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Tracks an owner's plan, trial window and Stripe subscription."""

    __tablename__ = "subscriptions"

    # One subscription per owner (UNIQUE backs the upsert-by-owner writes)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    household_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("households.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Plan & status
    plan_type: Mapped[PlanType] = mapped_column(
        Enum(
            PlanType,
            native_enum=False,
            length=20,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=PlanType.FREE,
        server_default=PlanType.FREE.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active", server_default="active")

    # Trial window
    trial_start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Paid period
    subscription_start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    subscription_end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Cancellation / refund audit trail (rows are never deleted)
    canceled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    refund_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="subscription", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"plan_type={self.plan_type.value if self.plan_type else None}, status={self.status})>"
        )
