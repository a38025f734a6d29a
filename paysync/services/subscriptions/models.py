"""User subscription rows mirrored from gateway subscriptions."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.common.db import Base
from paysync.services.catalog.models import SubscriptionPlan  # noqa: F401


class UserSubscription(Base):
    """One row per (user, gateway subscription)."""

    __tablename__ = "user_subscriptions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String, index=True)
    gateway_customer_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    gateway_subscription_id: Mapped[str] = mapped_column(String, unique=True)
    plan_id: Mapped[str | None] = mapped_column(ForeignKey("subscription_plans.id"), nullable=True)
    status: Mapped[str] = mapped_column(String, index=True)
    current_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
