"""Plan catalog mirrored from gateway products and prices."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.common.db import Base, JSONType


class SubscriptionPlan(Base):
    """One row per gateway price; deactivated rather than deleted."""

    __tablename__ = "subscription_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    gateway_product_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    gateway_price_id: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    interval: Mapped[str | None] = mapped_column(String, nullable=True)
    interval_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    plan_type: Mapped[str] = mapped_column(String, default="subscription")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    tokens_awarded: Mapped[int | None] = mapped_column(Integer, nullable=True)
    item_id_internal: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    metadata_json: Mapped[dict] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
