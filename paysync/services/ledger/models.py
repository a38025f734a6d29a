"""Payment transaction ledger table."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.common.db import Base, JSONType


class PaymentTransaction(Base):
    """One attempted monetary event and its outcome."""

    __tablename__ = "payment_transactions"
    __table_args__ = (
        # Idempotency key for "was this gateway event already processed".
        UniqueConstraint("gateway_name", "gateway_transaction_id", name="uq_payment_tx_gateway"),
        Index("ix_payment_transactions_status_updated_at", "status", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    organization_id: Mapped[str | None] = mapped_column(String, nullable=True)
    target_wallet_id: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_name: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="PENDING", index=True)
    tokens_to_award: Mapped[int] = mapped_column(Integer, default=0)
    amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    metadata_json: Mapped[dict] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
