"""Gateway event envelope, event kinds and handler results."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from paysync.common.errors import WebhookError


class EventKind(str, Enum):
    """Closed set of gateway event types this service acts on."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    CHECKOUT_EXPIRED = "checkout.session.expired"
    CHECKOUT_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_DELETED = "product.deleted"
    PRICE_CREATED = "price.created"
    PRICE_UPDATED = "price.updated"
    PRICE_DELETED = "price.deleted"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, event_type: str) -> "EventKind":
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


class GatewayEvent(BaseModel):
    """Verified webhook envelope: `data.object` carries the gateway object."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    created: int | None = None
    livemode: bool = False
    data: dict[str, Any]

    @property
    def kind(self) -> EventKind:
        return EventKind.from_type(self.type)

    @property
    def data_object(self) -> dict[str, Any]:
        return self.data.get("object") or {}


class PaymentConfirmation(BaseModel):
    """Outcome of processing one event, mapped onto the HTTP response."""

    success: bool
    transaction_id: str | None = None
    tokens_awarded: int | None = None
    message: str | None = None
    error: str | None = None
    status_code: int = 200

    @classmethod
    def ok(cls, transaction_id: str | None, message: str | None = None, tokens_awarded: int | None = None):
        return cls(success=True, transaction_id=transaction_id, message=message, tokens_awarded=tokens_awarded)

    @classmethod
    def failure(cls, exc: WebhookError):
        return cls(
            success=False,
            transaction_id=exc.transaction_id,
            error=exc.message,
            status_code=exc.status_code,
        )
