"""Gateway adapter: verify a webhook, then dispatch it by event kind.

Every known `EventKind` maps to exactly one handler in `HANDLERS`; anything
else is acknowledged as a no-op so the gateway stops redelivering it.
"""

from time import perf_counter

from pydantic import ValidationError

from paysync.common.errors import VerificationError, WebhookError
from paysync.common.logging import event_id_ctx, logger
from paysync.common.metrics import webhook_events_total, webhook_processing_seconds
from paysync.common.tracing import tracer
from paysync.services.catalog.service import CatalogService
from paysync.services.gateway.checkout import (
    handle_checkout_async_payment_failed,
    handle_checkout_completed,
    handle_checkout_expired,
)
from paysync.services.gateway.client import GatewayClient
from paysync.services.gateway.context import Handler, HandlerContext
from paysync.services.gateway.events import EventKind, GatewayEvent, PaymentConfirmation
from paysync.services.gateway.invoices import handle_invoice_payment_failed, handle_invoice_payment_succeeded
from paysync.services.gateway.lifecycle import (
    handle_price_deleted,
    handle_price_upserted,
    handle_product_deleted,
    handle_product_upserted,
    handle_subscription_deleted,
    handle_subscription_updated,
)
from paysync.services.ledger.service import LedgerService
from paysync.services.ledger.wallet import TokenWalletService
from paysync.services.subscriptions.service import SubscriptionService


HANDLERS: dict[EventKind, Handler] = {
    EventKind.CHECKOUT_COMPLETED: handle_checkout_completed,
    EventKind.CHECKOUT_EXPIRED: handle_checkout_expired,
    EventKind.CHECKOUT_ASYNC_PAYMENT_FAILED: handle_checkout_async_payment_failed,
    EventKind.INVOICE_PAYMENT_SUCCEEDED: handle_invoice_payment_succeeded,
    EventKind.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
    EventKind.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    EventKind.PRODUCT_CREATED: handle_product_upserted,
    EventKind.PRODUCT_UPDATED: handle_product_upserted,
    EventKind.PRODUCT_DELETED: handle_product_deleted,
    EventKind.PRICE_CREATED: handle_price_upserted,
    EventKind.PRICE_UPDATED: handle_price_upserted,
    EventKind.PRICE_DELETED: handle_price_deleted,
}


class GatewayAdapter:
    """Webhook entry point for one gateway."""

    def __init__(
        self,
        gateway: GatewayClient,
        ledger: LedgerService,
        catalog: CatalogService,
        subscriptions: SubscriptionService,
        wallet: TokenWalletService,
        service_name: str = "webhooks",
    ) -> None:
        self.gateway = gateway
        self.service_name = service_name
        self.ctx = HandlerContext(
            gateway=gateway,
            ledger=ledger,
            catalog=catalog,
            subscriptions=subscriptions,
            wallet=wallet,
            service_name=service_name,
        )

    @property
    def source(self) -> str:
        return self.gateway.name

    @property
    def signature_header(self) -> str | None:
        return getattr(self.gateway, "signature_header", None)

    def _count(self, event_type: str, outcome: str) -> None:
        webhook_events_total.labels(
            service=self.service_name, source=self.source, event_type=event_type, outcome=outcome
        ).inc()

    def verify_and_parse(self, raw_body: bytes, signature: str | None) -> GatewayEvent:
        payload = self.gateway.verify(raw_body, signature)
        try:
            return GatewayEvent.model_validate(payload)
        except ValidationError as exc:
            raise VerificationError(f"Invalid webhook event payload ({exc.error_count()} errors)") from exc

    def dispatch(self, event: GatewayEvent) -> PaymentConfirmation:
        event_id_ctx.set(event.id)
        handler = HANDLERS.get(event.kind)
        if handler is None:
            logger.info("webhook_event_unhandled source=%s type=%s", self.source, event.type)
            self._count(event.type, "ignored")
            return PaymentConfirmation.ok(event.id, message=f"Unhandled event type {event.type}")

        logger.info("webhook_event_received source=%s type=%s", self.source, event.type)
        start = perf_counter()
        try:
            with tracer.start_as_current_span(f"webhook {event.type}"):
                confirmation = handler(self.ctx, event)
        except WebhookError as exc:
            logger.warning(
                "webhook_event_failed type=%s status=%s error=%s transaction_id=%s",
                event.type,
                exc.status_code,
                exc.message,
                exc.transaction_id,
            )
            self._count(event.type, "failed")
            return PaymentConfirmation.failure(exc)
        finally:
            webhook_processing_seconds.labels(service=self.service_name, event_type=event.type).observe(
                max(0.0, perf_counter() - start)
            )
        self._count(event.type, "processed")
        logger.info("webhook_event_processed type=%s transaction_id=%s", event.type, confirmation.transaction_id)
        return confirmation

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> PaymentConfirmation:
        try:
            event = self.verify_and_parse(raw_body, signature)
        except VerificationError as exc:
            self._count("unverified", "rejected")
            return PaymentConfirmation.failure(exc)
        return self.dispatch(event)
