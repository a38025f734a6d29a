"""Recurring invoice handlers: renewals and failed renewal attempts."""

from paysync.common.errors import LookupMissError, TokenAwardError, WebhookError
from paysync.common.logging import logger, transaction_id_ctx
from paysync.common.metrics import duplicate_events_skipped_total
from paysync.common.state_machine import FAILED, PENDING, PROCESSING
from paysync.services.gateway.context import HandlerContext
from paysync.services.gateway.events import GatewayEvent, PaymentConfirmation
from paysync.services.gateway.mapping import invoice_price_id, invoice_subscription_id, object_id


# Rows a redelivery picks up and settles instead of skipping.
RESUMABLE = frozenset({PENDING, PROCESSING})


def failure_transaction_key(invoice_id: str) -> str:
    """Gateway transaction id for a failed attempt on `invoice_id`.

    Kept apart from the invoice id itself so a later successful retry of the
    same invoice records a new transaction instead of reviving a FAILED one.
    """

    return f"{invoice_id}:payment_failed"


def _invoice_id(invoice: dict) -> str:
    invoice_id = invoice.get("id")
    if not invoice_id:
        raise WebhookError("Invoice event has no invoice id")
    return invoice_id


def _currency(invoice: dict) -> str | None:
    currency = invoice.get("currency")
    return currency.upper() if currency else None


def _already_processed(ctx: HandlerContext, event: GatewayEvent, tx: dict) -> PaymentConfirmation:
    logger.info("invoice_already_processed transaction_id=%s status=%s", tx["id"], tx["status"])
    duplicate_events_skipped_total.labels(service=ctx.service_name, event_type=event.type).inc()
    return PaymentConfirmation.ok(tx["id"], message="Invoice already processed")


def _settle_renewal(
    ctx: HandlerContext, tx: dict, invoice_id: str, subscription_id: str | None
) -> PaymentConfirmation:
    transaction_id_ctx.set(tx["id"])
    tx = ctx.ledger.mark_completed(tx)
    award_error = None
    tokens_awarded = 0
    try:
        tokens_awarded = ctx.ledger.award_tokens(tx, notes=f"Subscription renewal invoice {invoice_id}")
    except TokenAwardError as exc:
        award_error = exc

    # The subscription refresh is independent of the credit outcome.
    sync_error = ctx.refresh_subscription(subscription_id, tx["id"]) if subscription_id else None
    if award_error is not None:
        raise award_error
    if sync_error is not None:
        raise sync_error
    return PaymentConfirmation.ok(tx["id"], tokens_awarded=tokens_awarded)


def handle_invoice_payment_succeeded(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    invoice = event.data_object
    invoice_id = _invoice_id(invoice)
    subscription_id = invoice_subscription_id(invoice)
    existing = ctx.ledger.find_by_gateway_id(invoice_id)
    if existing is not None:
        if existing["status"] not in RESUMABLE:
            return _already_processed(ctx, event, existing)
        logger.info("invoice_resuming transaction_id=%s status=%s", existing["id"], existing["status"])
        return _settle_renewal(ctx, existing, invoice_id, subscription_id)

    customer_id = object_id(invoice.get("customer"))
    if not customer_id:
        logger.info("invoice_without_customer invoice_id=%s", invoice_id)
        return PaymentConfirmation.ok(event.id, message="Invoice has no customer")
    user_id, wallet_id = ctx.resolve_owner(customer_id)

    price_id = invoice_price_id(invoice)
    plan = ctx.catalog.find_by_price(price_id) if price_id else None
    tokens = int(plan.get("tokens_awarded") or 0) if plan else 0
    if plan is None:
        logger.info("invoice_plan_not_found invoice_id=%s price_id=%s tokens=0", invoice_id, price_id)

    tx, created = ctx.ledger.ensure_transaction(
        invoice_id,
        user_id=user_id,
        target_wallet_id=wallet_id,
        status=PROCESSING,
        tokens_to_award=tokens,
        amount_cents=invoice.get("amount_paid"),
        currency=_currency(invoice),
        metadata_json={
            "gateway_event_id": event.id,
            "type": "RENEWAL",
            "subscription_id": subscription_id,
            "item_id_internal": plan.get("item_id_internal") if plan else None,
        },
    )
    if not created and tx["status"] not in RESUMABLE:
        return _already_processed(ctx, event, tx)
    return _settle_renewal(ctx, tx, invoice_id, subscription_id)


def handle_invoice_payment_failed(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    invoice = event.data_object
    invoice_id = _invoice_id(invoice)
    failure_key = failure_transaction_key(invoice_id)
    existing = ctx.ledger.find_by_gateway_id(failure_key)
    if existing is not None and existing["status"] == FAILED:
        return _already_processed(ctx, event, existing)

    customer_id = object_id(invoice.get("customer"))
    if not customer_id:
        raise LookupMissError(f"Invoice {invoice_id} has no customer")
    user_id, wallet_id = ctx.resolve_owner(customer_id)
    subscription_id = invoice_subscription_id(invoice)

    tx = ctx.ledger.record_failed(
        failure_key,
        user_id=user_id,
        target_wallet_id=wallet_id,
        tokens_to_award=0,
        amount_cents=invoice.get("amount_due"),
        currency=_currency(invoice),
        metadata_json={
            "gateway_event_id": event.id,
            "type": "RENEWAL_FAILED",
            "invoice_id": invoice_id,
            "subscription_id": subscription_id,
            "billing_reason": invoice.get("billing_reason"),
            "attempt_count": invoice.get("attempt_count"),
        },
    )
    transaction_id_ctx.set(tx["id"])

    if subscription_id:
        sync_error = ctx.refresh_subscription(subscription_id, tx["id"])
        if sync_error is not None:
            raise sync_error
    return PaymentConfirmation.ok(tx["id"], message="Renewal failure recorded")
