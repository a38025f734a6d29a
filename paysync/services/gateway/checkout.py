"""Checkout session handlers: one-time purchases and new subscriptions."""

from paysync.common.errors import SyncError, TransactionNotFoundError, WebhookError
from paysync.common.logging import logger, transaction_id_ctx
from paysync.common.metrics import duplicate_events_skipped_total
from paysync.common.state_machine import COMPLETED, TERMINAL_FAILURES
from paysync.common.store import Row
from paysync.services.gateway.context import HandlerContext
from paysync.services.gateway.events import GatewayEvent, PaymentConfirmation
from paysync.services.gateway.mapping import first_price_id, object_id, subscription_fields


def _metadata_transaction_id(session: dict) -> str | None:
    return (session.get("metadata") or {}).get("internal_payment_id")


def handle_checkout_completed(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    session = event.data_object
    transaction_id = _metadata_transaction_id(session)
    if not transaction_id:
        raise WebhookError(f"Checkout session {session.get('id')} has no internal_payment_id metadata")
    transaction_id_ctx.set(transaction_id)

    tx = ctx.ledger.get_transaction(transaction_id)
    if tx is None:
        raise TransactionNotFoundError(transaction_id)
    if tx["status"] == COMPLETED:
        logger.info("checkout_already_completed transaction_id=%s", transaction_id)
        duplicate_events_skipped_total.labels(service=ctx.service_name, event_type=event.type).inc()
        return PaymentConfirmation.ok(transaction_id, message="Payment already processed")
    if tx["status"] in TERMINAL_FAILURES:
        raise WebhookError(f"Payment transaction {transaction_id} is already {tx['status']}", transaction_id)

    if session.get("mode") == "subscription":
        return _complete_subscription_checkout(ctx, session, tx)

    tx = ctx.ledger.mark_completed(tx, session.get("id"))
    tokens = ctx.ledger.award_tokens(tx, notes=f"Token purchase via checkout session {session.get('id')}")
    return PaymentConfirmation.ok(transaction_id, tokens_awarded=tokens)


def _resolve_plan(ctx: HandlerContext, tx: Row, session: dict, subscription: dict) -> tuple[Row | None, str]:
    item_id = (tx.get("metadata_json") or {}).get("item_id") or (session.get("metadata") or {}).get("item_id")
    if item_id:
        return ctx.catalog.find_by_item_id(item_id), f"item {item_id}"
    price_id = first_price_id(subscription)
    if price_id:
        return ctx.catalog.find_by_price(price_id), f"price {price_id}"
    return None, "subscription without item or price"


def _complete_subscription_checkout(ctx: HandlerContext, session: dict, tx: Row) -> PaymentConfirmation:
    """Subscription purchase: the subscription row must exist before any credit."""

    transaction_id = tx["id"]
    subscription_id = object_id(session.get("subscription"))
    customer_id = object_id(session.get("customer"))
    if not subscription_id or not customer_id:
        raise WebhookError(
            f"Subscription checkout {session.get('id')} is missing subscription or customer id", transaction_id
        )

    subscription = ctx.gateway.fetch_subscription(subscription_id)
    plan, looked_up = _resolve_plan(ctx, tx, session, subscription)
    if plan is None:
        reason = f"No subscription plan matches {looked_up}"
        logger.error("checkout_plan_missing transaction_id=%s lookup=%s", transaction_id, looked_up)
        ctx.ledger.mark_failed(tx, reason)
        raise WebhookError(reason, transaction_id)

    try:
        ctx.subscriptions.upsert(
            {
                **subscription_fields(subscription),
                "user_id": tx.get("user_id"),
                "plan_id": plan["id"],
                "gateway_customer_id": customer_id,
                "gateway_subscription_id": subscription_id,
            }
        )
    except SyncError as exc:
        # Payment happened; record it, but never credit without a subscription row.
        ctx.ledger.mark_completed(tx, session.get("id"))
        raise SyncError(f"Payment recorded but subscription sync failed: {exc.message}", transaction_id) from exc

    tx = ctx.ledger.mark_completed(tx, session.get("id"))
    tokens = ctx.ledger.award_tokens(tx, notes=f"Subscription {subscription_id} initial purchase")
    return PaymentConfirmation.ok(transaction_id, tokens_awarded=tokens)


def _close_pending_checkout(ctx: HandlerContext, event: GatewayEvent, outcome: str) -> PaymentConfirmation:
    session = event.data_object
    transaction_id = _metadata_transaction_id(session)
    tx = ctx.ledger.get_transaction(transaction_id) if transaction_id else None
    if tx is None or tx["status"] != "PENDING":
        logger.info("checkout_close_skipped transaction_id=%s outcome=%s", transaction_id, outcome)
        return PaymentConfirmation.ok(transaction_id or event.id, message="No pending payment to update")
    transaction_id_ctx.set(transaction_id)
    if outcome == "expired":
        ctx.ledger.mark_expired(tx)
    else:
        ctx.ledger.mark_failed(tx, f"Checkout session {session.get('id')} asynchronous payment failed")
    return PaymentConfirmation.ok(transaction_id, message=f"Checkout {outcome}")


def handle_checkout_expired(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    return _close_pending_checkout(ctx, event, "expired")


def handle_checkout_async_payment_failed(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    return _close_pending_checkout(ctx, event, "failed")
