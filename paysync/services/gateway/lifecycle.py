"""Subscription lifecycle and product/price catalog handlers."""

from paysync.common.errors import GatewayFetchError, WebhookError
from paysync.common.logging import logger
from paysync.services.gateway.context import HandlerContext
from paysync.services.gateway.events import GatewayEvent, PaymentConfirmation
from paysync.services.gateway.mapping import first_price_id, object_id, plan_row, subscription_fields


def _subscription_values(ctx: HandlerContext, subscription: dict) -> dict:
    values = subscription_fields(subscription)
    price_id = first_price_id(subscription)
    plan = ctx.catalog.find_by_price(price_id) if price_id else None
    if plan is not None:
        values["plan_id"] = plan["id"]
    return values


def handle_subscription_updated(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    subscription = event.data_object
    ctx.subscriptions.update(subscription["id"], _subscription_values(ctx, subscription))
    return PaymentConfirmation.ok(event.id, message="Subscription updated")


def handle_subscription_deleted(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    subscription = event.data_object
    values = {**_subscription_values(ctx, subscription), "status": "canceled"}
    ctx.subscriptions.update(subscription["id"], values)
    return PaymentConfirmation.ok(event.id, message="Subscription canceled")


def handle_product_upserted(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    """Project every price of a created/updated product into the catalog."""

    product = event.data_object
    prices = ctx.gateway.list_prices(product["id"])
    synced = 0
    for price in prices:
        if price["id"] == ctx.catalog.free_plan_price_id:
            continue
        ctx.catalog.upsert_plan(plan_row(price, product))
        synced += 1
    if not synced:
        logger.info("product_without_prices product_id=%s", product["id"])
    return PaymentConfirmation.ok(event.id, message=f"Synced {synced} plan(s) for product {product['id']}")


def handle_product_deleted(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    product = event.data_object
    rows = ctx.catalog.deactivate_product(product["id"])
    return PaymentConfirmation.ok(event.id, message=f"Deactivated {len(rows)} plan(s)")


def handle_price_upserted(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    price = event.data_object
    if price["id"] == ctx.catalog.free_plan_price_id:
        logger.info("free_plan_price_event_ignored price_id=%s", price["id"])
        return PaymentConfirmation.ok(event.id, message="Free plan price ignored")

    product_id = object_id(price.get("product"))
    if not product_id:
        raise WebhookError(f"Price {price['id']} has no product")
    try:
        product = ctx.gateway.fetch_product(product_id)
    except GatewayFetchError as exc:
        raise WebhookError(exc.message) from exc
    if product.get("deleted"):
        raise WebhookError(f"Product {product_id} for price {price['id']} is deleted")

    ctx.catalog.upsert_plan(plan_row(price, product))
    return PaymentConfirmation.ok(event.id, message=f"Synced plan for price {price['id']}")


def handle_price_deleted(ctx: HandlerContext, event: GatewayEvent) -> PaymentConfirmation:
    price = event.data_object
    if price["id"] == ctx.catalog.free_plan_price_id:
        logger.info("free_plan_price_event_ignored price_id=%s", price["id"])
        return PaymentConfirmation.ok(event.id, message="Free plan price ignored")
    ctx.catalog.deactivate_price(price["id"])
    return PaymentConfirmation.ok(event.id, message=f"Deactivated price {price['id']}")
