"""Stripe object field mapping into internal row shapes.

Handles both the older flat subscription/invoice fields and the newer layout
where billing periods live on subscription items and the invoice's
subscription sits under `parent.subscription_details`.
"""

from datetime import datetime, timezone
from typing import Any

from paysync.services.catalog.service import parse_product_description


def object_id(value: Any) -> str | None:
    """Return the id of an expandable field (a bare id or an expanded object)."""

    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def epoch_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def first_price_id(subscription: dict[str, Any]) -> str | None:
    return object_id(_first_item(subscription).get("price"))


def subscription_fields(subscription: dict[str, Any]) -> dict[str, Any]:
    """Status, billing period and customer from a gateway subscription."""

    item = _first_item(subscription)
    start = subscription.get("current_period_start") or item.get("current_period_start")
    end = subscription.get("current_period_end") or item.get("current_period_end")
    fields = {
        "status": subscription.get("status"),
        "current_period_start": epoch_to_datetime(start),
        "current_period_end": epoch_to_datetime(end),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
    }
    customer_id = object_id(subscription.get("customer"))
    if customer_id:
        fields["gateway_customer_id"] = customer_id
    return fields


def invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    subscription_id = object_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return object_id(details.get("subscription"))


def invoice_price_id(invoice: dict[str, Any]) -> str | None:
    """Price of the invoice's first line item."""

    lines = (invoice.get("lines") or {}).get("data") or []
    if not lines:
        return None
    line = lines[0]
    price_id = object_id(line.get("price"))
    if price_id:
        return price_id
    price_details = (line.get("pricing") or {}).get("price_details") or {}
    return object_id(price_details.get("price"))


def plan_row(price: dict[str, Any], product: dict[str, Any]) -> dict[str, Any]:
    """Catalog row for one gateway price of `product`.

    `tokens_awarded` is only included when metadata carries a valid integer,
    so an upsert never clears a stored value.
    """

    recurring = price.get("recurring") or {}
    price_meta = price.get("metadata") or {}
    product_meta = product.get("metadata") or {}
    currency = price.get("currency")
    row = {
        "gateway_price_id": price["id"],
        "gateway_product_id": product.get("id") or object_id(price.get("product")),
        "name": product.get("name"),
        "description": parse_product_description(product.get("description"), product.get("name")),
        "amount_cents": price.get("unit_amount"),
        "currency": currency.upper() if currency else None,
        "interval": recurring.get("interval"),
        "interval_count": recurring.get("interval_count"),
        "plan_type": "subscription" if price.get("type") == "recurring" or recurring else "one_time_purchase",
        "active": bool(price.get("active", True)) and bool(product.get("active", True)),
        "item_id_internal": price_meta.get("item_id") or product_meta.get("item_id") or price["id"],
        "metadata_json": {**product_meta, **price_meta},
    }
    tokens = parse_int(price_meta.get("tokens_awarded"))
    if tokens is None:
        tokens = parse_int(product_meta.get("tokens_awarded"))
    if tokens is not None:
        row["tokens_awarded"] = tokens
    return row
