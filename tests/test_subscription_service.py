"""Subscription projection and gateway field mapping."""

from datetime import datetime, timezone

import pytest

from paysync.common.errors import SyncError
from paysync.services.gateway.mapping import invoice_price_id, invoice_subscription_id, subscription_fields
from paysync.services.subscriptions.service import SubscriptionService


def test_subscription_fields_flat_period():
    fields = subscription_fields(
        {
            "id": "sub_1",
            "status": "active",
            "customer": "cus_1",
            "current_period_start": 1700000000,
            "current_period_end": 1702592000,
            "cancel_at_period_end": False,
        }
    )

    assert fields["status"] == "active"
    assert fields["gateway_customer_id"] == "cus_1"
    assert fields["current_period_start"] == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert fields["cancel_at_period_end"] is False


def test_subscription_fields_period_from_items():
    """Newer payloads carry the billing period on the subscription item."""

    fields = subscription_fields(
        {
            "id": "sub_1",
            "status": "past_due",
            "customer": {"id": "cus_1"},
            "items": {"data": [{"current_period_start": 1700000000, "current_period_end": 1702592000}]},
        }
    )

    assert fields["current_period_end"] == datetime.fromtimestamp(1702592000, tz=timezone.utc)
    assert fields["gateway_customer_id"] == "cus_1"


def test_invoice_fields_from_parent_and_pricing():
    invoice = {
        "id": "in_1",
        "parent": {"subscription_details": {"subscription": "sub_1"}},
        "lines": {"data": [{"pricing": {"price_details": {"price": "price_pro"}}}]},
    }

    assert invoice_subscription_id(invoice) == "sub_1"
    assert invoice_price_id(invoice) == "price_pro"


def test_update_without_row_is_not_an_error(store):
    """Unknown subscriptions are logged and skipped."""

    assert SubscriptionService(store).update("sub_unknown", {"status": "canceled"}) is None
    assert store.mutations == []


def test_upsert_store_failure_is_sync_error(store):
    store.fail_on.add(("upsert", "user_subscriptions"))

    with pytest.raises(SyncError):
        SubscriptionService(store).upsert({"gateway_subscription_id": "sub_1", "user_id": "user_1", "status": "active"})
