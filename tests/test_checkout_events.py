"""checkout.session.* handling through the gateway adapter."""

from paysync.common.errors import WalletServiceError
from tests.fakes import deliver, make_event


def _seed_pending(store, **overrides):
    row = {
        "status": "PENDING",
        "user_id": "user_1",
        "target_wallet_id": "wallet_1",
        "tokens_to_award": 1000,
        "gateway_name": "stripe",
    }
    row.update(overrides)
    return store.seed("payment_transactions", **row)


def _session(tx_id, **overrides):
    session = {"id": "cs_1", "mode": "payment", "metadata": {"internal_payment_id": tx_id}}
    session.update(overrides)
    return session


def _subscription():
    return {
        "id": "sub_1",
        "status": "active",
        "customer": "cus_1",
        "current_period_start": 1700000000,
        "current_period_end": 1702592000,
        "cancel_at_period_end": False,
        "items": {"data": [{"price": {"id": "price_pro"}}]},
    }


def test_payment_checkout_completes_and_credits(adapter, store, wallet):
    """One-time purchase: COMPLETED with the session id, then one credit."""

    tx = _seed_pending(store)

    result = deliver(adapter, make_event("checkout.session.completed", _session(tx["id"])))

    assert result.success is True
    assert result.transaction_id == tx["id"]
    row = store.rows("payment_transactions")[0]
    assert row["status"] == "COMPLETED"
    assert row["gateway_transaction_id"] == "cs_1"
    assert [credit.amount for credit in wallet.credits] == ["1000"]


def test_duplicate_delivery_credits_once(adapter, store, wallet):
    """Processing the same event twice credits exactly once and writes nothing the second time."""

    tx = _seed_pending(store)
    event = make_event("checkout.session.completed", _session(tx["id"]))

    first = deliver(adapter, event)
    writes_after_first = len(store.mutations)
    second = deliver(adapter, event)

    assert first.success and second.success
    assert second.transaction_id == first.transaction_id
    assert len(wallet.credits) == 1
    assert wallet.credits[0].amount == "1000"
    assert len(store.mutations) == writes_after_first


def test_missing_transaction_is_404_without_writes(adapter, store):
    result = deliver(adapter, make_event("checkout.session.completed", _session("pt_missing")))

    assert result.success is False
    assert result.status_code == 404
    assert result.error == "Payment transaction not found: pt_missing"
    assert store.mutations == []


def test_crediting_failure_keeps_payment_record(adapter, store, wallet):
    """Wallet failure: TOKEN_AWARD_FAILED, 400 with the wallet's message."""

    tx = _seed_pending(store)
    wallet.error = WalletServiceError("wallet service unavailable")

    result = deliver(adapter, make_event("checkout.session.completed", _session(tx["id"])))

    assert result.success is False
    assert result.status_code == 400
    assert "wallet service unavailable" in result.error
    row = store.rows("payment_transactions")[0]
    assert row["status"] == "TOKEN_AWARD_FAILED"
    assert row["gateway_transaction_id"] == "cs_1"


def test_ledger_write_failure_is_500_and_skips_credit(adapter, store, wallet):
    tx = _seed_pending(store)
    store.fail_on.add(("update", "payment_transactions"))

    result = deliver(adapter, make_event("checkout.session.completed", _session(tx["id"])))

    assert result.status_code == 500
    assert result.transaction_id == tx["id"]
    assert wallet.credits == []


def test_failed_transaction_is_not_revived(adapter, store, wallet):
    tx = _seed_pending(store, status="FAILED")

    result = deliver(adapter, make_event("checkout.session.completed", _session(tx["id"])))

    assert result.status_code == 400
    assert store.rows("payment_transactions")[0]["status"] == "FAILED"
    assert wallet.credits == []


def test_subscription_checkout_upserts_subscription_then_credits(adapter, store, wallet, gateway):
    plan = store.seed("subscription_plans", gateway_price_id="price_pro", item_id_internal="pro_monthly")
    tx = _seed_pending(store, metadata_json={"item_id": "pro_monthly"})
    gateway.subscriptions["sub_1"] = _subscription()
    session = _session(tx["id"], mode="subscription", subscription="sub_1", customer="cus_1")

    result = deliver(adapter, make_event("checkout.session.completed", session))

    assert result.success is True
    subscription = store.rows("user_subscriptions")[0]
    assert subscription["gateway_subscription_id"] == "sub_1"
    assert subscription["plan_id"] == plan["id"]
    assert subscription["user_id"] == "user_1"
    assert subscription["status"] == "active"
    assert store.rows("payment_transactions")[0]["status"] == "COMPLETED"
    assert len(wallet.credits) == 1


def test_subscription_checkout_unknown_item_is_fatal(adapter, store, wallet, gateway):
    """No matching plan: FAILED, no credit, no subscription row."""

    tx = _seed_pending(store)
    gateway.subscriptions["sub_1"] = _subscription()
    session = _session(tx["id"], mode="subscription", subscription="sub_1", customer="cus_1")
    session["metadata"]["item_id"] = "does_not_exist"

    result = deliver(adapter, make_event("checkout.session.completed", session))

    assert result.success is False
    assert result.status_code == 400
    assert store.rows("payment_transactions")[0]["status"] == "FAILED"
    assert store.rows("user_subscriptions") == []
    assert wallet.credits == []


def test_subscription_upsert_failure_completes_without_credit(adapter, store, wallet, gateway):
    store.seed("subscription_plans", gateway_price_id="price_pro")
    tx = _seed_pending(store)
    gateway.subscriptions["sub_1"] = _subscription()
    store.fail_on.add(("upsert", "user_subscriptions"))
    session = _session(tx["id"], mode="subscription", subscription="sub_1", customer="cus_1")

    result = deliver(adapter, make_event("checkout.session.completed", session))

    assert result.success is False
    assert result.transaction_id == tx["id"]
    assert store.rows("payment_transactions")[0]["status"] == "COMPLETED"
    assert wallet.credits == []


def test_expired_checkout_marks_pending_expired(adapter, store):
    tx = _seed_pending(store)

    result = deliver(adapter, make_event("checkout.session.expired", _session(tx["id"])))

    assert result.success is True
    assert store.rows("payment_transactions")[0]["status"] == "EXPIRED"


def test_expired_checkout_for_completed_payment_is_noop(adapter, store):
    tx = _seed_pending(store, status="COMPLETED")

    result = deliver(adapter, make_event("checkout.session.expired", _session(tx["id"])))

    assert result.success is True
    assert store.mutations == []
