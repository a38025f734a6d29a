"""invoice.payment_succeeded / invoice.payment_failed handling."""

from tests.fakes import deliver, make_event


def _invoice(**overrides):
    invoice = {
        "id": "in_1",
        "customer": "cus_1",
        "subscription": "sub_1",
        "amount_paid": 1999,
        "amount_due": 1999,
        "currency": "usd",
        "billing_reason": "subscription_cycle",
        "attempt_count": 1,
        "lines": {"data": [{"price": {"id": "price_pro"}}]},
    }
    invoice.update(overrides)
    return invoice


def _seed_subscriber(store, gateway, status="active"):
    store.seed(
        "user_subscriptions",
        user_id="user_1",
        gateway_customer_id="cus_1",
        gateway_subscription_id="sub_1",
        status="active",
    )
    gateway.subscriptions["sub_1"] = {
        "id": "sub_1",
        "status": status,
        "customer": "cus_1",
        "current_period_start": 1702592000,
        "current_period_end": 1705270400,
        "cancel_at_period_end": False,
    }


def test_renewal_creates_completed_transaction_and_credits(adapter, store, wallet, gateway):
    store.seed("subscription_plans", gateway_price_id="price_pro", tokens_awarded=5000)
    _seed_subscriber(store, gateway)

    result = deliver(adapter, make_event("invoice.payment_succeeded", _invoice()))

    assert result.success is True
    tx = store.rows("payment_transactions")[0]
    assert tx["id"] == result.transaction_id
    assert tx["status"] == "COMPLETED"
    assert tx["gateway_transaction_id"] == "in_1"
    assert tx["target_wallet_id"] == "wallet_1"
    assert tx["metadata_json"]["type"] == "RENEWAL"
    assert [credit.amount for credit in wallet.credits] == ["5000"]
    assert gateway.fetches == ["sub_1"]


def test_renewal_without_plan_mapping_completes_without_credit(adapter, store, wallet, gateway):
    """No catalog match: zero tokens, no credit, still COMPLETED."""

    _seed_subscriber(store, gateway)

    result = deliver(adapter, make_event("invoice.payment_succeeded", _invoice()))

    assert result.success is True
    tx = store.rows("payment_transactions")[0]
    assert tx["status"] == "COMPLETED"
    assert tx["tokens_to_award"] == 0
    assert wallet.credits == []


def test_renewal_redelivery_short_circuits(adapter, store, wallet, gateway):
    store.seed("subscription_plans", gateway_price_id="price_pro", tokens_awarded=5000)
    _seed_subscriber(store, gateway)
    event = make_event("invoice.payment_succeeded", _invoice())

    first = deliver(adapter, event)
    writes_after_first = len(store.mutations)
    second = deliver(adapter, event)

    assert second.success is True
    assert second.transaction_id == first.transaction_id
    assert len(wallet.credits) == 1
    assert len(store.mutations) == writes_after_first


def test_renewal_for_unknown_customer_writes_nothing(adapter, store, wallet):
    result = deliver(adapter, make_event("invoice.payment_succeeded", _invoice(customer="cus_unknown")))

    assert result.success is False
    assert result.status_code == 404
    assert "cus_unknown" in result.error
    assert store.rows("payment_transactions") == []
    assert wallet.credits == []


def test_renewal_subscription_refresh_failure_keeps_credit(adapter, store, wallet, gateway):
    """Gateway re-fetch errors are surfaced but the credit stands."""

    store.seed("subscription_plans", gateway_price_id="price_pro", tokens_awarded=5000)
    _seed_subscriber(store, gateway)
    del gateway.subscriptions["sub_1"]

    result = deliver(adapter, make_event("invoice.payment_succeeded", _invoice()))

    assert result.success is False
    assert result.status_code == 500
    assert store.rows("payment_transactions")[0]["status"] == "COMPLETED"
    assert len(wallet.credits) == 1


def test_payment_failed_records_failure_and_updates_subscription(adapter, store, gateway):
    _seed_subscriber(store, gateway, status="past_due")

    result = deliver(adapter, make_event("invoice.payment_failed", _invoice(attempt_count=2)))

    assert result.success is True
    tx = store.rows("payment_transactions")[0]
    assert tx["status"] == "FAILED"
    assert tx["gateway_transaction_id"] == "in_1:payment_failed"
    assert tx["metadata_json"]["attempt_count"] == 2
    assert store.rows("user_subscriptions")[0]["status"] == "past_due"


def test_payment_failed_without_owner_writes_nothing(adapter, store):
    result = deliver(adapter, make_event("invoice.payment_failed", _invoice()))

    assert result.status_code == 404
    assert store.rows("payment_transactions") == []


def test_payment_failed_refetch_error_still_records_failure(adapter, store, gateway):
    _seed_subscriber(store, gateway)
    del gateway.subscriptions["sub_1"]

    result = deliver(adapter, make_event("invoice.payment_failed", _invoice()))

    assert result.success is False
    assert store.rows("payment_transactions")[0]["status"] == "FAILED"
    assert store.rows("user_subscriptions")[0]["status"] == "active"


def test_success_after_failed_attempt_is_a_new_transaction(adapter, store, wallet, gateway):
    """A retried invoice that finally succeeds does not revive the FAILED row."""

    store.seed("subscription_plans", gateway_price_id="price_pro", tokens_awarded=5000)
    _seed_subscriber(store, gateway)

    deliver(adapter, make_event("invoice.payment_failed", _invoice(), event_id="evt_fail"))
    result = deliver(adapter, make_event("invoice.payment_succeeded", _invoice(), event_id="evt_ok"))

    assert result.success is True
    statuses = sorted(row["status"] for row in store.rows("payment_transactions"))
    assert statuses == ["COMPLETED", "FAILED"]
    assert len(wallet.credits) == 1


def test_renewal_redelivery_resumes_after_ledger_write_failure(adapter, store, wallet, gateway):
    """A row left PROCESSING by a failed completion is settled on redelivery."""

    store.seed("subscription_plans", gateway_price_id="price_pro", tokens_awarded=5000)
    _seed_subscriber(store, gateway)
    event = make_event("invoice.payment_succeeded", _invoice())

    store.fail_on.add(("update", "payment_transactions"))
    first = deliver(adapter, event)
    assert first.success is False
    assert first.status_code == 500
    assert store.rows("payment_transactions")[0]["status"] == "PROCESSING"
    assert wallet.credits == []

    store.fail_on.clear()
    second = deliver(adapter, event)

    assert second.success is True
    assert second.tokens_awarded == 5000
    rows = store.rows("payment_transactions")
    assert len(rows) == 1
    assert rows[0]["id"] == second.transaction_id
    assert rows[0]["status"] == "COMPLETED"
    assert [credit.amount for credit in wallet.credits] == ["5000"]


def test_renewal_redelivery_after_award_failure_short_circuits(adapter, store, wallet, gateway):
    store.seed("subscription_plans", gateway_price_id="price_pro", tokens_awarded=5000)
    _seed_subscriber(store, gateway)
    event = make_event("invoice.payment_succeeded", _invoice())
    wallet.error = RuntimeError("wallet down")

    first = deliver(adapter, event)
    wallet.error = None
    second = deliver(adapter, event)

    assert first.success is False
    assert second.success is True
    assert second.message == "Invoice already processed"
    assert store.rows("payment_transactions")[0]["status"] == "TOKEN_AWARD_FAILED"
    assert wallet.credits == []


def test_invoice_without_id_is_rejected(adapter, store, wallet, gateway):
    _seed_subscriber(store, gateway)
    writes_before = len(store.mutations)
    invoice = _invoice()
    del invoice["id"]

    succeeded = deliver(adapter, make_event("invoice.payment_succeeded", invoice))
    failed = deliver(adapter, make_event("invoice.payment_failed", invoice, event_id="evt_2"))

    for result in (succeeded, failed):
        assert result.success is False
        assert result.status_code == 400
        assert "invoice id" in result.error
    assert store.rows("payment_transactions") == []
    assert len(store.mutations) == writes_before
    assert wallet.credits == []
