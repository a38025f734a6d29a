"""Ledger service: idempotent inserts, guarded transitions, crediting."""

import pytest

from paysync.common.errors import LedgerWriteError, TokenAwardError, WalletServiceError
from paysync.services.ledger.service import LedgerService


@pytest.fixture
def ledger(store, wallet):
    return LedgerService(store, wallet, "stripe")


def test_ensure_transaction_returns_existing_on_duplicate_key(ledger, store):
    """Second insert for the same gateway id returns the first row, created=False."""

    first, created = ledger.ensure_transaction("in_1", user_id="user_1", status="PROCESSING")
    second, created_again = ledger.ensure_transaction("in_1", user_id="user_1", status="PROCESSING")

    assert created is True
    assert created_again is False
    assert second["id"] == first["id"]
    assert len(store.rows("payment_transactions")) == 1


def test_transition_conflict_when_status_moved(ledger, store):
    """A stale read cannot move a transaction a second time."""

    tx = store.seed("payment_transactions", status="PENDING")
    ledger.mark_completed(tx, "cs_1")

    with pytest.raises(LedgerWriteError):
        ledger.mark_completed(tx, "cs_1")


def test_store_failure_on_transition_is_ledger_write_error(ledger, store):
    """Store outages surface as a 500-class ledger error."""

    tx = store.seed("payment_transactions", status="PENDING")
    store.fail_on.add(("update", "payment_transactions"))

    with pytest.raises(LedgerWriteError) as info:
        ledger.mark_completed(tx)
    assert info.value.status_code == 500
    assert info.value.transaction_id == tx["id"]


def test_award_tokens_sends_string_amount_keyed_by_transaction(ledger, store, wallet):
    """Credit amount is a string and the related entity is the transaction id."""

    tx = store.seed(
        "payment_transactions", status="COMPLETED", user_id="user_1", target_wallet_id="wallet_1", tokens_to_award=500
    )

    assert ledger.award_tokens(tx) == 500
    credit = wallet.credits[0]
    assert credit.amount == "500"
    assert credit.related_entity_id == tx["id"]
    assert credit.related_entity_type == "payment_transactions"
    assert credit.recorded_by_user_id == "user_1"


def test_award_tokens_skips_zero(ledger, store, wallet):
    """Nothing to award is not an error."""

    tx = store.seed("payment_transactions", status="COMPLETED", user_id="user_1", target_wallet_id="wallet_1")

    assert ledger.award_tokens(tx) == 0
    assert wallet.credits == []


def test_award_tokens_failure_moves_to_token_award_failed(ledger, store, wallet):
    """Wallet errors leave the row TOKEN_AWARD_FAILED and raise with the message."""

    tx = store.seed(
        "payment_transactions", status="COMPLETED", user_id="user_1", target_wallet_id="wallet_1", tokens_to_award=10
    )
    wallet.error = WalletServiceError("wallet is frozen")

    with pytest.raises(TokenAwardError) as info:
        ledger.award_tokens(tx)

    assert "wallet is frozen" in info.value.message
    row = store.rows("payment_transactions")[0]
    assert row["status"] == "TOKEN_AWARD_FAILED"
    assert row["metadata_json"]["token_award_error"] == "wallet is frozen"


def test_award_tokens_without_wallet_fails(ledger, store, wallet):
    """A transaction with no target wallet cannot be credited."""

    tx = store.seed("payment_transactions", status="COMPLETED", user_id="user_1", tokens_to_award=10)

    with pytest.raises(TokenAwardError):
        ledger.award_tokens(tx)
    assert store.rows("payment_transactions")[0]["status"] == "TOKEN_AWARD_FAILED"
    assert wallet.credits == []


def test_record_failed_upserts_same_row(ledger, store):
    """Repeated failure records for one key update a single FAILED row."""

    first = ledger.record_failed("in_1:payment_failed", user_id="user_1", metadata_json={"attempt_count": 1})
    second = ledger.record_failed("in_1:payment_failed", user_id="user_1", metadata_json={"attempt_count": 2})

    assert first["id"] == second["id"]
    rows = store.rows("payment_transactions")
    assert len(rows) == 1
    assert rows[0]["status"] == "FAILED"
    assert rows[0]["metadata_json"]["attempt_count"] == 2
