"""Payment transaction ledger and token crediting.

Owns every write to `payment_transactions`. Status changes go through the
state machine and are guarded by the row's current status, so a concurrent
delivery of the same event cannot move a transaction twice.
"""

from datetime import datetime, timezone
from typing import Any

from paysync.common.errors import LedgerWriteError, StoreError, TokenAwardError
from paysync.common.logging import logger
from paysync.common.metrics import token_credits_total
from paysync.common.state_machine import (
    COMPLETED,
    EXPIRED,
    FAILED,
    TOKEN_AWARD_FAILED,
    validate_transition,
)
from paysync.common.store import RecordStore, Row
from paysync.services.ledger.wallet import TokenWalletCredit, TokenWalletService

TABLE = "payment_transactions"
IDEMPOTENCY_KEY = ["gateway_name", "gateway_transaction_id"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerService:
    """Payment transaction state machine plus the wallet credit call."""

    def __init__(
        self,
        store: RecordStore,
        wallet: TokenWalletService,
        gateway_name: str,
        service_name: str = "webhooks",
    ) -> None:
        self.store = store
        self.wallet = wallet
        self.gateway_name = gateway_name
        self.service_name = service_name

    def get_transaction(self, transaction_id: str) -> Row | None:
        rows = self.store.find(TABLE, {"id": transaction_id}, limit=1)
        return rows[0] if rows else None

    def find_by_gateway_id(self, gateway_transaction_id: str) -> Row | None:
        rows = self.store.find(
            TABLE,
            {"gateway_name": self.gateway_name, "gateway_transaction_id": gateway_transaction_id},
            limit=1,
        )
        return rows[0] if rows else None

    def list_by_status(self, status: str, limit: int = 100) -> list[Row]:
        return self.store.find(
            TABLE, {"status": status, "gateway_name": self.gateway_name}, limit=limit, order_by="-updated_at"
        )

    def ensure_transaction(self, gateway_transaction_id: str, **fields: Any) -> tuple[Row, bool]:
        """Insert a transaction for a gateway event unless one already exists.

        Returns `(row, created)`. The insert is a single `ON CONFLICT DO NOTHING`
        on the idempotency key; `created=False` means another delivery got there
        first and `row` is the existing transaction.
        """

        row = {
            **fields,
            "gateway_name": self.gateway_name,
            "gateway_transaction_id": gateway_transaction_id,
        }
        try:
            inserted = self.store.upsert(TABLE, [row], conflict_keys=IDEMPOTENCY_KEY, ignore_duplicates=True)
            if inserted:
                logger.info(
                    "payment_transaction_created id=%s gateway_tx=%s status=%s",
                    inserted[0]["id"],
                    gateway_transaction_id,
                    inserted[0]["status"],
                )
                return inserted[0], True
            existing = self.find_by_gateway_id(gateway_transaction_id)
        except StoreError as exc:
            raise LedgerWriteError(f"Failed to record payment transaction for {gateway_transaction_id}: {exc}") from exc
        if existing is None:
            raise LedgerWriteError(f"Payment transaction for {gateway_transaction_id} vanished after conflict")
        return existing, False

    def record_failed(self, gateway_transaction_id: str, **fields: Any) -> Row:
        """Upsert the transaction for a gateway event straight to FAILED."""

        row = {
            **fields,
            "status": FAILED,
            "gateway_name": self.gateway_name,
            "gateway_transaction_id": gateway_transaction_id,
            "updated_at": _now(),
        }
        try:
            rows = self.store.upsert(TABLE, [row], conflict_keys=IDEMPOTENCY_KEY)
        except StoreError as exc:
            raise LedgerWriteError(f"Failed to record failed payment for {gateway_transaction_id}: {exc}") from exc
        logger.info("payment_transaction_failed id=%s gateway_tx=%s", rows[0]["id"], gateway_transaction_id)
        return rows[0]

    def transition(self, tx: Row, new_status: str, **values: Any) -> Row:
        """Apply one validated status change with optimistic concurrency.

        The UPDATE is filtered on the status the caller read, so a row another
        delivery already moved matches zero rows and raises.
        """

        validate_transition(tx["status"], new_status)
        try:
            rows = self.store.update(
                TABLE,
                {**values, "status": new_status, "updated_at": _now()},
                {"id": tx["id"], "status": tx["status"]},
            )
        except StoreError as exc:
            logger.error("payment_transition_failed id=%s to=%s error=%s", tx["id"], new_status, exc)
            raise LedgerWriteError(
                f"Failed to update payment transaction {tx['id']} to {new_status}: {exc}", tx["id"]
            ) from exc
        if not rows:
            raise LedgerWriteError(
                f"Concurrent update conflict for payment transaction {tx['id']} (expected status {tx['status']})",
                tx["id"],
            )
        logger.info("payment_transition id=%s from=%s to=%s", tx["id"], tx["status"], new_status)
        return rows[0]

    def mark_completed(self, tx: Row, gateway_transaction_id: str | None = None) -> Row:
        values = {"gateway_transaction_id": gateway_transaction_id} if gateway_transaction_id else {}
        return self.transition(tx, COMPLETED, **values)

    def mark_failed(self, tx: Row, reason: str) -> Row:
        metadata = {**(tx.get("metadata_json") or {}), "failure_reason": reason}
        return self.transition(tx, FAILED, metadata_json=metadata)

    def mark_expired(self, tx: Row) -> Row:
        return self.transition(tx, EXPIRED)

    def mark_token_award_failed(self, tx: Row, reason: str) -> Row:
        metadata = {**(tx.get("metadata_json") or {}), "token_award_error": reason}
        return self.transition(tx, TOKEN_AWARD_FAILED, metadata_json=metadata)

    def award_tokens(self, tx: Row, notes: str | None = None) -> int:
        """Credit `tokens_to_award` to the transaction's wallet.

        `tx` must already be COMPLETED. Returns the number of tokens credited
        (0 when there is nothing to award). On failure the transaction moves to
        TOKEN_AWARD_FAILED and `TokenAwardError` is raised; the COMPLETED
        history is kept.
        """

        tokens = int(tx.get("tokens_to_award") or 0)
        if tokens <= 0:
            logger.info("token_award_skipped id=%s tokens=%s", tx["id"], tokens)
            return 0
        if not tx.get("target_wallet_id") or not tx.get("user_id"):
            reason = "Missing target wallet or user for token award"
            self.mark_token_award_failed(tx, reason)
            token_credits_total.labels(service=self.service_name, outcome="failed").inc()
            raise TokenAwardError(f"{reason} on payment transaction {tx['id']}", tx["id"])

        credit = TokenWalletCredit(
            wallet_id=tx["target_wallet_id"],
            amount=str(tokens),
            recorded_by_user_id=tx["user_id"],
            related_entity_id=tx["id"],
            notes=notes,
        )
        try:
            self.wallet.record_transaction(credit)
        except Exception as exc:
            logger.error("token_award_failed id=%s wallet_id=%s error=%s", tx["id"], credit.wallet_id, exc)
            token_credits_total.labels(service=self.service_name, outcome="failed").inc()
            self.mark_token_award_failed(tx, str(exc))
            raise TokenAwardError(f"Token award failed: {exc}", tx["id"]) from exc
        token_credits_total.labels(service=self.service_name, outcome="credited").inc()
        logger.info("tokens_awarded id=%s wallet_id=%s tokens=%s", tx["id"], credit.wallet_id, tokens)
        return tokens
