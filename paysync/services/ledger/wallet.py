"""Token wallet service client.

The wallet service is an external collaborator. It credits tokens and rejects a
repeated credit for the same `related_entity_id`, which makes a redelivered
webhook safe to process again.
"""

from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from paysync.common.errors import WalletServiceError
from paysync.common.logging import logger, trace_id_ctx


class CreditType(str, Enum):
    CREDIT_PURCHASE = "CREDIT_PURCHASE"


class TokenWalletCredit(BaseModel):
    """One credit request; `amount` is a string-encoded integer."""

    wallet_id: str
    type: CreditType = CreditType.CREDIT_PURCHASE
    amount: str
    recorded_by_user_id: str
    related_entity_id: str
    related_entity_type: str = "payment_transactions"
    notes: str | None = None


class TokenWalletService(Protocol):
    def get_wallet_for_user(self, user_id: str) -> str | None: ...

    def record_transaction(self, credit: TokenWalletCredit) -> dict[str, Any]: ...


class HttpTokenWalletService:
    """`TokenWalletService` over the wallet service's HTTP API."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 5.0, client: httpx.Client | None = None) -> None:
        headers = {"authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)

    def _headers(self) -> dict[str, str]:
        trace_id = trace_id_ctx.get()
        return {"x-trace-id": trace_id} if trace_id else {}

    def get_wallet_for_user(self, user_id: str) -> str | None:
        try:
            resp = self.client.get("/wallets", params={"user_id": user_id}, headers=self._headers())
        except httpx.HTTPError as exc:
            raise WalletServiceError(f"wallet lookup failed for user {user_id}: {exc}") from exc
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise WalletServiceError(f"wallet lookup failed for user {user_id}: HTTP {resp.status_code}")
        return resp.json().get("wallet_id")

    def record_transaction(self, credit: TokenWalletCredit) -> dict[str, Any]:
        try:
            resp = self.client.post(
                f"/wallets/{credit.wallet_id}/transactions",
                json=credit.model_dump(mode="json"),
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise WalletServiceError(f"wallet credit request failed: {exc}") from exc
        if resp.is_error:
            detail = resp.text[:200]
            logger.warning(
                "wallet_credit_rejected wallet_id=%s status=%s detail=%s", credit.wallet_id, resp.status_code, detail
            )
            raise WalletServiceError(f"wallet credit rejected (HTTP {resp.status_code}): {detail}")
        return resp.json()
