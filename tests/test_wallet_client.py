"""HTTP token wallet client against a mocked transport."""

import json

import httpx
import pytest

from paysync.common.errors import WalletServiceError
from paysync.services.ledger.wallet import HttpTokenWalletService, TokenWalletCredit


def _service(handler):
    client = httpx.Client(base_url="http://wallet.test", transport=httpx.MockTransport(handler))
    return HttpTokenWalletService("http://wallet.test", client=client)


def test_get_wallet_for_user():
    def handler(request):
        assert request.url.params["user_id"] == "user_1"
        return httpx.Response(200, json={"wallet_id": "wallet_1"})

    assert _service(handler).get_wallet_for_user("user_1") == "wallet_1"


def test_missing_wallet_is_none():
    assert _service(lambda request: httpx.Response(404)).get_wallet_for_user("user_1") is None


def test_record_transaction_posts_credit():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(201, json={"transaction_id": "wtx_1"})

    credit = TokenWalletCredit(
        wallet_id="wallet_1", amount="1000", recorded_by_user_id="user_1", related_entity_id="pt_1"
    )

    assert _service(handler).record_transaction(credit) == {"transaction_id": "wtx_1"}
    assert seen["path"] == "/wallets/wallet_1/transactions"
    body = json.loads(seen["body"])
    assert body["amount"] == "1000"
    assert body["type"] == "CREDIT_PURCHASE"
    assert body["related_entity_id"] == "pt_1"


def test_rejected_credit_raises():
    with pytest.raises(WalletServiceError):
        _service(lambda request: httpx.Response(409, text="duplicate")).record_transaction(
            TokenWalletCredit(wallet_id="w", amount="1", recorded_by_user_id="u", related_entity_id="pt_1")
        )
