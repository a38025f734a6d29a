"""Gateway API access behind a small interface.

Handlers only see plain dicts from `GatewayClient`; the Stripe SDK stays in
`StripeGatewayClient`.
"""

import json
from typing import Any, Protocol

import stripe

from paysync.common.errors import GatewayFetchError, VerificationError
from paysync.common.logging import logger


class GatewayClient(Protocol):
    name: str
    signature_header: str | None

    def verify(self, raw_body: bytes, signature: str | None) -> dict[str, Any]: ...

    def fetch_subscription(self, subscription_id: str) -> dict[str, Any]: ...

    def fetch_product(self, product_id: str) -> dict[str, Any]: ...

    def list_prices(self, product_id: str) -> list[dict[str, Any]]: ...


def _as_dict(obj: Any) -> dict[str, Any]:
    return obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)


class StripeGatewayClient:
    """Stripe webhook verification and object retrieval."""

    name = "stripe"
    signature_header = "stripe-signature"

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        tolerance_seconds: int = 300,
        api_version: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds
        self.api_version = api_version

    def _request_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    def verify(self, raw_body: bytes, signature: str | None) -> dict[str, Any]:
        """Check the `stripe-signature` header against the exact request bytes."""

        if not signature:
            raise VerificationError("Missing stripe-signature header")
        if not self.webhook_secret:
            raise VerificationError("Webhook signing secret is not configured")
        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise VerificationError("Webhook payload is not valid UTF-8") from exc
        try:
            stripe.WebhookSignature.verify_header(payload, signature, self.webhook_secret, self.tolerance_seconds)
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_signature_invalid error=%s", exc)
            raise VerificationError(f"Webhook signature verification failed: {exc}") from exc
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise VerificationError("Webhook payload is not valid JSON") from exc

    def fetch_subscription(self, subscription_id: str) -> dict[str, Any]:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, **self._request_options())
        except stripe.StripeError as exc:
            raise GatewayFetchError(f"Failed to retrieve subscription {subscription_id}: {exc}") from exc
        return _as_dict(subscription)

    def fetch_product(self, product_id: str) -> dict[str, Any]:
        try:
            product = stripe.Product.retrieve(product_id, **self._request_options())
        except stripe.StripeError as exc:
            raise GatewayFetchError(f"Failed to retrieve product {product_id}: {exc}") from exc
        return _as_dict(product)

    def list_prices(self, product_id: str) -> list[dict[str, Any]]:
        try:
            prices = stripe.Price.list(product=product_id, limit=100, **self._request_options())
            return [_as_dict(price) for price in prices.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise GatewayFetchError(f"Failed to list prices for product {product_id}: {exc}") from exc
