"""Collaborators shared by every event handler."""

from collections.abc import Callable
from dataclasses import dataclass

from paysync.common.errors import LookupMissError, WebhookError
from paysync.common.logging import logger
from paysync.services.catalog.service import CatalogService
from paysync.services.gateway.client import GatewayClient
from paysync.services.gateway.events import GatewayEvent, PaymentConfirmation
from paysync.services.gateway.mapping import subscription_fields
from paysync.services.ledger.service import LedgerService
from paysync.services.ledger.wallet import TokenWalletService
from paysync.services.subscriptions.service import SubscriptionService


@dataclass
class HandlerContext:
    gateway: GatewayClient
    ledger: LedgerService
    catalog: CatalogService
    subscriptions: SubscriptionService
    wallet: TokenWalletService
    service_name: str = "webhooks"

    def resolve_owner(self, customer_id: str) -> tuple[str, str]:
        """Map a gateway customer to `(user_id, wallet_id)` or raise a lookup miss."""

        user_subscription = self.subscriptions.find_by_customer(customer_id)
        if user_subscription is None:
            raise LookupMissError(f"User subscription not found for customer {customer_id}")
        user_id = user_subscription["user_id"]
        wallet_id = self.wallet.get_wallet_for_user(user_id)
        if not wallet_id:
            raise LookupMissError(f"Token wallet not found for user {user_id}")
        return user_id, wallet_id

    def refresh_subscription(self, subscription_id: str, transaction_id: str | None) -> WebhookError | None:
        """Re-fetch a subscription from the gateway and store its current state.

        Returns the error instead of raising; callers run this after the
        primary payment fact is committed and decide how to surface it.
        """

        try:
            subscription = self.gateway.fetch_subscription(subscription_id)
            self.subscriptions.update(subscription_id, subscription_fields(subscription))
        except WebhookError as exc:
            logger.error(
                "subscription_refresh_failed subscription_id=%s transaction_id=%s error=%s",
                subscription_id,
                transaction_id,
                exc.message,
            )
            exc.transaction_id = exc.transaction_id or transaction_id
            return exc
        return None


Handler = Callable[[HandlerContext, GatewayEvent], PaymentConfirmation]
