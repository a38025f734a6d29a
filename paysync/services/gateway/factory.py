"""Adapter construction keyed by the webhook source path segment."""

from collections.abc import Callable

from paysync.common.config import settings
from paysync.common.store import RecordStore
from paysync.services.catalog.service import CatalogService
from paysync.services.gateway.client import GatewayClient, StripeGatewayClient
from paysync.services.gateway.service import GatewayAdapter
from paysync.services.ledger.service import LedgerService
from paysync.services.ledger.wallet import TokenWalletService
from paysync.services.subscriptions.service import SubscriptionService


def _stripe_client() -> GatewayClient:
    return StripeGatewayClient(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
        api_version=settings.stripe_api_version,
    )


GATEWAY_CLIENTS: dict[str, Callable[[], GatewayClient]] = {
    "stripe": _stripe_client,
}


def build_adapter(gateway: GatewayClient, store: RecordStore, wallet: TokenWalletService) -> GatewayAdapter:
    return GatewayAdapter(
        gateway=gateway,
        ledger=LedgerService(store, wallet, gateway.name, settings.service_name),
        catalog=CatalogService(store, settings.free_plan_price_id),
        subscriptions=SubscriptionService(store),
        wallet=wallet,
        service_name=settings.service_name,
    )


def get_payment_adapter(source: str, store: RecordStore, wallet: TokenWalletService) -> GatewayAdapter | None:
    """Adapter for `source`, or None when no gateway of that name is configured."""

    make_client = GATEWAY_CLIENTS.get(source.lower())
    if make_client is None:
        return None
    return build_adapter(make_client(), store, wallet)
