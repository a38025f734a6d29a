"""Webhook ingestion service API.

Receives gateway webhooks, exposes the TOKEN_AWARD_FAILED reconciliation
listing, and serves health/metrics endpoints.
"""

from time import perf_counter

from fastapi import FastAPI, Request

from paysync.common.config import settings
from paysync.common.db import Base, SessionLocal
from paysync.common.logging import configure_logging
from paysync.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paysync.common.startup import log_startup_config
from paysync.common.state_machine import TOKEN_AWARD_FAILED
from paysync.common.store import SqlRecordStore
from paysync.common.tracing import instrument_app, setup_tracing
from paysync.services.catalog.models import SubscriptionPlan  # noqa: F401
from paysync.services.gateway.factory import get_payment_adapter
from paysync.services.ledger.models import PaymentTransaction  # noqa: F401
from paysync.services.ledger.service import LedgerService
from paysync.services.ledger.wallet import HttpTokenWalletService
from paysync.services.subscriptions.models import UserSubscription  # noqa: F401
from paysync.services.webhooks.router import WebhookRouter, build_webhook_routes

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "POSTGRES_DSN", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "WALLET_SERVICE_URL"],
)
store = SqlRecordStore(SessionLocal, Base.metadata)
wallet = HttpTokenWalletService(
    settings.wallet_service_url,
    token=settings.wallet_service_token,
    timeout=settings.wallet_timeout_seconds,
)

app = FastAPI(title="PaySync Webhook Service")
instrument_app(app)
app.include_router(build_webhook_routes(WebhookRouter(get_payment_adapter, store, wallet)))


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(max(0.0, perf_counter() - start))
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.get("/transactions")
def list_transactions(status: str = TOKEN_AWARD_FAILED, gateway: str = "stripe", limit: int = 100):
    """List payment transactions in one status, newest first, for manual reconciliation."""

    ledger = LedgerService(store, wallet, gateway, settings.service_name)
    rows = ledger.list_by_status(status, limit=limit)
    return {
        "status": status,
        "count": len(rows),
        "transactions": [
            {
                "id": row["id"],
                "user_id": row["user_id"],
                "target_wallet_id": row["target_wallet_id"],
                "gateway_transaction_id": row["gateway_transaction_id"],
                "tokens_to_award": row["tokens_to_award"],
                "updated_at": row["updated_at"].isoformat() if row["updated_at"] else None,
                "error": (row["metadata_json"] or {}).get("token_award_error"),
            }
            for row in rows
        ],
    }


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health check endpoint."""

    return {"ok": True}
