"""HTTP ingress for gateway webhooks.

`POST /webhooks/{source}` hands the raw body and the gateway's signature
header to that source's adapter and maps the confirmation onto a response.
"""

from collections.abc import Callable
from uuid import uuid4

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from paysync.common.cors import cors_headers
from paysync.common.logging import logger, trace_id_ctx
from paysync.common.store import RecordStore
from paysync.services.gateway.events import PaymentConfirmation
from paysync.services.gateway.service import GatewayAdapter
from paysync.services.ledger.wallet import TokenWalletService

AdapterFactory = Callable[[str, RecordStore, TokenWalletService], GatewayAdapter | None]

ROUTE_METHODS = ["POST", "OPTIONS", "GET", "PUT", "PATCH", "DELETE"]


def source_from_path(path: str) -> str | None:
    """Second path segment: `/webhooks/stripe` -> `stripe`."""

    segments = [segment for segment in path.split("/") if segment]
    return segments[1] if len(segments) > 1 else None


def confirmation_response(confirmation: PaymentConfirmation, headers: dict[str, str]) -> JSONResponse:
    if confirmation.success:
        return JSONResponse(
            {"message": "Webhook processed", "transactionId": confirmation.transaction_id},
            status_code=200,
            headers=headers,
        )
    body = {"error": confirmation.error}
    if confirmation.transaction_id:
        body["transactionId"] = confirmation.transaction_id
    return JSONResponse(body, status_code=confirmation.status_code, headers=headers)


class WebhookRouter:
    def __init__(self, adapter_factory: AdapterFactory, store: RecordStore, wallet: TokenWalletService) -> None:
        self.adapter_factory = adapter_factory
        self.store = store
        self.wallet = wallet

    async def handle(self, request: Request) -> Response:
        headers = cors_headers()
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)
        if request.method != "POST":
            return JSONResponse({"error": "Method Not Allowed"}, status_code=405, headers=headers)

        source = source_from_path(request.url.path)
        if not source:
            return JSONResponse({"error": "Missing webhook source in path"}, status_code=400, headers=headers)
        trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))

        adapter = self.adapter_factory(source, self.store, self.wallet)
        if adapter is None:
            logger.warning("webhook_source_unknown source=%s", source)
            return JSONResponse(
                {"error": f"Webhook source '{source}' is not supported"}, status_code=404, headers=headers
            )

        raw_body = await request.body()
        signature = request.headers.get(adapter.signature_header) if adapter.signature_header else None
        try:
            confirmation = await run_in_threadpool(adapter.handle_webhook, raw_body, signature)
        except Exception:
            logger.exception("webhook_unhandled_error source=%s", source)
            return JSONResponse({"error": "Internal server error"}, status_code=500, headers=headers)
        return confirmation_response(confirmation, headers)


def build_webhook_routes(webhook_router: WebhookRouter) -> APIRouter:
    routes = APIRouter()
    routes.add_api_route("/webhooks", webhook_router.handle, methods=ROUTE_METHODS, include_in_schema=False)
    routes.add_api_route("/webhooks/{source}", webhook_router.handle, methods=ROUTE_METHODS)
    return routes
