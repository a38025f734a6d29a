"""Exception taxonomy for webhook processing.

Handlers raise these; the gateway adapter turns them into failure
confirmations and the router maps `status_code` onto the HTTP response.
"""


class WebhookError(Exception):
    """Base for failures reported back to the gateway as a non-2xx response."""

    status_code = 400

    def __init__(self, message: str, transaction_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.transaction_id = transaction_id


class VerificationError(WebhookError):
    """Bad or missing signature, or an unparsable payload. Nothing was written."""


class LookupMissError(WebhookError):
    """A referenced transaction, subscription, wallet or plan does not exist."""

    status_code = 404


class TransactionNotFoundError(LookupMissError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Payment transaction not found: {transaction_id}", transaction_id)


class LedgerWriteError(WebhookError):
    """The payment record could not be durably transitioned; crediting must not run."""

    status_code = 500


class TokenAwardError(WebhookError):
    """Crediting failed; the transaction has been moved to TOKEN_AWARD_FAILED."""


class SyncError(WebhookError):
    """A dependent subscription/catalog write failed after the primary fact was recorded."""

    status_code = 500


class GatewayFetchError(WebhookError):
    """The gateway API could not return an object the handler needs."""

    status_code = 500


class StoreError(Exception):
    """Persistence port failure (connection, constraint, unknown table)."""


class WalletServiceError(Exception):
    """Token wallet service rejected or failed a request."""
