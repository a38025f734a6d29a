"""User subscription projection of gateway subscriptions.

Owns every write to `user_subscriptions`, keyed by gateway subscription id.
"""

from datetime import datetime, timezone

from paysync.common.errors import StoreError, SyncError
from paysync.common.logging import logger
from paysync.common.store import RecordStore, Row

TABLE = "user_subscriptions"


class SubscriptionService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def find_by_customer(self, customer_id: str) -> Row | None:
        rows = self.store.find(TABLE, {"gateway_customer_id": customer_id}, limit=1, order_by="-updated_at")
        return rows[0] if rows else None

    def upsert(self, subscription: Row) -> Row:
        """Create or refresh the row for `subscription["gateway_subscription_id"]`."""

        row = {**subscription, "updated_at": datetime.now(timezone.utc)}
        try:
            rows = self.store.upsert(TABLE, [row], conflict_keys=["gateway_subscription_id"])
        except StoreError as exc:
            raise SyncError(
                f"Failed to upsert subscription {subscription['gateway_subscription_id']}: {exc}"
            ) from exc
        logger.info(
            "subscription_upserted subscription_id=%s user_id=%s status=%s",
            row["gateway_subscription_id"],
            row.get("user_id"),
            row.get("status"),
        )
        return rows[0]

    def update(self, subscription_id: str, values: Row) -> Row | None:
        """Apply gateway state to an existing row.

        A subscription this system never saw matches nothing; that is logged
        and returns None rather than failing the event.
        """

        try:
            rows = self.store.update(
                TABLE,
                {**values, "updated_at": datetime.now(timezone.utc)},
                {"gateway_subscription_id": subscription_id},
            )
        except StoreError as exc:
            raise SyncError(f"Failed to update subscription {subscription_id}: {exc}") from exc
        if not rows:
            logger.warning("subscription_update_no_match subscription_id=%s", subscription_id)
            return None
        logger.info("subscription_updated subscription_id=%s status=%s", subscription_id, rows[0]["status"])
        return rows[0]
