"""Plan catalog projection of gateway products and prices.

Owns every write to `subscription_plans`. Rows are keyed by gateway price id
and are deactivated, never deleted, so historical subscriptions keep a plan.
"""

import json
from datetime import datetime, timezone

from paysync.common.errors import StoreError, SyncError
from paysync.common.logging import logger
from paysync.common.store import RecordStore, Row

TABLE = "subscription_plans"


def parse_product_description(description: str | None, product_name: str | None) -> dict:
    """Turn a product description into `{subtitle, features}`.

    A JSON array becomes the feature list under the product name; any other
    non-empty text is the subtitle.
    """

    if description and description.strip():
        try:
            parsed = json.loads(description)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return {"subtitle": product_name, "features": [str(item) for item in parsed]}
        return {"subtitle": description, "features": []}
    return {"subtitle": product_name, "features": []}


class CatalogService:
    def __init__(self, store: RecordStore, free_plan_price_id: str) -> None:
        self.store = store
        self.free_plan_price_id = free_plan_price_id

    def find_by_price(self, price_id: str) -> Row | None:
        rows = self.store.find(TABLE, {"gateway_price_id": price_id}, limit=1)
        return rows[0] if rows else None

    def find_by_item_id(self, item_id: str) -> Row | None:
        """Latest plan carrying `item_id`, preferring active ones."""

        for filters in ({"item_id_internal": item_id, "active": True}, {"item_id_internal": item_id}):
            rows = self.store.find(TABLE, filters, limit=1, order_by="-updated_at")
            if rows:
                return rows[0]
        return None

    def upsert_plan(self, plan: Row) -> Row:
        """Insert or refresh the plan for `plan["gateway_price_id"]`.

        Keys absent from `plan` keep their stored values.
        """

        row = {**plan, "updated_at": datetime.now(timezone.utc)}
        try:
            rows = self.store.upsert(TABLE, [row], conflict_keys=["gateway_price_id"])
        except StoreError as exc:
            raise SyncError(f"Failed to upsert plan for price {plan['gateway_price_id']}: {exc}") from exc
        logger.info(
            "plan_upserted price_id=%s product_id=%s active=%s",
            plan["gateway_price_id"],
            plan.get("gateway_product_id"),
            rows[0]["active"],
        )
        return rows[0]

    def deactivate_price(self, price_id: str) -> list[Row]:
        return self._deactivate({"gateway_price_id": price_id}, f"price {price_id}")

    def deactivate_product(self, product_id: str) -> list[Row]:
        """Deactivate every plan for a product except the reserved free plan."""

        return self._deactivate(
            {"gateway_product_id": product_id, "gateway_price_id__ne": self.free_plan_price_id},
            f"product {product_id}",
        )

    def _deactivate(self, filters: dict, label: str) -> list[Row]:
        try:
            rows = self.store.update(TABLE, {"active": False, "updated_at": datetime.now(timezone.utc)}, filters)
        except StoreError as exc:
            raise SyncError(f"Failed to deactivate plans for {label}: {exc}") from exc
        if not rows:
            logger.warning("plan_deactivate_no_match target=%s", label)
        else:
            logger.info("plans_deactivated target=%s count=%s", label, len(rows))
        return rows
