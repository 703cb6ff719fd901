"""
Order data access over the record store.

The repository builds store queries for the ``orders`` collection and
converts store failures into service errors. Duplicate order numbers are
passed through untouched so the service can allocate a fresh number.
"""

import re
from typing import Any, Mapping, Optional

from order_portal.core.logging import get_logger
from order_portal.schemas.orders import OrderFilter
from order_portal.services.errors import TemporarilyUnavailableError
from order_portal.store.base import (
    DESCENDING,
    DuplicateRecordError,
    Filter,
    Record,
    RecordStore,
    StoreError,
)

logger = get_logger(__name__)

ORDERS = "orders"
NEWEST_FIRST = [("createdAt", DESCENDING), ("orderNumber", DESCENDING)]


def build_order_query(filters: OrderFilter) -> dict[str, Any]:
    """Store filter for listing; ``start`` inclusive, ``end`` exclusive."""
    query: dict[str, Any] = {}
    if filters.customer_id:
        query["customer"] = filters.customer_id
    if filters.status is not None:
        query["status"] = filters.status.value
    if filters.search:
        query["orderNumber"] = {"$regex": re.escape(filters.search), "$options": "i"}
    created: dict[str, Any] = {}
    if filters.start is not None:
        created["$gte"] = filters.start
    if filters.end is not None:
        created["$lt"] = filters.end
    if created:
        query["createdAt"] = created
    return query


class OrderRepository:
    """
    Repository for order records.

    Attributes:
        store: Record store the orders live in
    """

    def __init__(self, store: RecordStore):
        self.store = store

    async def create(self, record: Record) -> Record:
        """
        Insert a new order record.

        Raises:
            DuplicateRecordError: If the order number is already taken
            TemporarilyUnavailableError: If no backend can persist the order
        """
        try:
            created = await self.store.insert(ORDERS, record)
        except DuplicateRecordError:
            raise
        except StoreError as e:
            logger.error(
                "Order insert failed",
                order_number=record.get("orderNumber"),
                error=str(e),
            )
            raise TemporarilyUnavailableError(
                "Orders cannot be saved right now", **e.context
            ) from e

        logger.info(
            "Order record created",
            order_id=created["id"],
            order_number=created.get("orderNumber"),
            backend=self.store.active_backend,
        )
        return created

    async def get(self, order_id: str) -> Optional[Record]:
        try:
            return await self.store.get(ORDERS, order_id)
        except StoreError as e:
            raise TemporarilyUnavailableError(
                "Orders cannot be read right now", order_id=order_id
            ) from e

    async def find(self, filters: OrderFilter) -> list[Record]:
        try:
            return await self.store.find(
                ORDERS,
                build_order_query(filters),
                sort=NEWEST_FIRST,
                limit=filters.limit,
                skip=filters.skip,
            )
        except StoreError as e:
            raise TemporarilyUnavailableError("Orders cannot be read right now") from e

    async def count(self, filters: OrderFilter) -> int:
        try:
            return await self.store.count(ORDERS, build_order_query(filters))
        except StoreError as e:
            raise TemporarilyUnavailableError("Orders cannot be read right now") from e

    async def update(
        self,
        order_id: str,
        patch: Mapping[str, Any],
        history_entry: Optional[Mapping[str, Any]] = None,
        match: Optional[Filter] = None,
    ) -> Optional[Record]:
        """
        Overwrite fields and append one history entry in a single write.

        Args:
            order_id: Order to change
            patch: Fields to overwrite
            history_entry: Audit entry appended to ``history``
            match: Conditions the stored order must still satisfy

        Returns:
            Updated record, or None if the order vanished or no longer
            satisfies ``match``
        """
        push = {"history": dict(history_entry)} if history_entry else None
        try:
            updated = await self.store.update(
                ORDERS, order_id, patch, push=push, match=match
            )
        except StoreError as e:
            logger.error("Order update failed", order_id=order_id, error=str(e))
            raise TemporarilyUnavailableError(
                "Orders cannot be saved right now", order_id=order_id
            ) from e

        if updated is None:
            logger.info("Order update skipped", order_id=order_id, match=match)
        else:
            logger.debug(
                "Order record updated",
                order_id=order_id,
                fields=sorted(patch),
                history_appended=push is not None,
            )
        return updated
