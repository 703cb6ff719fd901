"""
Read-only lookups of products, users and order settings.

The product and user catalogs are managed elsewhere; orders only read
them to validate requests and to snapshot names at creation time.
"""

from typing import Any, Optional, Protocol, Sequence

from order_portal.core.logging import get_logger
from order_portal.store.base import Record, RecordStore
from order_portal.store.bootstrap import SETTINGS_RECORD_ID

logger = get_logger(__name__)


class CatalogLookup(Protocol):
    """Catalog collaborator consumed by the order service."""

    async def find_products_by_ids(self, ids: Sequence[str]) -> list[Record]:
        """Products whose id is in ``ids``: ``{id, name: {en, ar}, isAvailable}``."""

    async def find_user_by_id(self, user_id: str) -> Optional[Record]:
        """User ``{id, name, phone, ...}`` or None."""

    async def get_edit_time_limit(self) -> Optional[float]:
        """Persisted edit window in hours, or None when not configured."""


class StoreCatalog:
    """Catalog lookups served from the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def find_products_by_ids(self, ids: Sequence[str]) -> list[Record]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        return await self.store.find("products", {"id": {"$in": unique_ids}})

    async def find_user_by_id(self, user_id: str) -> Optional[Record]:
        return await self.store.get("users", user_id)

    async def get_edit_time_limit(self) -> Optional[float]:
        record = await self.store.get("settings", SETTINGS_RECORD_ID)
        if not record:
            return None
        value: Any = (record.get("orderSettings") or {}).get("editTimeLimit")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            if value is not None:
                logger.warning("Ignoring invalid edit time limit setting", value=value)
            return None
        return float(value)
