"""
Primary/fallback record store.

Every call goes to the primary backend first. When the primary reports
itself unreachable the same call is served by the fallback, and for a
short cool-down period later calls skip the primary entirely so a downed
database costs one bounded timeout rather than one per request.
"""

import time
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from order_portal.core.logging import get_logger
from order_portal.store.base import (
    Filter,
    Record,
    RecordStore,
    SortSpec,
    StoreUnavailableError,
)

logger = get_logger(__name__)

T = TypeVar("T")


class FailoverStore(RecordStore):
    """
    Route calls to a primary store and fall back transparently.

    Attributes:
        primary: Preferred backend (typically MongoDB)
        fallback: Backend used while the primary is unavailable
        retry_after: Seconds to bypass the primary after a failure
    """

    name = "failover"

    def __init__(
        self,
        primary: RecordStore,
        fallback: RecordStore,
        retry_after: float = 30.0,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.primary = primary
        self.fallback = fallback
        self.retry_after = retry_after
        self._monotonic = monotonic
        self._primary_down_until: Optional[float] = None

    @property
    def primary_available(self) -> bool:
        if self._primary_down_until is None:
            return True
        return self._monotonic() >= self._primary_down_until

    @property
    def active_backend(self) -> str:
        if self.primary_available:
            return self.primary.active_backend
        return self.fallback.active_backend

    async def _call(
        self,
        operation: str,
        collection: str,
        call: Callable[[RecordStore], Awaitable[T]],
    ) -> T:
        if self.primary_available:
            try:
                result = await call(self.primary)
            except StoreUnavailableError as e:
                self._primary_down_until = self._monotonic() + self.retry_after
                logger.warning(
                    "Primary store unavailable, using fallback",
                    operation=operation,
                    collection=collection,
                    fallback=self.fallback.active_backend,
                    retry_after_seconds=self.retry_after,
                    error=str(e),
                )
            else:
                if self._primary_down_until is not None:
                    logger.info("Primary store recovered", operation=operation)
                    self._primary_down_until = None
                return result
        return await call(self.fallback)

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        return await self._call(
            "get", collection, lambda store: store.get(collection, record_id)
        )

    async def find(
        self,
        collection: str,
        query: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> list[Record]:
        return await self._call(
            "find",
            collection,
            lambda store: store.find(collection, query, sort=sort, limit=limit, skip=skip),
        )

    async def insert(self, collection: str, record: Record) -> Record:
        return await self._call(
            "insert", collection, lambda store: store.insert(collection, record)
        )

    async def update(
        self,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
        push: Optional[Mapping[str, Any]] = None,
        match: Optional[Filter] = None,
    ) -> Optional[Record]:
        return await self._call(
            "update",
            collection,
            lambda store: store.update(collection, record_id, patch, push=push, match=match),
        )

    async def count(self, collection: str, query: Optional[Filter] = None) -> int:
        return await self._call(
            "count", collection, lambda store: store.count(collection, query)
        )

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()
