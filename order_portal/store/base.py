"""
Record store contract shared by every storage backend.

Callers work with plain dictionaries ("records") grouped into named
collections. Filters use a small MongoDB-style vocabulary so the same
query runs unchanged against the document database and the JSON file
store. Records always carry a string ``id`` plus store-managed
``createdAt``/``updatedAt`` timestamps.
"""

import abc
import uuid
from typing import Any, Mapping, Optional, Sequence

Record = dict[str, Any]
Filter = Mapping[str, Any]
SortSpec = Sequence[tuple[str, int]]

ASCENDING = 1
DESCENDING = -1

# Collections and the fields each keeps unique.
UNIQUE_FIELDS: dict[str, tuple[str, ...]] = {
    "orders": ("orderNumber",),
}


class StoreError(Exception):
    """Base exception for record store errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class StoreUnavailableError(StoreError):
    """Raised when a backend cannot be reached or cannot persist data."""

    pass


class DuplicateRecordError(StoreError):
    """Raised when an insert violates a unique field."""

    pass


def new_record_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


class RecordStore(abc.ABC):
    """
    Backend-agnostic record store.

    Implementations must return copies of stored data, never live
    references, and must treat each insert and update as atomic with
    respect to other callers.
    """

    name: str = "store"

    @abc.abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Fetch one record by id, or None."""

    @abc.abstractmethod
    async def find(
        self,
        collection: str,
        query: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> list[Record]:
        """Return records matching ``query`` in ``sort`` order."""

    @abc.abstractmethod
    async def insert(self, collection: str, record: Record) -> Record:
        """
        Insert a record and return the stored copy.

        The store assigns ``id`` when absent and sets ``createdAt`` (unless
        provided) and ``updatedAt``.

        Raises:
            DuplicateRecordError: If a unique field collides
        """

    @abc.abstractmethod
    async def update(
        self,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
        push: Optional[Mapping[str, Any]] = None,
        match: Optional[Filter] = None,
    ) -> Optional[Record]:
        """
        Set fields and append to list fields of one record atomically.

        Args:
            collection: Collection name
            record_id: Target record id
            patch: Top-level fields to overwrite
            push: List fields mapped to one value to append
            match: Extra conditions the record must satisfy at write time

        Returns:
            The updated record, or None when no record has ``record_id``
            or the record does not satisfy ``match``
        """

    @abc.abstractmethod
    async def count(self, collection: str, query: Optional[Filter] = None) -> int:
        """Count records matching ``query``."""

    async def close(self) -> None:
        """Release backend resources."""
        return None

    @property
    def active_backend(self) -> str:
        """Name of the backend currently serving calls."""
        return self.name
