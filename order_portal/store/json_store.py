"""
Single-file JSON record store with an in-memory fallback.

The whole document is read, modified and rewritten on every mutation.
When the file system refuses writes (read-only hosting, full disk,
missing permissions) the store switches to a private in-memory copy and
keeps serving requests: persistence is best-effort, availability is not.
"""

import asyncio
import copy
import os
from datetime import timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from bson import json_util

from order_portal.core.logging import get_logger
from order_portal.core.timeutils import utcnow
from order_portal.store.base import (
    UNIQUE_FIELDS,
    DuplicateRecordError,
    Filter,
    Record,
    RecordStore,
    SortSpec,
    new_record_id,
)
from order_portal.store.bootstrap import initial_data
from order_portal.store.query import apply_query, matches

logger = get_logger(__name__)

_JSON_OPTIONS = json_util.RELAXED_JSON_OPTIONS.with_options(
    tz_aware=True, tzinfo=timezone.utc
)


class StoreState:
    """All collections of one fallback store, held together."""

    def __init__(self, collections: Optional[dict[str, list[Record]]] = None):
        self.collections: dict[str, list[Record]] = collections or {}

    @classmethod
    def seeded(cls, seed: Optional[Mapping[str, list[Record]]] = None) -> "StoreState":
        data = initial_data() if seed is None else copy.deepcopy(dict(seed))
        return cls(data)

    def records(self, collection: str) -> list[Record]:
        return self.collections.setdefault(collection, [])

    def dumps(self) -> str:
        return json_util.dumps(
            self.collections, json_options=_JSON_OPTIONS, indent=2, ensure_ascii=False
        )

    @classmethod
    def loads(cls, text: str) -> "StoreState":
        data = json_util.loads(text, json_options=_JSON_OPTIONS)
        if not isinstance(data, dict):
            raise ValueError("Store document must be a JSON object")
        return cls(data)


class JsonFileStore(RecordStore):
    """
    Record store backed by one JSON document on local disk.

    Pass ``path=None`` for a memory-only store (used by tests and as the
    degraded mode after a write failure). Every store instance owns its
    own state, so independent stores can coexist in one process.
    """

    name = "json"

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        seed: Optional[Mapping[str, list[Record]]] = None,
        clock: Callable[[], Any] = utcnow,
        unique_fields: Optional[Mapping[str, tuple[str, ...]]] = None,
    ):
        self._path = Path(path) if path else None
        self._seed = seed
        self._clock = clock
        self._unique_fields = dict(UNIQUE_FIELDS if unique_fields is None else unique_fields)
        self._memory: Optional[StoreState] = None
        self._memory_only = self._path is None
        self._lock = asyncio.Lock()

    @property
    def memory_only(self) -> bool:
        return self._memory_only

    @property
    def active_backend(self) -> str:
        return "memory" if self._memory_only else "json"

    def _switch_to_memory(self, state: Optional[StoreState], reason: str, error: Exception) -> None:
        logger.warning(
            "JSON store degraded to memory-only mode",
            path=str(self._path),
            reason=reason,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._memory_only = True
        self._memory = state if state is not None else StoreState.seeded(self._seed)

    def _memory_state(self) -> StoreState:
        if self._memory is None:
            self._memory = StoreState.seeded(self._seed)
        return self._memory

    def _read_file(self) -> StoreState:
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            state = StoreState.seeded(self._seed)
            self._write_file(state)
            return state
        return StoreState.loads(self._path.read_text(encoding="utf-8"))

    def _write_file(self, state: StoreState) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(state.dumps(), encoding="utf-8")
        os.replace(tmp_path, self._path)

    async def _load(self) -> StoreState:
        if self._memory_only:
            return self._memory_state()
        try:
            return await asyncio.to_thread(self._read_file)
        except (OSError, ValueError) as e:
            self._switch_to_memory(None, "read_failed", e)
            return self._memory_state()

    async def _save(self, state: StoreState) -> None:
        if self._memory_only:
            self._memory = state
            return
        try:
            await asyncio.to_thread(self._write_file, state)
        except OSError as e:
            self._switch_to_memory(state, "write_failed", e)

    def _check_unique(self, collection: str, records: list[Record], candidate: Record) -> None:
        for existing in records:
            if existing.get("id") == candidate["id"]:
                raise DuplicateRecordError(
                    "Duplicate record id",
                    collection=collection,
                    field="id",
                    value=candidate["id"],
                )
            for field in self._unique_fields.get(collection, ()):
                value = candidate.get(field)
                if value is not None and existing.get(field) == value:
                    raise DuplicateRecordError(
                        f"Duplicate value for unique field '{field}'",
                        collection=collection,
                        field=field,
                        value=value,
                    )

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        async with self._lock:
            state = await self._load()
            for record in state.records(collection):
                if record.get("id") == record_id:
                    return copy.deepcopy(record)
        return None

    async def find(
        self,
        collection: str,
        query: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> list[Record]:
        async with self._lock:
            state = await self._load()
            selected = apply_query(state.records(collection), query, sort, limit, skip)
            return copy.deepcopy(selected)

    async def insert(self, collection: str, record: Record) -> Record:
        async with self._lock:
            state = await self._load()
            records = state.records(collection)

            stored = copy.deepcopy(dict(record))
            if not stored.get("id"):
                stored["id"] = new_record_id()
            if stored.get("createdAt") is None:
                stored["createdAt"] = self._clock()
            stored["updatedAt"] = stored["createdAt"]

            self._check_unique(collection, records, stored)
            records.append(stored)
            await self._save(state)

            logger.debug(
                "Record inserted",
                backend=self.active_backend,
                collection=collection,
                record_id=stored["id"],
            )
            return copy.deepcopy(stored)

    async def update(
        self,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
        push: Optional[Mapping[str, Any]] = None,
        match: Optional[Filter] = None,
    ) -> Optional[Record]:
        async with self._lock:
            state = await self._load()
            for record in state.records(collection):
                if record.get("id") != record_id:
                    continue
                if not matches(record, match):
                    return None
                for field, value in patch.items():
                    if field == "id":
                        continue
                    record[field] = copy.deepcopy(value)
                for field, value in (push or {}).items():
                    record.setdefault(field, []).append(copy.deepcopy(value))
                record["updatedAt"] = self._clock()
                await self._save(state)
                return copy.deepcopy(record)
        return None

    async def count(self, collection: str, query: Optional[Filter] = None) -> int:
        async with self._lock:
            state = await self._load()
            return len(apply_query(state.records(collection), query))
