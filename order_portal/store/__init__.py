"""
Record store package.

- base: contract, error types and record helpers
- query: MongoDB-style filter evaluation for in-process backends
- json_store: single-file JSON backend with in-memory fallback
- mongo: MongoDB backend with a shared lazy connection
- failover: primary/fallback routing
- connection: store factory for the configured backend
"""

from order_portal.store.base import (
    DuplicateRecordError,
    RecordStore,
    StoreError,
    StoreUnavailableError,
)

__all__ = [
    "DuplicateRecordError",
    "RecordStore",
    "StoreError",
    "StoreUnavailableError",
]
