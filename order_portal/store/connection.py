"""Record store factory for the configured backend."""

from typing import Optional

from order_portal.core.config import Settings, get_settings
from order_portal.core.logging import get_logger
from order_portal.store.base import RecordStore
from order_portal.store.failover import FailoverStore
from order_portal.store.json_store import JsonFileStore
from order_portal.store.mongo import MongoStore

logger = get_logger(__name__)


def create_store(settings: Optional[Settings] = None) -> RecordStore:
    """
    Build a record store for the configured backend.

    The application lifespan owns the returned store and closes it on
    shutdown.

    Args:
        settings: Application settings (defaults to cached settings)

    Returns:
        MongoDB store, JSON store, or a failover pair of both
    """
    settings = settings or get_settings()

    if settings.store_backend == "json":
        store: RecordStore = JsonFileStore(settings.json_store_path)
    elif settings.store_backend == "mongo":
        store = MongoStore(settings)
    else:
        store = FailoverStore(
            primary=MongoStore(settings),
            fallback=JsonFileStore(settings.json_store_path),
            retry_after=settings.store_primary_retry_seconds,
        )

    logger.info(
        "Record store created",
        backend=settings.store_backend,
        json_store_path=settings.json_store_path,
    )
    return store
