"""
Pytest configuration and shared test fixtures.

Every test runs against its own memory-only record store seeded with the
bootstrap data, and a controllable clock so edit windows and calendar
days can be crossed without sleeping.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from order_portal.core.config import Settings
from order_portal.main import create_app
from order_portal.services.orders.service import OrderService
from order_portal.services.reports.service import ReportService
from order_portal.store.json_store import JsonFileStore

ADMIN_ID = "1"
CUSTOMER_ID = "2"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting on Monday 2025-03-10 09:00 UTC."""
    return FakeClock(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    """Settings for an isolated, memory-only test run."""
    return Settings(
        environment="test",
        store_backend="json",
        json_store_path=None,
        business_timezone="UTC",
        order_edit_window_hours=2,
        order_min_total_items=2,
    )


@pytest.fixture
def memory_store(clock: FakeClock) -> JsonFileStore:
    """Memory-only store seeded with the bootstrap collections."""
    return JsonFileStore(path=None, clock=clock)


@pytest.fixture
def order_service(memory_store, settings, clock) -> OrderService:
    return OrderService(memory_store, settings, clock=clock)


@pytest.fixture
def report_service(memory_store, settings, clock) -> ReportService:
    return ReportService(memory_store, settings, clock=clock)


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return {"X-User-Id": CUSTOMER_ID, "X-User-Role": "customer"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-User-Id": ADMIN_ID, "X-User-Role": "admin"}


@pytest.fixture
def test_client(memory_store, settings, clock) -> Generator[TestClient, None, None]:
    """
    Synchronous test client running the application lifespan.

    Example:
        def test_health_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    app = create_app(settings=settings, store=memory_store, clock=clock)
    with TestClient(app) as client:
        yield client
