"""
Test suite for OrderService.

Runs the service against a memory-only store seeded with the bootstrap
catalog: customer "2", admin "1" and available products "1" to "5".
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from order_portal.schemas.orders import OrderEditRequest, OrderFilter
from order_portal.services.errors import (
    CustomerNotFoundError,
    EditWindowClosedError,
    InsufficientItemsError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    ProductsNotFoundError,
    ProductsUnavailableError,
    TemporarilyUnavailableError,
    ValidationFailedError,
)
from order_portal.services.orders.enums import HistoryAction, OrderStatus
from order_portal.services.orders.service import OrderService
from order_portal.services.catalog import StoreCatalog
from order_portal.store.base import RecordStore, StoreError, StoreUnavailableError
from order_portal.store.failover import FailoverStore
from order_portal.store.json_store import JsonFileStore

ADMIN_ID = "1"
CUSTOMER_ID = "2"
ITEMS = [{"product": "1", "quantity": 2}, {"product": "3", "quantity": 1}]


class UnreachableStore(RecordStore):
    """Primary backend that is always down."""

    name = "mongo"

    async def get(self, collection, record_id):
        raise StoreUnavailableError("connection refused")

    async def find(self, collection, query=None, sort=None, limit=None, skip=0):
        raise StoreUnavailableError("connection refused")

    async def insert(self, collection, record):
        raise StoreUnavailableError("connection refused")

    async def update(self, collection, record_id, patch, push=None, match=None):
        raise StoreUnavailableError("connection refused")

    async def count(self, collection, query=None):
        raise StoreUnavailableError("connection refused")


class GatedCatalog(StoreCatalog):
    """Catalog whose product and user lookups wait until the gate opens."""

    def __init__(self, store):
        super().__init__(store)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def _wait(self):
        self.entered.set()
        await self.gate.wait()

    async def find_products_by_ids(self, ids):
        await self._wait()
        return await super().find_products_by_ids(ids)

    async def find_user_by_id(self, user_id):
        await self._wait()
        return await super().find_user_by_id(user_id)


class TestCreateOrder:
    async def test_creates_order_with_snapshot(self, order_service, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS, "  Deliver early  ")

        assert order.order_number == "ST250310-0001"
        assert order.customer_id == CUSTOMER_ID
        assert order.customer_name == "Test Customer"
        assert order.customer_phone == "9876543210"
        assert order.status == OrderStatus.NEW
        assert order.can_edit is True
        assert order.total_items == 3
        assert order.message == "Deliver early"
        assert order.edit_deadline == clock.now + timedelta(hours=2)
        assert [item.product_name.en for item in order.items] == ["Almond Milk", "Soy Milk"]
        assert order.items[0].product_name.ar == "حليب اللوز"

    async def test_history_starts_with_created(self, order_service, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        assert len(order.history) == 1
        entry = order.history[0]
        assert entry.action == HistoryAction.CREATED
        assert entry.by == CUSTOMER_ID
        assert entry.by_name == "Test Customer"
        assert entry.timestamp == clock.now

    async def test_snapshot_survives_product_rename(self, order_service, memory_store):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        await memory_store.update("products", "1", {"name": {"en": "Almond Drink", "ar": "مشروب"}})

        fetched = await order_service.get_order(order.id)

        assert fetched.items[0].product_name.en == "Almond Milk"

    async def test_records_notification(self, order_service, memory_store):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        notifications = await memory_store.find("notifications", {"relatedOrder": order.id})

        assert len(notifications) == 1
        assert notifications[0]["type"] == "order_created"
        assert notifications[0]["user"] == CUSTOMER_ID
        assert order.order_number in notifications[0]["message"]["en"]

    async def test_notifier_failure_does_not_fail_create(self, memory_store, settings, clock):
        notifier = AsyncMock()
        notifier.notify.side_effect = RuntimeError("push gateway down")
        service = OrderService(memory_store, settings, notifier=notifier, clock=clock)

        order = await service.create_order(CUSTOMER_ID, ITEMS)

        assert order.order_number == "ST250310-0001"
        notifier.notify.assert_awaited_once()

    async def test_insufficient_items_rejected_before_store_write(
        self, order_service, memory_store
    ):
        with pytest.raises(InsufficientItemsError) as exc_info:
            await order_service.create_order(CUSTOMER_ID, [{"product": "1", "quantity": 1}])

        assert exc_info.value.context == {"total_items": 1, "minimum": 2}
        assert await memory_store.count("orders") == 0
        assert await memory_store.count("notifications") == 0

    async def test_duplicate_products_rejected(self, order_service):
        items = [{"product": "1", "quantity": 1}, {"product": "1", "quantity": 2}]

        with pytest.raises(ValidationFailedError) as exc_info:
            await order_service.create_order(CUSTOMER_ID, items)

        assert exc_info.value.code == "DUPLICATE_PRODUCTS"
        assert exc_info.value.context["products"] == ["1"]

    @pytest.mark.parametrize(
        "items",
        [
            [{"product": "1", "quantity": 0}, {"product": "2", "quantity": 3}],
            [{"product": "", "quantity": 2}],
            [{"quantity": 2}],
        ],
    )
    async def test_malformed_items_rejected(self, order_service, items):
        with pytest.raises(ValidationFailedError) as exc_info:
            await order_service.create_order(CUSTOMER_ID, items)

        assert exc_info.value.code == "INVALID_ITEMS"

    async def test_message_too_long(self, order_service, settings):
        message = "x" * (settings.order_message_max_length + 1)

        with pytest.raises(ValidationFailedError) as exc_info:
            await order_service.create_order(CUSTOMER_ID, ITEMS, message)

        assert exc_info.value.code == "MESSAGE_TOO_LONG"

    async def test_unknown_products(self, order_service):
        items = [{"product": "1", "quantity": 1}, {"product": "99", "quantity": 1}]

        with pytest.raises(ProductsNotFoundError) as exc_info:
            await order_service.create_order(CUSTOMER_ID, items)

        assert exc_info.value.context["products"] == ["99"]

    async def test_unavailable_products(self, order_service, memory_store):
        await memory_store.update("products", "5", {"isAvailable": False})
        items = [{"product": "5", "quantity": 2}]

        with pytest.raises(ProductsUnavailableError) as exc_info:
            await order_service.create_order(CUSTOMER_ID, items)

        assert exc_info.value.context["products"] == ["5"]
        assert await memory_store.count("orders") == 0

    async def test_unknown_customer(self, order_service):
        with pytest.raises(CustomerNotFoundError):
            await order_service.create_order("404", ITEMS)

    async def test_edit_window_from_persisted_settings(self, order_service, memory_store, clock):
        await memory_store.update("settings", "global", {"orderSettings": {"editTimeLimit": 0.5}})

        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        assert order.edit_deadline == clock.now + timedelta(minutes=30)

    async def test_configured_window_when_setting_missing(self, memory_store, settings, clock):
        await memory_store.update("settings", "global", {"orderSettings": {}})
        service = OrderService(
            memory_store,
            settings.model_copy(update={"order_edit_window_hours": 4}),
            clock=clock,
        )

        order = await service.create_order(CUSTOMER_ID, ITEMS)

        assert order.edit_deadline == clock.now + timedelta(hours=4)


class TestOrderNumbers:
    async def test_concurrent_creates_get_distinct_numbers(self, order_service):
        orders = await asyncio.gather(
            *(order_service.create_order(CUSTOMER_ID, ITEMS) for _ in range(8))
        )

        numbers = sorted(order.order_number for order in orders)
        assert numbers == [f"ST250310-{n:04d}" for n in range(1, 9)]

    async def test_numbering_restarts_each_day(self, order_service, clock):
        await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(days=1)

        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        assert order.order_number == "ST250311-0001"

    async def test_collision_is_retried(self, order_service):
        first = await order_service.create_order(CUSTOMER_ID, ITEMS)
        order_service.allocator.next_order_number = AsyncMock(
            side_effect=[first.order_number, "ST250310-0002"]
        )

        second = await order_service.create_order(CUSTOMER_ID, ITEMS)

        assert second.order_number == "ST250310-0002"
        assert order_service.allocator.next_order_number.await_count == 2

    async def test_gives_up_after_max_attempts(self, order_service, settings, memory_store):
        first = await order_service.create_order(CUSTOMER_ID, ITEMS)
        order_service.allocator.next_order_number = AsyncMock(return_value=first.order_number)

        with pytest.raises(TemporarilyUnavailableError):
            await order_service.create_order(CUSTOMER_ID, ITEMS)

        assert (
            order_service.allocator.next_order_number.await_count
            == settings.order_number_max_attempts
        )
        assert await memory_store.count("orders") == 1


class TestEditOrder:
    async def test_edit_items_within_window(self, order_service, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(minutes=30)

        updated = await order_service.edit_order(
            order.id,
            {"items": [{"product": "1", "quantity": 3}, {"product": "4", "quantity": 2}]},
        )

        assert updated.total_items == 5
        assert [item.product_id for item in updated.items] == ["1", "4"]
        assert updated.can_edit is True
        assert updated.updated_at == clock.now
        assert len(updated.history) == 2
        entry = updated.history[-1]
        assert entry.action == HistoryAction.UPDATED
        assert entry.by_name == "Test Customer"
        assert entry.changes == "Almond Milk: 2 -> 3; Soy Milk removed; Oat Milk added (2)"

    async def test_edit_message_only(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS, "first")

        updated = await order_service.edit_order(order.id, OrderEditRequest(message="second"))

        assert updated.message == "second"
        assert updated.total_items == 3
        assert updated.history[-1].changes == "message updated"

    async def test_null_message_clears_note(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS, "first")

        updated = await order_service.edit_order(order.id, {"message": None})

        assert updated.message is None
        assert updated.total_items == 3
        assert updated.history[-1].changes == "message updated"

    async def test_empty_patch_rejected(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        with pytest.raises(ValidationFailedError) as exc_info:
            await order_service.edit_order(order.id, {})

        assert exc_info.value.code == "NOTHING_TO_UPDATE"

    async def test_edit_revalidates_minimum(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        with pytest.raises(InsufficientItemsError):
            await order_service.edit_order(order.id, {"items": [{"product": "1", "quantity": 1}]})

    async def test_edit_after_deadline_rejected_even_if_flag_stored(
        self, order_service, memory_store, clock
    ):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(hours=2, seconds=1)

        stored = await memory_store.get("orders", order.id)
        assert stored["canEdit"] is True

        with pytest.raises(EditWindowClosedError):
            await order_service.edit_order(order.id, {"message": "too late"})

        unchanged = await memory_store.get("orders", order.id)
        assert len(unchanged["history"]) == 1

    async def test_edit_by_admin_records_admin_name(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)

        updated = await order_service.edit_order(
            order.id, {"message": "checked"}, editor_id=ADMIN_ID
        )

        assert updated.history[-1].by == ADMIN_ID
        assert updated.history[-1].by_name == "Admin"

    async def test_edit_unknown_order(self, order_service):
        with pytest.raises(OrderNotFoundError):
            await order_service.edit_order("missing", {"message": "hello"})

    async def test_receipt_during_edit_wins(self, order_service, memory_store, settings, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        catalog = GatedCatalog(memory_store)
        editing = OrderService(memory_store, settings, catalog=catalog, clock=clock)

        edit = asyncio.create_task(
            editing.edit_order(order.id, {"items": [{"product": "1", "quantity": 9}]})
        )
        await catalog.entered.wait()
        await order_service.mark_received(order.id, ADMIN_ID)
        catalog.gate.set()

        with pytest.raises(EditWindowClosedError):
            await edit

        stored = await memory_store.get("orders", order.id)
        assert stored["status"] == "received"
        assert stored["canEdit"] is False
        assert stored["totalItems"] == 3
        assert [entry["action"] for entry in stored["history"]] == ["created", "received"]

    async def test_history_only_grows(self, order_service, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        first_entry = order.history[0]

        for note in ("a", "b", "c"):
            clock.advance(minutes=1)
            order = await order_service.edit_order(order.id, {"message": note})

        assert len(order.history) == 4
        assert order.history[0] == first_entry
        timestamps = [entry.timestamp for entry in order.history]
        assert timestamps == sorted(timestamps)


class TestMarkReceived:
    async def test_receive_closes_window(self, order_service, memory_store, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(minutes=45)

        received = await order_service.mark_received(order.id, ADMIN_ID)

        assert received.status == OrderStatus.RECEIVED
        assert received.can_edit is False
        assert received.edit_deadline == clock.now
        assert received.history[-1].action == HistoryAction.RECEIVED
        assert received.history[-1].by_name == "Admin"

        notifications = await memory_store.find(
            "notifications", {"relatedOrder": order.id, "type": "order_received"}
        )
        assert len(notifications) == 1

    async def test_receive_keeps_past_deadline(self, order_service, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(hours=5)

        received = await order_service.mark_received(order.id, ADMIN_ID)

        assert received.edit_deadline == order.edit_deadline

    async def test_received_order_cannot_be_edited(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        await order_service.mark_received(order.id, ADMIN_ID)

        with pytest.raises(EditWindowClosedError):
            await order_service.edit_order(order.id, {"message": "change"})

    async def test_receive_twice_rejected(self, order_service):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        await order_service.mark_received(order.id, ADMIN_ID)

        with pytest.raises(InvalidStatusTransitionError):
            await order_service.mark_received(order.id, ADMIN_ID)

    async def test_concurrent_receipts_recorded_once(
        self, order_service, memory_store, settings, clock
    ):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        catalog = GatedCatalog(memory_store)
        slow = OrderService(memory_store, settings, catalog=catalog, clock=clock)

        pending = asyncio.create_task(slow.mark_received(order.id, ADMIN_ID))
        await catalog.entered.wait()
        await order_service.mark_received(order.id, ADMIN_ID)
        catalog.gate.set()

        with pytest.raises(InvalidStatusTransitionError):
            await pending

        stored = await memory_store.get("orders", order.id)
        assert [entry["action"] for entry in stored["history"]] == ["created", "received"]

    async def test_receive_unknown_order(self, order_service):
        with pytest.raises(OrderNotFoundError):
            await order_service.mark_received("missing", ADMIN_ID)


class TestQueries:
    @pytest.fixture
    async def placed_orders(self, order_service, memory_store, clock):
        await memory_store.insert(
            "users", {"id": "3", "name": "Second Customer", "phone": "555", "isAdmin": False}
        )
        first = await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(hours=1)
        second = await order_service.create_order("3", ITEMS)
        clock.advance(days=1)
        third = await order_service.create_order(CUSTOMER_ID, ITEMS)
        await order_service.mark_received(first.id, ADMIN_ID)
        return first, second, third

    async def test_get_order_recomputes_edit_flag(self, order_service, clock):
        order = await order_service.create_order(CUSTOMER_ID, ITEMS)
        clock.advance(hours=3)

        fetched = await order_service.get_order(order.id)

        assert fetched.can_edit is False

    async def test_get_unknown_order(self, order_service):
        with pytest.raises(OrderNotFoundError):
            await order_service.get_order("missing")

    async def test_list_newest_first(self, order_service, placed_orders):
        first, second, third = placed_orders

        orders = await order_service.list_orders()

        assert [order.id for order in orders] == [third.id, second.id, first.id]

    async def test_filter_by_customer(self, order_service, placed_orders):
        first, _, third = placed_orders

        orders = await order_service.list_orders(OrderFilter(customer_id=CUSTOMER_ID))

        assert {order.id for order in orders} == {first.id, third.id}

    async def test_filter_by_status(self, order_service, placed_orders):
        first = placed_orders[0]

        orders = await order_service.list_orders(OrderFilter(status=OrderStatus.RECEIVED))

        assert [order.id for order in orders] == [first.id]

    async def test_filter_by_date_range(self, order_service, placed_orders):
        first, second, _ = placed_orders
        start = first.created_at.replace(hour=0)

        orders = await order_service.list_orders(
            OrderFilter(start=start, end=start + timedelta(days=1))
        )

        assert {order.id for order in orders} == {first.id, second.id}

    async def test_pagination(self, order_service, placed_orders):
        _, second, _ = placed_orders

        orders = await order_service.list_orders(OrderFilter(skip=1, limit=1))

        assert [order.id for order in orders] == [second.id]
        assert await order_service.count_orders() == 3

    async def test_search_order_number_any_case(self, order_service, placed_orders):
        first, second, third = placed_orders

        by_suffix = await order_service.list_orders(OrderFilter(search="0001"))
        by_lower = await order_service.list_orders(OrderFilter(search="st250310-0002"))

        assert [order.id for order in by_suffix] == [third.id, first.id]
        assert [order.id for order in by_lower] == [second.id]
        assert await order_service.count_orders(OrderFilter(search="0001")) == 2

    async def test_search_is_literal(self, order_service, placed_orders):
        assert await order_service.list_orders(OrderFilter(search="ST25031.-")) == []

    async def test_malformed_records_skipped(self, order_service, memory_store, placed_orders):
        await memory_store.insert("orders", {"orderNumber": "broken", "items": []})

        orders = await order_service.list_orders()

        assert len(orders) == 3


class TestFailover:
    async def test_orders_survive_primary_outage(self, settings, clock):
        fallback = JsonFileStore(path=None, clock=clock)
        store = FailoverStore(UnreachableStore(), fallback, retry_after=30)
        service = OrderService(store, settings, clock=clock)

        order = await service.create_order(CUSTOMER_ID, ITEMS)
        orders = await service.list_orders(OrderFilter(customer_id=CUSTOMER_ID))

        assert order.order_number == "ST250310-0001"
        assert [o.id for o in orders] == [order.id]
        assert store.active_backend == "memory"

    async def test_total_outage_is_temporarily_unavailable(self, settings, clock):
        service = OrderService(UnreachableStore(), settings, clock=clock)

        with pytest.raises(TemporarilyUnavailableError):
            await service.create_order(CUSTOMER_ID, ITEMS)

    async def test_store_failure_is_temporarily_unavailable(
        self, order_service, memory_store, monkeypatch
    ):
        monkeypatch.setattr(
            memory_store, "insert", AsyncMock(side_effect=StoreError("document too large"))
        )

        with pytest.raises(TemporarilyUnavailableError):
            await order_service.create_order(CUSTOMER_ID, ITEMS)

    async def test_store_read_failure_is_temporarily_unavailable(
        self, order_service, memory_store, monkeypatch
    ):
        monkeypatch.setattr(
            memory_store, "get", AsyncMock(side_effect=StoreError("bad query"))
        )

        with pytest.raises(TemporarilyUnavailableError):
            await order_service.get_order("any")
