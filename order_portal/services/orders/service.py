"""
Order service orchestrating creation, edits and receipt.

This module implements the OrderService class: it validates requests
before touching the store, snapshots customer and product names, allocates
order numbers with bounded retry on collisions, enforces the edit window
through the state machine and appends one history entry per mutation.
Notifications are emitted after each successful write; a failing notifier
is logged and never fails the operation.
"""

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pydantic import TypeAdapter, ValidationError

from order_portal.core.config import Settings, get_settings
from order_portal.core.logging import get_logger
from order_portal.core.timeutils import ensure_aware, utcnow
from order_portal.schemas.orders import (
    Order,
    OrderEditRequest,
    OrderFilter,
    OrderItem,
    OrderItemRequest,
)
from order_portal.services.catalog import CatalogLookup, StoreCatalog
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
from order_portal.services.notifier import Notifier, StoreNotifier
from order_portal.services.orders.enums import (
    HistoryAction,
    NotificationKind,
    OrderStatus,
)
from order_portal.services.orders.numbering import OrderNumberAllocator
from order_portal.services.orders.repository import OrderRepository
from order_portal.services.orders.state_machine import OrderStateMachine
from order_portal.services.reports.display import resolve_product_name
from order_portal.store.base import (
    DuplicateRecordError,
    Record,
    RecordStore,
    StoreError,
)

logger = get_logger(__name__)

ItemsInput = Sequence[Union[OrderItemRequest, Mapping[str, Any]]]

_items_adapter = TypeAdapter(list[OrderItemRequest])


@contextmanager
def _store_errors(message: str, **context: Any) -> Iterator[None]:
    """Translate store failures raised inside the block."""
    try:
        yield
    except StoreError as e:
        logger.error(message, error=str(e), **context)
        raise TemporarilyUnavailableError(message, **context) from e


class OrderService:
    """
    Order lifecycle operations.

    Attributes:
        repository: Order repository for data access
        state_machine: Lifecycle rules
        allocator: Order number allocator
        catalog: Product, user and settings lookups
        notifier: Customer notification collaborator
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[Settings] = None,
        catalog: Optional[CatalogLookup] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize order service.

        Args:
            store: Record store holding orders, products and users
            settings: Application settings, defaults to the cached settings
            catalog: Catalog lookups, defaults to the store-backed catalog
            notifier: Notification collaborator, defaults to store records
            clock: Source of the current instant
        """
        self.settings = settings or get_settings()
        self.repository = OrderRepository(store)
        self.state_machine = OrderStateMachine()
        self.allocator = OrderNumberAllocator(
            store,
            scheme=self.settings.order_number_scheme,
            prefix=self.settings.order_number_prefix,
            tz=self.settings.tz,
        )
        self.catalog = catalog or StoreCatalog(store)
        self.notifier = notifier or StoreNotifier(store)
        self.clock = clock
        self._create_lock = asyncio.Lock()

    def _now(self) -> datetime:
        return ensure_aware(self.clock())

    # Validation

    def _validate_items(self, items: ItemsInput) -> list[OrderItemRequest]:
        """Check shape, duplicates and the minimum unit count."""
        try:
            requested = _items_adapter.validate_python(
                [
                    item.model_dump() if isinstance(item, OrderItemRequest) else item
                    for item in items
                ]
            )
        except ValidationError as e:
            raise ValidationFailedError(
                "Order items are malformed",
                code="INVALID_ITEMS",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

        product_ids = [item.product for item in requested]
        duplicates = sorted({pid for pid in product_ids if product_ids.count(pid) > 1})
        if duplicates:
            raise ValidationFailedError(
                "Each product may appear only once per order",
                code="DUPLICATE_PRODUCTS",
                products=duplicates,
            )

        total = sum(item.quantity for item in requested)
        minimum = self.settings.order_min_total_items
        if total < minimum:
            raise InsufficientItemsError(
                f"Orders need at least {minimum} items in total",
                total_items=total,
                minimum=minimum,
            )
        return requested

    def _validate_message(self, message: Optional[str]) -> Optional[str]:
        if message is None:
            return None
        message = message.strip()
        limit = self.settings.order_message_max_length
        if len(message) > limit:
            raise ValidationFailedError(
                f"Message exceeds {limit} characters",
                code="MESSAGE_TOO_LONG",
                length=len(message),
                limit=limit,
            )
        return message or None

    # Catalog lookups

    async def _get_customer(self, customer_id: str) -> Record:
        with _store_errors("Customer lookup failed", customer_id=customer_id):
            customer = await self.catalog.find_user_by_id(customer_id)
        if not customer:
            raise CustomerNotFoundError(
                f"Customer {customer_id} not found", customer_id=customer_id
            )
        return customer

    async def _snapshot_items(self, requested: list[OrderItemRequest]) -> list[OrderItem]:
        """Resolve products and copy their names into order lines."""
        product_ids = [item.product for item in requested]
        with _store_errors("Product lookup failed", products=product_ids):
            products = await self.catalog.find_products_by_ids(product_ids)
        by_id = {str(product.get("id")): product for product in products}

        missing = [pid for pid in product_ids if pid not in by_id]
        if missing:
            raise ProductsNotFoundError(
                "Some products do not exist", products=missing
            )
        unavailable = [pid for pid in product_ids if not by_id[pid].get("isAvailable", False)]
        if unavailable:
            raise ProductsUnavailableError(
                "Some products are not available", products=unavailable
            )

        return [
            OrderItem(
                product_id=item.product,
                product_name=resolve_product_name(by_id[item.product]),
                quantity=item.quantity,
            )
            for item in requested
        ]

    async def _edit_window(self) -> timedelta:
        with _store_errors("Settings lookup failed"):
            hours = await self.catalog.get_edit_time_limit()
        if hours is None:
            hours = self.settings.order_edit_window_hours
        return timedelta(hours=hours)

    async def _user_display_name(self, user_id: str) -> str:
        with _store_errors("User lookup failed", user_id=user_id):
            user = await self.catalog.find_user_by_id(user_id)
        if not user:
            return user_id
        return user.get("name") or user.get("phone") or user_id

    async def _notify(self, order: Order, kind: NotificationKind) -> None:
        try:
            await self.notifier.notify(
                order.customer_id, kind, order.id, order_number=order.order_number
            )
        except Exception as e:
            logger.error(
                "Notification failed",
                order_id=order.id,
                kind=kind.value,
                error=str(e),
            )

    def _with_fresh_edit_flag(self, order: Order, now: datetime) -> Order:
        return order.model_copy(
            update={"can_edit": self.state_machine.is_editable(order, now)}
        )

    async def _load(self, order_id: str) -> Order:
        record = await self.repository.get(order_id)
        if record is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        return Order.from_record(record)

    # Operations

    async def create_order(
        self,
        customer_id: str,
        items: ItemsInput,
        message: Optional[str] = None,
    ) -> Order:
        """
        Create a new order.

        Validates input before any store access, then resolves the customer
        and products, allocates an order number and inserts the order.

        Args:
            customer_id: Customer placing the order
            items: Requested lines ``{product, quantity}``
            message: Optional note

        Returns:
            Created order

        Raises:
            ValidationFailedError: If items or message are invalid
            InsufficientItemsError: If fewer units than the minimum
            CustomerNotFoundError: If the customer does not exist
            ProductsNotFoundError: If any product does not exist
            ProductsUnavailableError: If any product is not available
            TemporarilyUnavailableError: If the store cannot take the order
        """
        requested = self._validate_items(items)
        message = self._validate_message(message)

        customer = await self._get_customer(customer_id)
        order_items = await self._snapshot_items(requested)
        window = await self._edit_window()

        now = self._now()
        customer_name = customer.get("name") or customer.get("phone") or customer_id
        created_entry = self.state_machine.history_entry(
            HistoryAction.CREATED, customer_id, customer_name, now
        )
        record: Record = {
            "customer": customer_id,
            "customerName": customer_name,
            "customerPhone": customer.get("phone") or "",
            "items": [item.model_dump(by_alias=True) for item in order_items],
            "totalItems": sum(item.quantity for item in order_items),
            "status": OrderStatus.NEW.value,
            "canEdit": True,
            "editDeadline": now + window,
            "history": [created_entry.model_dump(by_alias=True, exclude_none=True)],
            "createdAt": now,
        }
        if message is not None:
            record["message"] = message

        created = await self._insert_with_number(record, now)
        order = Order.from_record(created)

        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            customer_id=customer_id,
            total_items=order.total_items,
        )
        await self._notify(order, NotificationKind.ORDER_CREATED)
        return order

    async def _insert_with_number(self, record: Record, now: datetime) -> Record:
        """Allocate a number and insert, retrying on number collisions."""
        attempts = self.settings.order_number_max_attempts
        async with self._create_lock:
            for attempt in range(1, attempts + 1):
                with _store_errors("Order number allocation failed"):
                    order_number = await self.allocator.next_order_number(now)
                try:
                    return await self.repository.create(
                        {**record, "orderNumber": order_number}
                    )
                except DuplicateRecordError:
                    logger.warning(
                        "Order number collision",
                        order_number=order_number,
                        attempt=attempt,
                    )

        raise TemporarilyUnavailableError(
            "Could not allocate a unique order number", attempts=attempts
        )

    async def edit_order(
        self,
        order_id: str,
        patch: Union[OrderEditRequest, Mapping[str, Any]],
        editor_id: Optional[str] = None,
    ) -> Order:
        """
        Change items and/or message of an order inside its edit window.

        Args:
            order_id: Order to edit
            patch: New ``items`` and/or ``message``
            editor_id: User making the change, defaults to the customer

        Returns:
            Updated order

        Raises:
            OrderNotFoundError: If the order does not exist
            EditWindowClosedError: If the deadline passed or it was received
            ValidationFailedError: If the patch is empty or invalid
        """
        if not isinstance(patch, OrderEditRequest):
            try:
                patch = OrderEditRequest.model_validate(patch)
            except ValidationError as e:
                raise ValidationFailedError(
                    "Order changes are malformed",
                    code="INVALID_ITEMS",
                    errors=e.errors(include_url=False, include_context=False),
                ) from e
        if patch.is_empty():
            raise ValidationFailedError(
                "Nothing to update", code="NOTHING_TO_UPDATE", order_id=order_id
            )

        requested = self._validate_items(patch.items) if patch.items is not None else None
        message_changed = "message" in patch.model_fields_set
        message = self._validate_message(patch.message) if message_changed else None

        order = await self._load(order_id)
        self.state_machine.ensure_editable(order, self._now())

        new_items = await self._snapshot_items(requested) if requested is not None else None

        now = self._now()
        # The deadline may pass while products are looked up.
        self.state_machine.ensure_editable(order, now)

        editor_id = editor_id or order.customer_id
        if editor_id == order.customer_id:
            editor_name = order.customer_name
        else:
            editor_name = await self._user_display_name(editor_id)

        changes = self.state_machine.describe_changes(
            order.items, new_items, order.message, message, message_changed
        )
        entry = self.state_machine.history_entry(
            HistoryAction.UPDATED, editor_id, editor_name, now, changes
        )

        update: dict[str, Any] = {"canEdit": True}
        if new_items is not None:
            update["items"] = [item.model_dump(by_alias=True) for item in new_items]
            update["totalItems"] = sum(item.quantity for item in new_items)
        if message_changed:
            update["message"] = message

        # Receipt may land between the checks above and this write.
        updated = await self.repository.update(
            order_id,
            update,
            entry.model_dump(by_alias=True, exclude_none=True),
            match={
                "status": OrderStatus.NEW.value,
                "editDeadline": {"$gt": now},
            },
        )
        if updated is None:
            current = await self._load(order_id)
            self.state_machine.ensure_editable(current, now)
            raise EditWindowClosedError(
                f"Order {current.order_number} changed during the edit",
                order_id=order_id,
                status=current.status.value,
            )
        result = self._with_fresh_edit_flag(Order.from_record(updated), now)

        logger.info(
            "Order updated",
            order_id=order_id,
            order_number=result.order_number,
            editor_id=editor_id,
            changes=changes,
        )
        await self._notify(result, NotificationKind.ORDER_UPDATED)
        return result

    async def mark_received(self, order_id: str, by_admin_id: str) -> Order:
        """
        Mark an order as received by the supplier.

        Receipt closes the edit window: the deadline is clamped to the
        receipt instant and ``canEdit`` becomes false.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStatusTransitionError: If the order was already received
        """
        order = await self._load(order_id)
        self.state_machine.validate_transition(order, OrderStatus.RECEIVED)

        now = self._now()
        admin_name = await self._user_display_name(by_admin_id)
        entry = self.state_machine.history_entry(
            HistoryAction.RECEIVED, by_admin_id, admin_name, now
        )
        deadline = min(ensure_aware(order.edit_deadline), now)

        updated = await self.repository.update(
            order_id,
            {
                "status": OrderStatus.RECEIVED.value,
                "canEdit": False,
                "editDeadline": deadline,
            },
            entry.model_dump(by_alias=True, exclude_none=True),
            match={"status": OrderStatus.NEW.value},
        )
        if updated is None:
            current = await self._load(order_id)
            self.state_machine.validate_transition(current, OrderStatus.RECEIVED)
            raise InvalidStatusTransitionError(
                f"Order {current.order_number} changed during receipt",
                order_id=order_id,
                current_status=current.status.value,
                target_status=OrderStatus.RECEIVED.value,
            )
        result = Order.from_record(updated)

        logger.info(
            "Order received",
            order_id=order_id,
            order_number=result.order_number,
            admin_id=by_admin_id,
        )
        await self._notify(result, NotificationKind.ORDER_RECEIVED)
        return result

    async def get_order(self, order_id: str) -> Order:
        """Fetch one order with ``canEdit`` recomputed for the current time."""
        order = await self._load(order_id)
        return self._with_fresh_edit_flag(order, self._now())

    async def list_orders(self, filters: Optional[OrderFilter] = None) -> list[Order]:
        """
        List orders newest first.

        Records that fail validation are skipped with a warning rather than
        failing the whole listing.
        """
        filters = filters or OrderFilter()
        records = await self.repository.find(filters)
        now = self._now()

        orders: list[Order] = []
        for record in records:
            try:
                order = Order.from_record(record)
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed order record",
                    order_id=record.get("id"),
                    error_count=e.error_count(),
                )
                continue
            orders.append(self._with_fresh_edit_flag(order, now))
        return orders

    async def count_orders(self, filters: Optional[OrderFilter] = None) -> int:
        return await self.repository.count(filters or OrderFilter())
