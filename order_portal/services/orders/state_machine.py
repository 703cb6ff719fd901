"""Order state machine with edit-window and transition validation.

Orders move ``new -> received`` and nothing else. Customers may change a
``new`` order until its edit deadline; the deadline is checked against
the current time on every request, never against the stored ``canEdit``
flag, which is only a snapshot taken at the last write.
"""

from datetime import datetime
from typing import Optional, Sequence

from order_portal.core.logging import get_logger
from order_portal.core.timeutils import ensure_aware
from order_portal.schemas.orders import HistoryEntry, Order, OrderItem
from order_portal.services.errors import (
    EditWindowClosedError,
    InvalidStatusTransitionError,
)
from order_portal.services.orders.enums import HistoryAction, OrderStatus

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.NEW: frozenset({OrderStatus.RECEIVED}),
    OrderStatus.RECEIVED: frozenset(),
}


def get_allowed_transitions(status: OrderStatus) -> frozenset[OrderStatus]:
    return ALLOWED_TRANSITIONS.get(status, frozenset())


class OrderStateMachine:
    """Lifecycle rules for a single order.

    The machine is pure: it validates and describes changes but leaves
    persistence to the repository.
    """

    def is_editable(self, order: Order, now: datetime) -> bool:
        """Whether a customer may still change the order at ``now``."""
        return (
            order.status == OrderStatus.NEW
            and ensure_aware(now) < ensure_aware(order.edit_deadline)
        )

    def ensure_editable(self, order: Order, now: datetime) -> None:
        """Raise EditWindowClosedError unless the order is editable at ``now``.

        Args:
            order: Current order
            now: Instant of the edit request

        Raises:
            EditWindowClosedError: If the order was received or its
                deadline has passed
        """
        if self.is_editable(order, now):
            return

        logger.info(
            "Edit rejected",
            order_id=order.id,
            status=order.status.value,
            edit_deadline=order.edit_deadline.isoformat(),
        )
        raise EditWindowClosedError(
            f"Order {order.order_number} can no longer be edited",
            order_id=order.id,
            status=order.status.value,
            edit_deadline=order.edit_deadline.isoformat(),
        )

    def validate_transition(self, order: Order, target_status: OrderStatus) -> None:
        """Validate a status change.

        Raises:
            InvalidStatusTransitionError: If ``target_status`` is not
                reachable from the current status
        """
        current_status = order.status
        allowed = get_allowed_transitions(current_status)
        if target_status not in allowed:
            raise InvalidStatusTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                order_id=order.id,
                current_status=current_status.value,
                target_status=target_status.value,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        logger.debug(
            "State transition validated",
            order_id=order.id,
            transition=f"{current_status.value}->{target_status.value}",
        )

    def history_entry(
        self,
        action: HistoryAction,
        by: str,
        by_name: str,
        timestamp: datetime,
        changes: Optional[str] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            action=action,
            by=by,
            by_name=by_name,
            timestamp=timestamp,
            changes=changes,
        )

    def describe_changes(
        self,
        old_items: Sequence[OrderItem],
        new_items: Optional[Sequence[OrderItem]],
        old_message: Optional[str],
        new_message: Optional[str],
        message_changed: bool,
    ) -> str:
        """Human-readable summary of an edit for the audit trail.

        Example: ``Almond Milk: 2 -> 3; Soy Milk removed; Oat Milk added (2)``
        """
        notes: list[str] = []

        if new_items is not None:
            before = {item.product_id: item for item in old_items}
            after = {item.product_id: item for item in new_items}

            for product_id, item in before.items():
                label = _item_label(item)
                if product_id not in after:
                    notes.append(f"{label} removed")
                elif after[product_id].quantity != item.quantity:
                    notes.append(
                        f"{label}: {item.quantity} -> {after[product_id].quantity}"
                    )
            for product_id, item in after.items():
                if product_id not in before:
                    notes.append(f"{_item_label(item)} added ({item.quantity})")

        if message_changed and (old_message or None) != (new_message or None):
            notes.append("message updated")

        return "; ".join(notes) if notes else "no changes"


def _item_label(item: OrderItem) -> str:
    return item.product_name.en or item.product_name.ar or item.product_id


def get_order_state_machine() -> OrderStateMachine:
    return OrderStateMachine()
