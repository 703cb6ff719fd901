"""Order status and audit-history enums.

Defines the two-state order lifecycle and the vocabulary of actions that
may appear in an order's append-only history.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - NEW -> RECEIVED
    - RECEIVED -> (terminal state)
    """

    NEW = "new"
    RECEIVED = "received"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self == OrderStatus.RECEIVED

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class HistoryAction(str, Enum):
    """Actions recorded in an order's audit trail.

    CANCELLED is part of the persisted vocabulary so stored histories that
    carry it stay readable; no operation in this service produces it.
    """

    CREATED = "created"
    UPDATED = "updated"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class NotificationKind(str, Enum):
    """Customer notification templates emitted on order transitions."""

    ORDER_CREATED = "order_created"
    ORDER_UPDATED = "order_updated"
    ORDER_RECEIVED = "order_received"
