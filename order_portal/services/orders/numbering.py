"""
Human-readable order number allocation.

Two formats are supported and both are computed from the store's
``count``/``find`` primitives, so the backend in use never changes the
numbers handed out:

- ``daily``: ``ST`` + YYMMDD + ``-`` + 4-digit sequence of the business day
- ``sequential``: bare 6-digit number, one past the highest ever issued

Allocation reads before the caller writes, so two allocators can compute
the same number. Callers insert under the store's unique constraint and
ask for a new number when the insert is rejected as a duplicate.
"""

from datetime import datetime, timezone, tzinfo
from typing import Literal, Optional

from order_portal.core.logging import get_logger
from order_portal.core.timeutils import day_bounds, local_date
from order_portal.store.base import DESCENDING, RecordStore

logger = get_logger(__name__)

ORDERS = "orders"
DAILY_SEQUENCE_WIDTH = 4
SEQUENTIAL_WIDTH = 6


class OrderNumberAllocator:
    """
    Compute the next order number for an instant.

    Attributes:
        store: Record store holding the orders collection
        scheme: ``daily`` or ``sequential``
        prefix: Prefix of daily numbers
        tz: Business time zone defining the day
    """

    def __init__(
        self,
        store: RecordStore,
        scheme: Literal["daily", "sequential"] = "daily",
        prefix: str = "ST",
        tz: tzinfo = timezone.utc,
    ):
        self.store = store
        self.scheme = scheme
        self.prefix = prefix
        self.tz = tz

    def day_prefix(self, moment: datetime) -> str:
        return f"{self.prefix}{local_date(moment, self.tz):%y%m%d}-"

    def format_number(self, moment: datetime, sequence: int) -> str:
        if self.scheme == "sequential":
            return f"{sequence:0{SEQUENTIAL_WIDTH}d}"
        return f"{self.day_prefix(moment)}{sequence:0{DAILY_SEQUENCE_WIDTH}d}"

    def parse_sequence(self, order_number: str, moment: datetime) -> Optional[int]:
        """Sequence part of a number issued under the current scheme, else None."""
        if self.scheme == "sequential":
            return int(order_number) if order_number.isdigit() else None
        day_prefix = self.day_prefix(moment)
        if not order_number.startswith(day_prefix):
            return None
        tail = order_number[len(day_prefix):]
        return int(tail) if tail.isdigit() else None

    async def _highest_sequence(self, query: dict, moment: datetime) -> int:
        latest = await self.store.find(
            ORDERS, query, sort=[("orderNumber", DESCENDING)], limit=1
        )
        if not latest:
            return 0
        return self.parse_sequence(str(latest[0].get("orderNumber", "")), moment) or 0

    async def next_order_number(self, moment: datetime) -> str:
        """
        Allocate the next order number for an order created at ``moment``.

        Args:
            moment: Creation instant of the new order

        Returns:
            Formatted order number
        """
        if self.scheme == "sequential":
            existing = await self.store.count(ORDERS)
            # Bare numeric numbers sort below any prefixed one.
            highest = await self._highest_sequence({"orderNumber": {"$lt": "A"}}, moment)
        else:
            start, end = day_bounds(moment, self.tz)
            day_query = {"createdAt": {"$gte": start, "$lt": end}}
            existing = await self.store.count(ORDERS, day_query)
            highest = await self._highest_sequence(day_query, moment)

        sequence = max(existing, highest) + 1
        order_number = self.format_number(moment, sequence)

        logger.debug(
            "Order number allocated",
            scheme=self.scheme,
            existing=existing,
            highest=highest,
            order_number=order_number,
        )
        return order_number
