"""
Aggregation engine for order reports.

The engine works on raw order records as returned by the store. Each
record is first normalized into an ``OrderFact``; records that cannot be
normalized are counted and skipped so one bad document never aborts a
report. All views are then computed from the same list of facts.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from order_portal.core.logging import get_logger
from order_portal.core.timeutils import ensure_aware, local_date
from order_portal.schemas.orders import LocalizedName
from order_portal.schemas.reports import (
    CustomerProductMatrix,
    CustomerStat,
    DailyTrendPoint,
    MatrixAxisEntry,
    OrderReport,
    ProductStat,
    ReportSummary,
)
from order_portal.services.reports.display import (
    Language,
    UNKNOWN,
    pick_language,
    resolve_customer_name,
    resolve_product_name,
)

logger = get_logger(__name__)

DEFAULT_TOP_N = 10


class LineFact(BaseModel):
    product_id: str
    snapshot: Any = None
    quantity: int = Field(..., ge=0)


class OrderFact(BaseModel):
    """Normalized view of one order record."""

    order_id: str
    customer_id: str
    customer_snapshot: Optional[str] = None
    status: str
    created_at: datetime
    lines: list[LineFact]

    @field_validator("created_at")
    @classmethod
    def make_aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)


def _reference_id(value: Any) -> str:
    """Id of a reference stored either as an id or as an embedded document."""
    if isinstance(value, Mapping):
        value = value.get("id", value.get("_id"))
    if value is None or value == "":
        raise ValueError("missing reference")
    return str(value)


def normalize_order(record: Mapping[str, Any]) -> OrderFact:
    """
    Convert a raw order record into an ``OrderFact``.

    Raises:
        ValueError: If the record lacks a customer, a creation time or
            well-formed items
    """
    if not isinstance(record, Mapping):
        raise ValueError("order record must be a mapping")
    customer = record.get("customer")
    snapshot = record.get("customerName")
    if isinstance(customer, Mapping):
        snapshot = snapshot or resolve_customer_name(customer, None)

    items = record.get("items")
    if not isinstance(items, list):
        raise ValueError("items must be a list")

    lines = []
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError("item must be a mapping")
        product = item.get("product")
        lines.append(
            LineFact(
                product_id=_reference_id(product),
                snapshot=item.get("productName")
                or (product.get("name") if isinstance(product, Mapping) else None),
                quantity=item.get("quantity"),
            )
        )

    return OrderFact(
        order_id=str(record.get("id", "")),
        customer_id=_reference_id(customer),
        customer_snapshot=snapshot if isinstance(snapshot, str) else None,
        status=str(record.get("status") or "new"),
        created_at=record.get("createdAt"),
        lines=lines,
    )


class AggregationEngine:
    """
    Compute report views from order records.

    Attributes:
        tz: Business time zone for calendar days
        top_n: Leaderboard length
    """

    def __init__(self, tz: tzinfo = timezone.utc, top_n: int = DEFAULT_TOP_N):
        self.tz = tz
        self.top_n = top_n

    def normalize(self, records: Sequence[Mapping[str, Any]]) -> tuple[list[OrderFact], int]:
        """Normalize records, returning the facts and the number skipped."""
        facts: list[OrderFact] = []
        skipped = 0
        for record in records:
            try:
                facts.append(normalize_order(record))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                skipped += 1
                logger.warning(
                    "Skipping malformed order in report",
                    order_id=record.get("id") if isinstance(record, Mapping) else None,
                    error=str(e),
                )
        return facts, skipped

    def daily_trend(self, facts: Sequence[OrderFact]) -> list[DailyTrendPoint]:
        buckets: dict[date, DailyTrendPoint] = {}
        for fact in facts:
            day = local_date(fact.created_at, self.tz)
            point = buckets.setdefault(day, DailyTrendPoint(day=day))
            point.order_count += 1
            point.total_items += fact.total_items
        return [buckets[day] for day in sorted(buckets)]

    def _product_names(
        self,
        facts: Sequence[OrderFact],
        products: Mapping[str, Mapping[str, Any]],
    ) -> dict[str, LocalizedName]:
        """Catalog name when known, otherwise the most recent order snapshot."""
        snapshots: dict[str, Any] = {}
        for fact in sorted(facts, key=lambda f: f.created_at):
            for line in fact.lines:
                if line.snapshot:
                    snapshots[line.product_id] = line.snapshot
        product_ids = {line.product_id for fact in facts for line in fact.lines}
        return {
            product_id: resolve_product_name(
                products.get(product_id), snapshots.get(product_id)
            )
            for product_id in product_ids
        }

    def _customer_names(
        self,
        facts: Sequence[OrderFact],
        customers: Mapping[str, Mapping[str, Any]],
    ) -> dict[str, str]:
        names: dict[str, str] = {}
        for fact in facts:
            names[fact.customer_id] = resolve_customer_name(
                customers.get(fact.customer_id), fact.customer_snapshot
            )
        return names

    def top_products(
        self,
        facts: Sequence[OrderFact],
        products: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> list[ProductStat]:
        """Products by summed quantity, descending, with distinct order counts."""
        quantities: Counter[str] = Counter()
        orders: dict[str, set[str]] = defaultdict(set)
        for index, fact in enumerate(facts):
            for line in fact.lines:
                quantities[line.product_id] += line.quantity
                orders[line.product_id].add(fact.order_id or str(index))

        names = self._product_names(facts, products or {})
        stats = [
            ProductStat(
                product_id=product_id,
                name=names[product_id],
                quantity=quantity,
                order_count=len(orders[product_id]),
            )
            for product_id, quantity in quantities.items()
        ]
        stats.sort(key=lambda s: (-s.quantity, -s.order_count, s.name.en, s.product_id))
        return stats[: self.top_n]

    def top_customers(
        self,
        facts: Sequence[OrderFact],
        customers: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> list[CustomerStat]:
        """Customers by order count, descending."""
        order_counts: Counter[str] = Counter()
        item_counts: Counter[str] = Counter()
        for fact in facts:
            order_counts[fact.customer_id] += 1
            item_counts[fact.customer_id] += fact.total_items

        names = self._customer_names(facts, customers or {})
        stats = [
            CustomerStat(
                customer_id=customer_id,
                name=names.get(customer_id, UNKNOWN),
                order_count=count,
                item_count=item_counts[customer_id],
            )
            for customer_id, count in order_counts.items()
        ]
        stats.sort(key=lambda s: (-s.order_count, -s.item_count, s.name, s.customer_id))
        return stats[: self.top_n]

    def status_distribution(self, facts: Sequence[OrderFact]) -> dict[str, int]:
        return dict(Counter(fact.status for fact in facts))

    def customer_product_matrix(
        self,
        facts: Sequence[OrderFact],
        customers: Optional[Mapping[str, Mapping[str, Any]]] = None,
        products: Optional[Mapping[str, Mapping[str, Any]]] = None,
        language: Language = "en",
    ) -> CustomerProductMatrix:
        """Summed quantity for every (customer, product) pair in the slice."""
        cells: dict[str, dict[str, int]] = defaultdict(dict)
        for fact in facts:
            row = cells[fact.customer_id]
            for line in fact.lines:
                row[line.product_id] = row.get(line.product_id, 0) + line.quantity

        customer_names = self._customer_names(facts, customers or {})
        product_names = self._product_names(facts, products or {})

        customer_axis = sorted(
            (MatrixAxisEntry(id=cid, name=customer_names[cid]) for cid in cells),
            key=lambda e: (e.name, e.id),
        )
        product_axis = sorted(
            (
                MatrixAxisEntry(id=pid, name=pick_language(name, language))
                for pid, name in product_names.items()
            ),
            key=lambda e: (e.name, e.id),
        )
        return CustomerProductMatrix(
            customers=customer_axis, products=product_axis, cells=dict(cells)
        )

    def product_quantities(
        self,
        facts: Sequence[OrderFact],
        products: Optional[Mapping[str, Mapping[str, Any]]] = None,
        language: Language = "en",
    ) -> dict[str, int]:
        """Quantities keyed by display name; unnamed products are left out."""
        names = self._product_names(facts, products or {})
        totals: Counter[str] = Counter()
        for fact in facts:
            for line in fact.lines:
                label = pick_language(names[line.product_id], language)
                if label != UNKNOWN:
                    totals[label] += line.quantity
        return dict(totals.most_common())

    def summary(
        self,
        facts: Sequence[OrderFact],
        total_customers: int,
        returning_customer_ids: Optional[set[str]] = None,
        skipped: int = 0,
    ) -> ReportSummary:
        """
        Headline numbers.

        Args:
            facts: Orders in range
            total_customers: Customers overall, not only those in range
            returning_customer_ids: Customers with an order before the range
            skipped: Malformed records left out of the report
        """
        total_orders = len(facts)
        total_items = sum(fact.total_items for fact in facts)
        in_range = {fact.customer_id for fact in facts}
        new_customers = in_range - (returning_customer_ids or set())
        return ReportSummary(
            total_orders=total_orders,
            total_items=total_items,
            total_customers=total_customers,
            new_customers=len(new_customers),
            average_items_per_order=(
                round(total_items / total_orders, 2) if total_orders else 0.0
            ),
            skipped_records=skipped,
        )

    def build(
        self,
        records: Sequence[Mapping[str, Any]],
        start: datetime,
        end: datetime,
        customers: Optional[Mapping[str, Mapping[str, Any]]] = None,
        products: Optional[Mapping[str, Mapping[str, Any]]] = None,
        total_customers: int = 0,
        returning_customer_ids: Optional[set[str]] = None,
        language: Language = "en",
    ) -> OrderReport:
        """Compute every report view from one slice of records."""
        facts, skipped = self.normalize(records)
        return OrderReport(
            start=start,
            end=end,
            daily_trend=self.daily_trend(facts),
            top_products=self.top_products(facts, products),
            top_customers=self.top_customers(facts, customers),
            status_distribution=self.status_distribution(facts),
            matrix=self.customer_product_matrix(facts, customers, products, language),
            summary=self.summary(facts, total_customers, returning_customer_ids, skipped),
        )
