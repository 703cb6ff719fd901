"""
Report service: date range handling and store reads for the engine.

Every report reads the orders of its range once; the engine derives all
views from that slice. Customer and product catalogs are read alongside
to resolve display names.
"""

from datetime import date, datetime
from typing import Any, Callable, Mapping, Optional

from order_portal.core.config import Settings, get_settings
from order_portal.core.logging import get_logger, log_performance
from order_portal.core.timeutils import date_range_bounds, ensure_aware, utcnow
from order_portal.schemas.reports import CustomerProductMatrix, DashboardStats, OrderReport
from order_portal.services.errors import TemporarilyUnavailableError, ValidationFailedError
from order_portal.services.orders.enums import OrderStatus
from order_portal.services.reports.display import Language
from order_portal.services.reports.engine import AggregationEngine
from order_portal.services.reports.export import matrix_to_xlsx
from order_portal.services.reports.periods import Period, resolve_period
from order_portal.store.base import ASCENDING, Record, RecordStore, StoreError

logger = get_logger(__name__)

CUSTOMER_QUERY = {"isAdmin": {"$ne": True}}


class ReportService:
    """
    Build order reports over calendar-date ranges.

    Attributes:
        store: Record store to read from
        engine: Aggregation engine computing the views
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.engine = AggregationEngine(tz=self.settings.tz, top_n=self.settings.report_top_n)
        self.clock = clock

    def date_range(self, start_date: date, end_date: date) -> tuple[datetime, datetime]:
        """
        Convert an inclusive calendar range to ``[start 00:00, end+1 00:00)``.

        Raises:
            ValidationFailedError: If ``start_date`` is after ``end_date``
        """
        if start_date > end_date:
            raise ValidationFailedError(
                "Start date must not be after end date",
                code="INVALID_DATE_RANGE",
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat(),
            )
        return date_range_bounds(start_date, end_date, self.settings.tz)

    async def _orders_between(self, start: datetime, end: datetime) -> list[Record]:
        return await self.store.find(
            "orders",
            {"createdAt": {"$gte": start, "$lt": end}},
            sort=[("createdAt", ASCENDING)],
        )

    async def _by_id(self, collection: str, ids: set[str]) -> dict[str, Record]:
        if not ids:
            return {}
        records = await self.store.find(collection, {"id": {"$in": sorted(ids)}})
        return {str(record["id"]): record for record in records}

    @staticmethod
    def _referenced_ids(records: list[Record]) -> tuple[set[str], set[str]]:
        customer_ids: set[str] = set()
        product_ids: set[str] = set()
        for record in records:
            if not isinstance(record, Mapping):
                continue
            customer = record.get("customer")
            if isinstance(customer, str):
                customer_ids.add(customer)
            items = record.get("items")
            if not isinstance(items, list):
                # Left for the engine to count as skipped.
                continue
            for item in items:
                product = item.get("product") if isinstance(item, Mapping) else None
                if isinstance(product, str):
                    product_ids.add(product)
        return customer_ids, product_ids

    async def build_report(
        self,
        start_date: date,
        end_date: date,
        language: Language = "en",
    ) -> OrderReport:
        """
        Build all report views for an inclusive calendar-date range.

        Args:
            start_date: First day of the range
            end_date: Last day of the range
            language: Language of product names in the matrix

        Returns:
            Daily trend, leaderboards, status histogram, matrix and summary

        Raises:
            ValidationFailedError: If the range is inverted
            TemporarilyUnavailableError: If the store cannot be read
        """
        start, end = self.date_range(start_date, end_date)

        with log_performance(logger, "build_report", start=start.isoformat(), end=end.isoformat()):
            try:
                records = await self._orders_between(start, end)
                customer_ids, product_ids = self._referenced_ids(records)
                customers = await self._by_id("users", customer_ids)
                products = await self._by_id("products", product_ids)
                total_customers = await self.store.count("users", CUSTOMER_QUERY)
                returning = await self._returning_customers(customer_ids, start)
            except StoreError as e:
                logger.error("Report read failed", error=str(e))
                raise TemporarilyUnavailableError(
                    "Reports are temporarily unavailable",
                    start=start.isoformat(),
                    end=end.isoformat(),
                ) from e

            report = self.engine.build(
                records,
                start,
                end,
                customers=customers,
                products=products,
                total_customers=total_customers,
                returning_customer_ids=returning,
                language=language,
            )

        if report.summary.skipped_records:
            logger.warning(
                "Report built with skipped records",
                skipped=report.summary.skipped_records,
            )
        logger.info(
            "Report built",
            total_orders=report.summary.total_orders,
            total_items=report.summary.total_items,
        )
        return report

    async def _returning_customers(self, customer_ids: set[str], start: datetime) -> set[str]:
        """Customers of ``customer_ids`` with an order created before ``start``."""
        if not customer_ids:
            return set()
        earlier = await self.store.find(
            "orders",
            {"customer": {"$in": sorted(customer_ids)}, "createdAt": {"$lt": start}},
        )
        return {
            str(record["customer"]) for record in earlier if isinstance(record.get("customer"), str)
        }

    async def export_matrix(
        self,
        start_date: date,
        end_date: date,
        language: Language = "en",
    ) -> bytes:
        """Customer x product matrix of the range as ``.xlsx`` bytes."""
        matrix = await self.build_matrix(start_date, end_date, language)
        return matrix_to_xlsx(matrix)

    async def build_matrix(
        self,
        start_date: date,
        end_date: date,
        language: Language = "en",
    ) -> CustomerProductMatrix:
        report = await self.build_report(start_date, end_date, language)
        return report.matrix

    async def dashboard_stats(
        self,
        period: str = Period.TODAY.value,
        custom_date: Optional[date] = None,
        language: Language = "en",
    ) -> DashboardStats:
        """
        Admin dashboard figures for a preset period.

        Args:
            period: One of the ``Period`` values
            custom_date: Day used when ``period`` is ``custom``
            language: Language of product names

        Raises:
            ValidationFailedError: If the period is unknown
            TemporarilyUnavailableError: If the store cannot be read
        """
        preset = Period.from_string(period)
        start, end = resolve_period(
            preset, ensure_aware(self.clock()), self.settings.tz, custom_date
        )

        try:
            records = await self._orders_between(start, end)
            _, product_ids = self._referenced_ids(records)
            products = await self._by_id("products", product_ids)
            total_customers = await self.store.count("users", CUSTOMER_QUERY)
        except StoreError as e:
            logger.error("Dashboard read failed", error=str(e))
            raise TemporarilyUnavailableError(
                "Statistics are temporarily unavailable", period=preset.value
            ) from e

        facts, skipped = self.engine.normalize(records)
        distribution: dict[str, Any] = self.engine.status_distribution(facts)
        return DashboardStats(
            period=preset.value,
            start=start,
            end=end,
            total_orders=len(facts),
            new_orders=distribution.get(OrderStatus.NEW.value, 0),
            received_orders=distribution.get(OrderStatus.RECEIVED.value, 0),
            total_customers=total_customers,
            product_quantities=self.engine.product_quantities(facts, products, language),
            status_distribution=distribution,
            skipped_records=skipped,
        )
