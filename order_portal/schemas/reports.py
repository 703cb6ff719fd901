"""
Report Pydantic schemas.

Report views serialize with camelCase aliases like the order records they
are computed from. Matrix totals are derived from the cells on access and
are never stored.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from order_portal.schemas.orders import LocalizedName


class DailyTrendPoint(BaseModel):
    """Orders placed on one business day."""

    model_config = ConfigDict(populate_by_name=True)

    day: date = Field(..., alias="date")
    order_count: int = Field(0, alias="orderCount")
    total_items: int = Field(0, alias="totalItems")


class ProductStat(BaseModel):
    """Leaderboard entry for one product."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    name: LocalizedName
    quantity: int = 0
    order_count: int = Field(0, alias="orderCount")


class CustomerStat(BaseModel):
    """Leaderboard entry for one customer."""

    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    name: str
    order_count: int = Field(0, alias="orderCount")
    item_count: int = Field(0, alias="itemCount")


class MatrixAxisEntry(BaseModel):
    """Row or column header of the customer x product matrix."""

    id: str
    name: str


class CustomerProductMatrix(BaseModel):
    """
    Summed quantities per (customer, product) pair.

    ``cells[customer_id][product_id]`` holds the quantity; pairs that never
    occur are absent. Row, column and grand totals are computed from the
    cells so they always agree with them.
    """

    model_config = ConfigDict(populate_by_name=True)

    customers: list[MatrixAxisEntry] = Field(default_factory=list)
    products: list[MatrixAxisEntry] = Field(default_factory=list)
    cells: dict[str, dict[str, int]] = Field(default_factory=dict)

    def cell(self, customer_id: str, product_id: str) -> int:
        return self.cells.get(customer_id, {}).get(product_id, 0)

    @computed_field(alias="rowTotals")
    @property
    def row_totals(self) -> dict[str, int]:
        return {
            customer.id: sum(self.cells.get(customer.id, {}).values())
            for customer in self.customers
        }

    @computed_field(alias="columnTotals")
    @property
    def column_totals(self) -> dict[str, int]:
        totals = {product.id: 0 for product in self.products}
        for row in self.cells.values():
            for product_id, quantity in row.items():
                totals[product_id] = totals.get(product_id, 0) + quantity
        return totals

    @computed_field(alias="grandTotal")
    @property
    def grand_total(self) -> int:
        return sum(sum(row.values()) for row in self.cells.values())


class ReportSummary(BaseModel):
    """Headline numbers of a report."""

    model_config = ConfigDict(populate_by_name=True)

    total_orders: int = Field(0, alias="totalOrders")
    total_items: int = Field(0, alias="totalItems")
    total_customers: int = Field(0, alias="totalCustomers")
    new_customers: int = Field(0, alias="newCustomers")
    average_items_per_order: float = Field(0.0, alias="averageItemsPerOrder")
    skipped_records: int = Field(0, alias="skippedRecords")


class OrderReport(BaseModel):
    """All report views over the half-open range ``[start, end)``."""

    model_config = ConfigDict(populate_by_name=True)

    start: datetime
    end: datetime
    daily_trend: list[DailyTrendPoint] = Field(default_factory=list, alias="dailyTrend")
    top_products: list[ProductStat] = Field(default_factory=list, alias="topProducts")
    top_customers: list[CustomerStat] = Field(default_factory=list, alias="topCustomers")
    status_distribution: dict[str, int] = Field(
        default_factory=dict, alias="statusDistribution"
    )
    matrix: CustomerProductMatrix = Field(default_factory=CustomerProductMatrix)
    summary: ReportSummary = Field(default_factory=ReportSummary)


class DashboardStats(BaseModel):
    """Administrator dashboard figures for a preset period."""

    model_config = ConfigDict(populate_by_name=True)

    period: str
    start: datetime
    end: datetime
    total_orders: int = Field(0, alias="totalOrders")
    new_orders: int = Field(0, alias="newOrders")
    received_orders: int = Field(0, alias="receivedOrders")
    total_customers: int = Field(0, alias="totalCustomers")
    product_quantities: dict[str, int] = Field(
        default_factory=dict, alias="productQuantities"
    )
    status_distribution: dict[str, int] = Field(
        default_factory=dict, alias="statusDistribution"
    )
    skipped_records: int = Field(0, alias="skippedRecords")

