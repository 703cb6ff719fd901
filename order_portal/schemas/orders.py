"""
Order Pydantic schemas for persisted records and API requests.

The persisted shape uses camelCase field names shared by every store
backend (``orderNumber``, ``customerName``, ``editDeadline``...); Python
code works with snake_case attributes through aliases.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    model_validator,
)

from order_portal.services.orders.enums import HistoryAction, OrderStatus


class LocalizedName(BaseModel):
    """Bilingual display name."""

    en: str = ""
    ar: str = ""


class OrderItem(BaseModel):
    """One order line with a snapshot of the product name."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="product", min_length=1)
    product_name: LocalizedName = Field(default_factory=LocalizedName, alias="productName")
    quantity: int = Field(..., ge=1)


class HistoryEntry(BaseModel):
    """One entry of the append-only audit trail."""

    model_config = ConfigDict(populate_by_name=True)

    action: HistoryAction
    by: str
    by_name: str = Field(..., alias="byName")
    timestamp: datetime
    changes: Optional[str] = None

    @field_serializer("action")
    def serialize_action(self, action: HistoryAction) -> str:
        return action.value


class Order(BaseModel):
    """
    Order as persisted by the record store.

    Validation enforces the record invariants: at least one item,
    ``total_items`` equal to the sum of item quantities, and a history
    that starts with a ``created`` entry.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    order_number: str = Field(..., alias="orderNumber")
    customer_id: str = Field(..., alias="customer")
    customer_name: str = Field(..., alias="customerName")
    customer_phone: str = Field("", alias="customerPhone")
    items: list[OrderItem] = Field(..., min_length=1)
    total_items: int = Field(..., alias="totalItems")
    status: OrderStatus = OrderStatus.NEW
    message: Optional[str] = None
    can_edit: bool = Field(..., alias="canEdit")
    edit_deadline: datetime = Field(..., alias="editDeadline")
    history: list[HistoryEntry] = Field(..., min_length=1)
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @field_serializer("status")
    def serialize_status(self, status: OrderStatus) -> str:
        return status.value

    @model_validator(mode="after")
    def validate_invariants(self) -> "Order":
        """Check totals and history ordering."""
        computed = sum(item.quantity for item in self.items)
        if self.total_items != computed:
            raise ValueError(
                f"totalItems {self.total_items} does not match item sum {computed}"
            )
        if self.history[0].action != HistoryAction.CREATED:
            raise ValueError("Order history must start with a 'created' entry")
        return self

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Order":
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        """Persisted camelCase representation."""
        return self.model_dump(by_alias=True, exclude_none=True)


class OrderItemRequest(BaseModel):
    """Requested order line."""

    model_config = ConfigDict(str_strip_whitespace=True)

    product: str = Field(..., min_length=1, description="Product identifier")
    quantity: int = Field(..., ge=1, le=100_000, description="Units ordered")


class OrderCreateRequest(BaseModel):
    """Request body for placing an order."""

    items: list[OrderItemRequest] = Field(..., min_length=1)
    message: Optional[str] = Field(None, description="Optional note for the supplier")


class OrderEditRequest(BaseModel):
    """Changes a customer may make while the edit window is open."""

    items: Optional[list[OrderItemRequest]] = Field(None, min_length=1)
    message: Optional[str] = None

    def is_empty(self) -> bool:
        # An explicit null message clears the note.
        return self.items is None and "message" not in self.model_fields_set


class OrderFilter(BaseModel):
    """Criteria for listing orders; the date range is half-open."""

    customer_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    search: Optional[str] = Field(None, max_length=50)
    skip: int = Field(0, ge=0)
    limit: Optional[int] = Field(None, ge=1, le=500)


class OrderListResponse(BaseModel):
    """Page of orders."""

    orders: list[Order]
    count: int
