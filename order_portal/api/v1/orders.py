"""
Order API endpoints.

Customers place, list, view and edit their own orders; administrators see
every order and mark orders as received. Service errors propagate to the
application's exception handlers, which map them to HTTP responses.
"""

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from order_portal.api.deps import (
    CallerIdentity,
    CurrentAdmin,
    CurrentCaller,
    OrderServiceDep,
)
from order_portal.core.logging import get_logger
from order_portal.core.timeutils import start_of_day
from order_portal.schemas.orders import (
    Order,
    OrderCreateRequest,
    OrderEditRequest,
    OrderFilter,
    OrderListResponse,
)
from order_portal.services.errors import ValidationFailedError
from order_portal.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter()


def _ensure_can_access(caller: CallerIdentity, order: Order) -> None:
    if not caller.is_admin and order.customer_id != caller.user_id:
        logger.warning(
            "Access denied: Order belongs to another customer",
            user_id=caller.user_id,
            order_id=order.id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this order",
        )


@router.post(
    "",
    response_model=Order,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
)
async def create_order(
    request: OrderCreateRequest,
    caller: CurrentCaller,
    service: OrderServiceDep,
) -> Order:
    """Place an order for the calling customer."""
    logger.info(
        "Creating order",
        user_id=caller.user_id,
        item_count=len(request.items),
    )
    return await service.create_order(caller.user_id, request.items, request.message)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
)
async def list_orders(
    caller: CurrentCaller,
    service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None, description="First day, inclusive"),
    end_date: Optional[date] = Query(None, description="Last day, inclusive"),
    customer_id: Optional[str] = Query(None, description="Admin only"),
    search: Optional[str] = Query(
        None, max_length=50, description="Part of the order number, any case"
    ),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
) -> OrderListResponse:
    """
    List orders newest first.

    Customers only ever see their own orders; ``customer_id`` is honoured
    for administrators.
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationFailedError(
            "Start date must not be after end date",
            code="INVALID_DATE_RANGE",
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        )

    tz = service.settings.tz
    filters = OrderFilter(
        customer_id=customer_id if caller.is_admin else caller.user_id,
        status=status_filter,
        start=start_of_day(start_date, tz) if start_date else None,
        end=start_of_day(end_date + timedelta(days=1), tz) if end_date else None,
        search=(search.strip() or None) if search else None,
        skip=skip,
        limit=limit,
    )
    orders = await service.list_orders(filters)
    total = await service.count_orders(filters)
    return OrderListResponse(orders=orders, count=total)


@router.get(
    "/{order_id}",
    response_model=Order,
    summary="Get order",
)
async def get_order(
    order_id: str,
    caller: CurrentCaller,
    service: OrderServiceDep,
) -> Order:
    order = await service.get_order(order_id)
    _ensure_can_access(caller, order)
    return order


@router.patch(
    "/{order_id}",
    response_model=Order,
    summary="Edit order",
    description="Change items or message while the edit window is open",
)
async def edit_order(
    order_id: str,
    request: OrderEditRequest,
    caller: CurrentCaller,
    service: OrderServiceDep,
) -> Order:
    order = await service.get_order(order_id)
    _ensure_can_access(caller, order)
    return await service.edit_order(order_id, request, editor_id=caller.user_id)


@router.post(
    "/{order_id}/receive",
    response_model=Order,
    summary="Mark order received",
)
async def mark_received(
    order_id: str,
    admin: CurrentAdmin,
    service: OrderServiceDep,
) -> Order:
    """Administrator confirms the order was received for fulfilment."""
    return await service.mark_received(order_id, admin.user_id)
