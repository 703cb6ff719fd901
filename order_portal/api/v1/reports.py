"""
Report API endpoints for administrators.

Date parameters are inclusive calendar days in the business time zone.
"""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Query, Response

from order_portal.api.deps import CurrentAdmin, ReportServiceDep
from order_portal.core.logging import get_logger
from order_portal.schemas.reports import DashboardStats, OrderReport

logger = get_logger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get(
    "",
    response_model=OrderReport,
    summary="Order report",
    description="Daily trend, leaderboards, status histogram, pivot matrix and summary",
)
async def build_report(
    admin: CurrentAdmin,
    service: ReportServiceDep,
    start_date: date = Query(..., description="First day, inclusive"),
    end_date: date = Query(..., description="Last day, inclusive"),
    language: Literal["en", "ar"] = Query("en"),
) -> OrderReport:
    logger.info(
        "Building report",
        user_id=admin.user_id,
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
    )
    return await service.build_report(start_date, end_date, language)


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Dashboard statistics",
)
async def dashboard_stats(
    admin: CurrentAdmin,
    service: ReportServiceDep,
    period: str = Query("today", description="today, yesterday, thisWeek, lastWeek, thisMonth, lastMonth or custom"),
    custom_date: Optional[date] = Query(None, alias="date", description="Day for the custom period"),
    language: Literal["en", "ar"] = Query("en"),
) -> DashboardStats:
    return await service.dashboard_stats(period, custom_date, language)


@router.get(
    "/matrix.xlsx",
    summary="Customer x product pivot export",
    response_class=Response,
)
async def export_matrix(
    admin: CurrentAdmin,
    service: ReportServiceDep,
    start_date: date = Query(...),
    end_date: date = Query(...),
    language: Literal["en", "ar"] = Query("en"),
) -> Response:
    content = await service.export_matrix(start_date, end_date, language)
    filename = f"orders-matrix-{start_date.isoformat()}-{end_date.isoformat()}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
