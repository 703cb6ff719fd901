"""
FastAPI dependencies for caller identity and service access.

Authentication happens upstream: the gateway forwards the authenticated
user in the ``X-User-Id`` and ``X-User-Role`` headers. This module turns
those headers into a caller identity, enforces roles and hands out the
services created at application start-up.
"""

from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from order_portal.core.logging import get_logger, set_user_id
from order_portal.services.orders.service import OrderService
from order_portal.services.reports.service import ReportService

logger = get_logger(__name__)


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class CallerIdentity(BaseModel):
    """Authenticated user making the request."""

    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_caller(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> CallerIdentity:
    """
    Read the caller identity forwarded by the gateway.

    Raises:
        HTTPException: 401 if the identity headers are missing or invalid
    """
    if not x_user_id or not x_user_id.strip():
        logger.warning("Authentication failed: No user identity provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )

    try:
        role = UserRole((x_user_role or UserRole.CUSTOMER.value).lower())
    except ValueError:
        logger.warning("Authentication failed: Unknown role", role=x_user_role)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown caller role",
        )

    caller = CallerIdentity(user_id=x_user_id.strip(), role=role)
    set_user_id(caller.user_id)
    return caller


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires specific user roles.

    Example:
        @router.get("/stats", dependencies=[Depends(require_role(UserRole.ADMIN))])
        async def stats():
            ...
    """

    async def role_checker(
        caller: Annotated[CallerIdentity, Depends(get_current_caller)],
    ) -> CallerIdentity:
        if caller.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=caller.user_id,
                user_role=caller.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return caller

    return role_checker


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


CurrentCaller = Annotated[CallerIdentity, Depends(get_current_caller)]
CurrentAdmin = Annotated[CallerIdentity, Depends(require_role(UserRole.ADMIN))]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
ReportServiceDep = Annotated[ReportService, Depends(get_report_service)]
