"""
API v1 package initialization.

This module collects the v1 routers of the order portal.
"""

from order_portal.api.v1.orders import router as orders_router
from order_portal.api.v1.reports import router as reports_router

__all__ = ["orders_router", "reports_router"]
