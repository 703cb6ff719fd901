"""
Service-level error taxonomy.

Services never leak store or driver exceptions; they raise one of the
families below. Each error carries a stable ``code`` for clients and a
``context`` dictionary for logs.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for service errors."""

    code = "SERVICE_ERROR"

    def __init__(self, message: str, code: str = "", **context: Any):
        super().__init__(message)
        if code:
            self.code = code
        self.context = context


class ValidationFailedError(ServiceError):
    """Raised when input is malformed or violates a business rule."""

    code = "VALIDATION_FAILED"


class InsufficientItemsError(ValidationFailedError):
    """Raised when an order has fewer item units than the minimum."""

    code = "INSUFFICIENT_ITEMS"


class ProductsUnavailableError(ValidationFailedError):
    """Raised when ordered products exist but are not available."""

    code = "PRODUCTS_UNAVAILABLE"


class NotFoundError(ServiceError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    code = "ORDER_NOT_FOUND"


class ProductsNotFoundError(NotFoundError):
    code = "PRODUCTS_NOT_FOUND"


class CustomerNotFoundError(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


class ConflictError(ServiceError):
    """Raised when the current state of an entity forbids the request."""

    code = "CONFLICT"


class EditWindowClosedError(ConflictError):
    """Raised when an order is edited after its edit deadline."""

    code = "EDIT_WINDOW_CLOSED"


class InvalidStatusTransitionError(ConflictError):
    code = "INVALID_STATUS_TRANSITION"


class TemporarilyUnavailableError(ServiceError):
    """Raised when storage cannot serve the request right now."""

    code = "TEMPORARILY_UNAVAILABLE"
