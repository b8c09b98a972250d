"""
API error types

Every error carries the HTTP status it maps to, a human readable message and
an optional list of itemized problems returned to the client as `errors`.
"""

from typing import Any, List, Optional


class ApiError(Exception):
    status_code = 500
    default_message = "An internal server error occurred"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(ApiError):
    """Missing/malformed fields or collected line-item problems."""
    status_code = 400
    default_message = "Order validation failed"


class OutOfStockError(ValidationError):
    """Stock ran out between validation and the conditional decrement."""
    default_message = "Some items went out of stock while placing your order. Please try again."


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ApiError):
    status_code = 400
    default_message = "Failed to create order due to duplicate order number. Please try again."


class AuthorizationError(ApiError):
    status_code = 403
    default_message = "Not authorized"


class InternalError(ApiError):
    status_code = 500
