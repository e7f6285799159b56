"""
Fulfillment error taxonomy.

Every error raised by the fulfillment services derives from FulfillmentError
and carries the HTTP status code the API layer reports for it, plus keyword
context that is logged alongside the message.
"""

from typing import Any


class FulfillmentError(Exception):
    """Base exception for fulfillment operations."""

    status_code: int = 500
    code: str = "FULFILLMENT_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """
        Render the error as a response payload.

        Returns:
            Dictionary with error code, message and stringified context
        """
        return {
            "error": self.code,
            "message": self.message,
            "details": {key: str(value) for key, value in self.context.items()},
        }


class ValidationError(FulfillmentError):
    """Raised for missing or invalid fields and illegal status values."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(FulfillmentError):
    """Raised when an order, delivery, rider or invoice is absent."""

    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(FulfillmentError):
    """Raised when the caller's role does not permit the operation."""

    status_code = 403
    code = "FORBIDDEN"


class ConflictError(FulfillmentError):
    """Raised when current state forbids the operation."""

    status_code = 409
    code = "CONFLICT"


class InsufficientStockError(ConflictError):
    """Raised when a stock decrement would drive a counter negative."""

    code = "INSUFFICIENT_STOCK"


class DependencyFailure(FulfillmentError):
    """Raised when a store write needed by the operation failed."""

    status_code = 500
    code = "DEPENDENCY_FAILURE"


class RepositoryError(Exception):
    """Raised by repositories when a store round-trip fails."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class ConstraintViolationError(RepositoryError):
    """Raised when a write violates a unique or check constraint."""

    pass
