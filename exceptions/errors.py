"""
Custom exception classes for the application.

Every error carries a stable code, a message fit for the operator and the
HTTP status the API layer should answer with.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# LOOKUP ERRORS
# ===================

class ProductNotFoundError(NotFoundError):
    """Product not found."""

    def __init__(self, product_id: str):
        super().__init__(
            resource="Product",
            identifier=product_id,
            code="PRODUCT_NOT_FOUND"
        )


class LocationNotFoundError(NotFoundError):
    """Location not found."""

    def __init__(self, location_id: str):
        super().__init__(
            resource="Location",
            identifier=location_id,
            code="LOCATION_NOT_FOUND"
        )


class CountSessionNotFoundError(NotFoundError):
    """Count session not found."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Count session",
            identifier=session_id,
            code="COUNT_SESSION_NOT_FOUND"
        )


class CountLineNotFoundError(NotFoundError):
    """Product is not part of the count session."""

    def __init__(self, session_id: str, product_id: str):
        super().__init__(
            resource="Count line",
            identifier=product_id,
            code="COUNT_LINE_NOT_FOUND"
        )
        self.details["session_id"] = session_id


class RegistryItemNotFoundError(NotFoundError):
    """Category, location or supplier not found."""

    def __init__(self, resource: str, item_id: str):
        super().__init__(
            resource=resource.capitalize(),
            identifier=item_id,
        )


# ===================
# STOCK MUTATION ERRORS
# ===================

class InvalidQuantityError(ValidationError):
    """Quantity must be positive (movements) or non-negative (targets)."""

    def __init__(self, quantity: Any, allow_zero: bool = False):
        expected = "zero or greater" if allow_zero else "greater than zero"
        super().__init__(
            code="INVALID_QUANTITY",
            message=f"invalid quantity: {quantity} (must be {expected})",
            details={"provided": quantity, "allow_zero": allow_zero}
        )


class InsufficientStockError(ConflictError):
    """Exit or transfer would drive a location below zero."""

    def __init__(
        self,
        product_id: str,
        location_id: str,
        available: int,
        requested: int
    ):
        super().__init__(
            code="INSUFFICIENT_STOCK",
            message=f"insufficient stock: {available} available, {requested} requested",
            details={
                "product_id": product_id,
                "location_id": location_id,
                "available": available,
                "requested": requested,
            }
        )


class InvalidTransferError(ValidationError):
    """Transfer source and destination are the same location."""

    def __init__(self, location_id: str):
        super().__init__(
            code="INVALID_TRANSFER",
            message="source and destination locations must be different",
            details={"location_id": location_id}
        )


class ConcurrencyConflictError(ConflictError):
    """Optimistic transaction retries exhausted."""

    def __init__(self, resource_id: str, attempts: int):
        super().__init__(
            code="CONCURRENCY_CONFLICT",
            message="the record was changed by another user; please retry",
            details={"id": resource_id, "attempts": attempts, "retryable": True}
        )


# ===================
# COUNT SESSION ERRORS
# ===================

class AlreadyAppliedError(ConflictError):
    """Count session adjustments were already applied."""

    def __init__(self, session_id: str):
        super().__init__(
            code="COUNT_ALREADY_APPLIED",
            message="this count has already been applied to stock",
            details={"session_id": session_id}
        )


class InvalidStatusTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, current_status: str, new_status: str, terminal_status: str = "applied"):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": f"Status can only move forward, and {terminal_status} is terminal"
            }
        )


class UncountedLinesError(ValidationError):
    """Finalizing with blank lines needs explicit confirmation."""

    def __init__(self, product_ids: list[str]):
        super().__init__(
            code="COUNT_LINES_UNCOUNTED",
            message=(
                f"{len(product_ids)} products have no counted quantity; "
                "confirm to count them as 0"
            ),
            details={"product_ids": product_ids}
        )


# ===================
# IMPORT ERRORS
# ===================

class ImportParseError(ValidationError):
    """Bulk import file could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_PARSE_ERROR",
            message=message,
            details=details
        )
