"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateError,
    DatabaseError,

    # Lookups
    ProductNotFoundError,
    LocationNotFoundError,
    CountSessionNotFoundError,
    CountLineNotFoundError,
    RegistryItemNotFoundError,

    # Stock mutations
    InvalidQuantityError,
    InsufficientStockError,
    InvalidTransferError,
    ConcurrencyConflictError,

    # Count sessions
    AlreadyAppliedError,
    InvalidStatusTransitionError,
    UncountedLinesError,

    # Imports
    ImportParseError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "DatabaseError",

    # Lookups
    "ProductNotFoundError",
    "LocationNotFoundError",
    "CountSessionNotFoundError",
    "CountLineNotFoundError",
    "RegistryItemNotFoundError",

    # Stock mutations
    "InvalidQuantityError",
    "InsufficientStockError",
    "InvalidTransferError",
    "ConcurrencyConflictError",

    # Count sessions
    "AlreadyAppliedError",
    "InvalidStatusTransitionError",
    "UncountedLinesError",

    # Imports
    "ImportParseError",
]
