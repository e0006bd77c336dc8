"""
Stock movement request/response schemas.

Quantities are validated again by the mutation engine; the bounds here only
give API clients early feedback.
"""

from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.ledger import LedgerEntry
from models.product import ProductResponse


class StockEntryRequest(BaseSchema):
    """Receive stock into a location."""

    product_id: str
    location_id: str
    quantity: int = Field(..., description="Units to add (> 0)")
    reason: Optional[str] = Field(None, max_length=500)


class StockExitRequest(BaseSchema):
    """Issue stock out of a location."""

    product_id: str
    location_id: str
    quantity: int = Field(..., description="Units to remove (> 0)")
    reason: Optional[str] = Field(None, max_length=500)


class StockTransferRequest(BaseSchema):
    """Move stock between two locations of the same product."""

    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: int = Field(..., description="Units to move (> 0)")
    reason: Optional[str] = Field(None, max_length=500)


class StockAdjustmentRequest(BaseSchema):
    """Set a location's quantity directly."""

    product_id: str
    location_id: str
    new_quantity: int = Field(..., description="Target quantity (>= 0)")
    reason: Optional[str] = Field(None, max_length=500)


class StockMutationResponse(BaseSchema):
    """Committed product state plus the ledger entries written with it."""

    product: ProductResponse
    entries: list[LedgerEntry]
