"""
Physical count (inventory count session) schemas.
"""

from enum import Enum
from datetime import datetime
from typing import Optional

from pydantic import Field, computed_field

from models.base import BaseSchema
from models.ledger import LedgerEntry


class CountStatus(str, Enum):
    """Count session lifecycle: in_progress -> completed -> applied."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPLIED = "applied"


COUNT_STATUS_ORDER = [CountStatus.IN_PROGRESS, CountStatus.COMPLETED, CountStatus.APPLIED]

COUNT_ADJUSTMENT_REASON = "inventory count adjustment"


class CountLine(BaseSchema):
    """One product in a count. Owned by its session."""

    product_id: str = Field(..., description="Product UUID")
    product_name: Optional[str] = Field(None, description="Product name at count start")
    expected_quantity: int = Field(..., ge=0, description="System quantity at count start")
    counted_quantity: Optional[int] = Field(None, ge=0, description="Operator-entered quantity")

    @computed_field
    @property
    def difference(self) -> Optional[int]:
        if self.counted_quantity is None:
            return None
        return self.counted_quantity - self.expected_quantity


class CountSession(BaseSchema):
    """A physical counting pass over the product catalogue."""

    id: Optional[str] = Field(None, description="Session UUID")
    status: CountStatus = Field(CountStatus.IN_PROGRESS, description="Lifecycle status")
    location_id: Optional[str] = Field(
        None,
        description="When set, lines count this location only instead of product totals"
    )
    user_id: Optional[str] = Field(None, description="User who started the count")
    user_name: Optional[str] = Field(None, description="Label of that user")
    lines: list[CountLine] = Field(default_factory=list)
    version: int = Field(0, description="Optimistic concurrency version")
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    applied_by: Optional[str] = None

    def line_for(self, product_id: str) -> Optional[CountLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    @property
    def uncounted_product_ids(self) -> list[str]:
        return [line.product_id for line in self.lines if line.counted_quantity is None]


# ===================
# REQUEST SCHEMAS
# ===================

class CountStartRequest(BaseSchema):
    """Start a count over all products, or the listed ones."""

    location_id: Optional[str] = None
    product_ids: Optional[list[str]] = None


class CountedQuantityRequest(BaseSchema):
    """Record the counted quantity for one product."""

    counted_quantity: int = Field(..., ge=0)


class CountFinalizeRequest(BaseSchema):
    """Finalize a count; blank lines need confirmation to default to 0."""

    confirm_missing_as_zero: bool = False


# ===================
# RESPONSE SCHEMAS
# ===================

class CountVarianceReport(BaseSchema):
    """Variance summary of a count session."""

    session_id: Optional[str]
    status: CountStatus
    lines: list[CountLine]
    products_counted: int
    products_matched: int
    products_discrepant: int
    total_expected: int
    total_counted: int
    total_difference: int


class CountApplyResponse(BaseSchema):
    """Applied session plus the adjustment entries written for it."""

    session: CountSession
    entries: list[LedgerEntry]


class CountSessionListResponse(BaseSchema):
    """List of count sessions."""

    data: list[CountSession]
    total: int
