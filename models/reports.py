"""
Report schemas (read-side projections).
"""

from enum import Enum
from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import Field

from models.base import BaseSchema


class AbcClass(str, Enum):
    """ABC consumption tiers."""
    A = "A"
    B = "B"
    C = "C"


# ===================
# VALUATION
# ===================

class ValuationLine(BaseSchema):
    product_id: str
    name: str
    total_quantity: int
    unit_cost: Decimal
    total_value: Decimal


class ValuationReport(BaseSchema):
    """Stock value at cost."""

    lines: list[ValuationLine]
    grand_total: Decimal = Field(Decimal("0"))


# ===================
# ABC ANALYSIS
# ===================

class AbcLine(BaseSchema):
    product_id: str
    name: str
    quantity_consumed: int
    consumption_value: Decimal
    cumulative_percentage: float
    classification: AbcClass


class AbcReport(BaseSchema):
    """Products ranked by consumption value over a trailing window."""

    window_days: int
    period_start: datetime
    lines: list[AbcLine]
    total_consumption_value: Decimal = Field(Decimal("0"))


# ===================
# DEAD STOCK
# ===================

class DeadStockLine(BaseSchema):
    product_id: str
    name: str
    total_quantity: int
    unit_cost: Decimal
    dead_value: Decimal
    last_outbound_at: Optional[datetime] = Field(None, description="None means never issued")


class DeadStockReport(BaseSchema):
    """Stock without outbound movement since the cutoff."""

    window_days: int
    cutoff: datetime
    lines: list[DeadStockLine]
    total_dead_value: Decimal = Field(Decimal("0"))


# ===================
# LOW STOCK
# ===================

class LowStockLine(BaseSchema):
    product_id: str
    name: str
    total_quantity: int
    min_stock: int


class LowStockReport(BaseSchema):
    lines: list[LowStockLine]
    total: int
