"""
Report API routes.

All reports are computed on read from products and the ledger.
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional
import structlog

from models.ledger import ActingUser
from models.reports import (
    ValuationReport,
    AbcReport,
    DeadStockReport,
    LowStockReport,
)
from services.report_service import get_report_service
from routes.deps import require_permission
from routes.errors import handle_error
from utils.permissions import Permission

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/reports",
    tags=["Reports"],
)


@router.get("/valuation", response_model=ValuationReport)
async def valuation(
    user: ActingUser = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    """Quantity on hand times unit cost, per product."""
    try:
        return get_report_service().valuation()
    except Exception as e:
        return handle_error(e)


@router.get("/abc", response_model=AbcReport)
async def abc(
    window_days: Optional[int] = Query(None, ge=1, le=3650, description="Consumption window"),
    user: ActingUser = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    """ABC classification by consumption value over the window."""
    try:
        return get_report_service().abc(window_days=window_days)
    except Exception as e:
        return handle_error(e)


@router.get("/dead-stock", response_model=DeadStockReport)
async def dead_stock(
    window_days: Optional[int] = Query(None, ge=1, le=3650, description="Days without an exit"),
    user: ActingUser = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    """Products holding stock with no outbound movement in the window."""
    try:
        return get_report_service().dead_stock(window_days=window_days)
    except Exception as e:
        return handle_error(e)


@router.get("/low-stock", response_model=LowStockReport)
async def low_stock(
    user: ActingUser = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    try:
        return get_report_service().low_stock()
    except Exception as e:
        return handle_error(e)
