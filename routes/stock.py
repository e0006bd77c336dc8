"""
Stock movement API routes.

Each endpoint runs one atomic mutation and returns the committed product
together with the ledger entries written for it. Failures carry a specific
message, e.g. "insufficient stock: 3 available, 5 requested".
"""

from fastapi import APIRouter, Depends
import structlog

from models.ledger import ActingUser
from models.stock import (
    StockEntryRequest,
    StockExitRequest,
    StockTransferRequest,
    StockAdjustmentRequest,
    StockMutationResponse,
)
from services.stock_mutation_service import get_stock_mutation_service
from routes.deps import require_permission
from routes.errors import handle_error
from utils.permissions import Permission

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/stock",
    tags=["Stock"],
)


@router.post("/entries", response_model=StockMutationResponse, status_code=201)
async def stock_entry(
    data: StockEntryRequest,
    user: ActingUser = Depends(require_permission(Permission.CREATE_MOVEMENTS)),
):
    """Receive stock into a location."""
    try:
        service = get_stock_mutation_service()
        return service.apply_entry(
            data.product_id, data.location_id, data.quantity, data.reason, user
        )
    except Exception as e:
        return handle_error(e)


@router.post("/exits", response_model=StockMutationResponse, status_code=201)
async def stock_exit(
    data: StockExitRequest,
    user: ActingUser = Depends(require_permission(Permission.CREATE_MOVEMENTS)),
):
    """
    Issue stock out of a location.

    Raises:
        409: Insufficient stock
    """
    try:
        service = get_stock_mutation_service()
        return service.apply_exit(
            data.product_id, data.location_id, data.quantity, data.reason, user
        )
    except Exception as e:
        return handle_error(e)


@router.post("/transfers", response_model=StockMutationResponse, status_code=201)
async def stock_transfer(
    data: StockTransferRequest,
    user: ActingUser = Depends(require_permission(Permission.TRANSFER_STOCK)),
):
    """
    Move stock between two locations of one product.

    Raises:
        409: Insufficient stock at source
        422: Source and destination are the same
    """
    try:
        service = get_stock_mutation_service()
        return service.apply_transfer(
            data.product_id,
            data.from_location_id,
            data.to_location_id,
            data.quantity,
            user,
            reason=data.reason,
        )
    except Exception as e:
        return handle_error(e)


@router.post("/adjustments", response_model=StockMutationResponse, status_code=201)
async def stock_adjustment(
    data: StockAdjustmentRequest,
    user: ActingUser = Depends(require_permission(Permission.ADJUST_STOCK)),
):
    """Set a location's quantity directly. A zero change writes no ledger entry."""
    try:
        service = get_stock_mutation_service()
        return service.apply_adjustment(
            data.product_id, data.location_id, data.new_quantity, data.reason, user
        )
    except Exception as e:
        return handle_error(e)
