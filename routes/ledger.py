"""
Ledger Routes - Read-only API endpoints for the stock movement ledger.

Entries are never edited or deleted; these routes only query them.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Query
from typing import Optional

import structlog

from models.ledger import ActingUser, LedgerEntryListResponse, MovementType
from services.report_service import get_report_service
from routes.deps import require_permission
from routes.errors import handle_error
from utils.permissions import Permission

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/ledger",
    tags=["Ledger"],
)


# ===================
# LEDGER ENTRY ROUTES
# ===================

@router.get("/entries", response_model=LedgerEntryListResponse)
async def get_entries(
    product_id: Optional[str] = Query(None, description="Filter by product UUID"),
    location_id: Optional[str] = Query(None, description="Filter by location UUID"),
    user_id: Optional[str] = Query(None, description="Filter by acting user"),
    movement_type: Optional[MovementType] = Query(None, description="Filter by movement type"),
    since: Optional[datetime] = Query(None, description="Entries at or after this timestamp"),
    until: Optional[datetime] = Query(None, description="Entries at or before this timestamp"),
    limit: int = Query(200, ge=1, le=1000, description="Maximum entries to return"),
    user: ActingUser = Depends(require_permission(Permission.VIEW_MOVEMENTS)),
):
    """Get ledger entries with optional filters, newest first."""
    try:
        service = get_report_service()
        entries = service.audit_trail(
            product_id=product_id,
            location_id=location_id,
            user_id=user_id,
            movement_type=movement_type,
            since=since,
            until=until,
            limit=limit,
        )
        return LedgerEntryListResponse(data=entries, total=len(entries))
    except Exception as e:
        return handle_error(e)


# ===================
# CONSISTENCY ROUTES
# ===================

@router.get("/consistency/{product_id}")
async def get_consistency(
    product_id: str,
    user: ActingUser = Depends(require_permission(Permission.VIEW_AUDIT)),
):
    """
    Stored vs ledger-replayed quantity for each location of a product.

    A location where the two differ has a history gap or an untracked write.
    """
    try:
        service = get_report_service()
        locations = service.ledger_consistency(product_id)
        mismatched = [
            location_id for location_id, q in locations.items()
            if q["stored"] != q["replayed"]
        ]
        if mismatched:
            logger.warning(
                "ledger_replay_mismatch",
                product_id=product_id,
                locations=mismatched,
            )
        return {
            "product_id": product_id,
            "consistent": not mismatched,
            "locations": locations,
        }
    except Exception as e:
        return handle_error(e)
