"""
Inventory count API routes.

Lifecycle: start (in_progress) -> record quantities -> finalize (completed)
-> apply (applied). Applying is one-shot; a second apply returns 409.
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional
import structlog

from models.count import (
    CountStatus,
    CountSession,
    CountStartRequest,
    CountedQuantityRequest,
    CountFinalizeRequest,
    CountVarianceReport,
    CountApplyResponse,
    CountSessionListResponse,
)
from models.ledger import ActingUser
from services.count_service import get_count_service
from routes.deps import require_permission
from routes.errors import handle_error
from utils.permissions import Permission

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/counts",
    tags=["Counts"],
)


@router.get("", response_model=CountSessionListResponse)
async def list_counts(
    status: Optional[CountStatus] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    user: ActingUser = Depends(require_permission(Permission.VIEW_COUNTING)),
):
    """List count sessions, newest first."""
    try:
        sessions = get_count_service().list_sessions(status=status, limit=limit)
        return CountSessionListResponse(data=sessions, total=len(sessions))
    except Exception as e:
        return handle_error(e)


@router.post("", response_model=CountSession, status_code=201)
async def start_count(
    data: CountStartRequest,
    user: ActingUser = Depends(require_permission(Permission.CREATE_COUNTING)),
):
    """
    Start a count session, snapshotting expected quantities.

    Scoped to one location when location_id is given, otherwise product-wide.
    """
    try:
        return get_count_service().start_count(
            user,
            location_id=data.location_id,
            product_ids=data.product_ids,
        )
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=CountSession)
async def get_count(
    session_id: str,
    user: ActingUser = Depends(require_permission(Permission.VIEW_COUNTING)),
):
    try:
        return get_count_service().get_session(session_id)
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/variance", response_model=CountVarianceReport)
async def get_variance(
    session_id: str,
    user: ActingUser = Depends(require_permission(Permission.VIEW_COUNTING)),
):
    """Expected vs counted quantities with totals."""
    try:
        return get_count_service().variance_report(session_id)
    except Exception as e:
        return handle_error(e)


@router.put("/{session_id}/lines/{product_id}", response_model=CountSession)
async def record_line(
    session_id: str,
    product_id: str,
    data: CountedQuantityRequest,
    user: ActingUser = Depends(require_permission(Permission.EDIT_COUNTING)),
):
    """Record the counted quantity of one product."""
    try:
        return get_count_service().record_counted_quantity(
            session_id, product_id, data.counted_quantity
        )
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/finalize", response_model=CountSession)
async def finalize_count(
    session_id: str,
    data: CountFinalizeRequest,
    user: ActingUser = Depends(require_permission(Permission.EDIT_COUNTING)),
):
    """
    Lock the session.

    Raises:
        422: Lines left blank without confirm_missing_as_zero
    """
    try:
        return get_count_service().finalize(
            session_id, confirm_missing_as_zero=data.confirm_missing_as_zero
        )
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/apply", response_model=CountApplyResponse)
async def apply_count(
    session_id: str,
    user: ActingUser = Depends(require_permission(Permission.ADJUST_STOCK)),
):
    """
    Write every variance into stock as adjustments.

    Raises:
        409: Session already applied
        422: Session not finalized
    """
    try:
        return get_count_service().apply_adjustments(session_id, user)
    except Exception as e:
        return handle_error(e)
