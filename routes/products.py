"""
Product API routes.
"""

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from typing import Optional
import structlog

from models.ledger import ActingUser
from models.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse,
    ProductImportResponse,
)
from services.product_service import get_product_service
from routes.deps import require_permission
from routes.errors import handle_error
from utils.permissions import Permission

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=ProductListResponse)
async def list_products(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    category_id: Optional[str] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(None, description="Name contains"),
    low_stock_only: bool = Query(False, description="Only products at or below min stock"),
    user: ActingUser = Depends(require_permission(Permission.VIEW_PRODUCTS)),
):
    """
    List all products with optional filters.

    Returns paginated list of products.
    """
    try:
        service = get_product_service()

        products, total = service.get_all(
            page=page,
            page_size=page_size,
            category_id=category_id,
            search=search,
            low_stock_only=low_stock_only
        )

        total_pages = (total + page_size - 1) // page_size

        return ProductListResponse(
            data=products,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    user: ActingUser = Depends(require_permission(Permission.VIEW_PRODUCTS)),
):
    """
    Get a single product by ID.

    Raises:
        404: Product not found
    """
    try:
        service = get_product_service()
        return service.get_by_id(product_id)

    except Exception as e:
        return handle_error(e)


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    data: ProductCreate,
    user: ActingUser = Depends(require_permission(Permission.CREATE_PRODUCTS)),
):
    """
    Create a new product.

    Opening quantities are written to the ledger as initial entries.

    Raises:
        404: Unknown location in initial_quantities
        422: Validation error
    """
    try:
        service = get_product_service()
        return service.create(data, user)

    except Exception as e:
        return handle_error(e)


@router.get("/import/template")
async def download_import_template(
    user: ActingUser = Depends(require_permission(Permission.CREATE_PRODUCTS)),
):
    """
    Download the bulk import CSV template.

    Has one Estoque_ column per registered location.
    """
    try:
        service = get_product_service()
        content = service.import_template()
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="product_import_template.csv"'}
        )

    except Exception as e:
        return handle_error(e)


@router.post("/import", response_model=ProductImportResponse)
async def import_products(
    file: UploadFile = File(...),
    user: ActingUser = Depends(require_permission(Permission.CREATE_PRODUCTS)),
):
    """
    Bulk create products from a CSV file.

    Rows with an unknown category, a missing name or a bad quantity are
    skipped and listed in errors; the rest are created.

    Raises:
        422: Unreadable file or missing Nome/Categoria columns
    """
    logger.info(
        "product_import_started",
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        content = await file.read()
        service = get_product_service()
        return service.bulk_import(content, user)

    except Exception as e:
        return handle_error(e)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    data: ProductUpdate,
    user: ActingUser = Depends(require_permission(Permission.EDIT_PRODUCTS)),
):
    """
    Update an existing product.

    Only provided fields are updated. Quantities change through /api/stock.

    Raises:
        404: Product not found
        422: Validation error
    """
    try:
        service = get_product_service()
        return service.update(product_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: str,
    user: ActingUser = Depends(require_permission(Permission.DELETE_PRODUCTS)),
):
    """
    Delete a product. Its ledger history is kept.

    Raises:
        404: Product not found
    """
    try:
        service = get_product_service()
        service.delete(product_id)
        return None  # 204 No Content

    except Exception as e:
        return handle_error(e)
