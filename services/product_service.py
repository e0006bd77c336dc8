"""
Product service for business logic operations.

Quantities are never written here: opening stock goes through the stock
mutation engine so it lands in the ledger like any other movement.
"""

from typing import Optional
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import get_supabase_client, settings
from models.ledger import ActingUser
from models.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductImportError,
    ProductImportResponse,
)
from models.registry import Registry
from parsers import parse_product_import, build_import_template
from services.product_aggregate import is_low_stock
from services.registry_service import get_registry_service
from services.stock_mutation_service import get_stock_mutation_service
from services.stock_store import fetch_all
from exceptions import (
    AppError,
    ProductNotFoundError,
    DatabaseError
)

logger = structlog.get_logger(__name__)

OPENING_STOCK_REASON = "opening stock"


class ProductService:
    """
    Product business logic.

    Handles CRUD operations for products.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "products"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_all(
        self,
        page: int = 1,
        page_size: int = 20,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
        low_stock_only: bool = False
    ) -> tuple[list[ProductResponse], int]:
        """
        Get all products with optional filters.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            category_id: Filter by category
            search: Case-insensitive name substring
            low_stock_only: Only products at or below min_stock

        Returns:
            Tuple of (products list, total count)
        """
        logger.info(
            "getting_products",
            page=page,
            page_size=page_size,
            category_id=category_id,
            search=search,
            low_stock_only=low_stock_only
        )

        def build_query():
            query = self.db.table(self.table).select("*", count="exact")
            if category_id:
                query = query.eq("category_id", category_id)
            if search:
                query = query.ilike("name", f"%{search}%")
            return query.order("name").order("id")

        try:
            offset = (page - 1) * page_size

            if low_stock_only:
                # Low stock is derived from locations, so every row is read
                rows = fetch_all(build_query, settings.supabase_page_size)
                products = [p for p in (ProductResponse(**row) for row in rows) if is_low_stock(p)]
                total = len(products)
                products = products[offset:offset + page_size]
            else:
                result = build_query().range(offset, offset + page_size - 1).execute()
                products = [ProductResponse(**row) for row in result.data]
                total = result.count or 0

            logger.info(
                "products_retrieved",
                count=len(products),
                total=total
            )

            return products, total

        except Exception as e:
            logger.error(
                "get_products_failed",
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    def get_by_id(self, product_id: str) -> ProductResponse:
        """
        Get a single product by ID.

        Args:
            product_id: Product UUID

        Returns:
            ProductResponse

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.debug("getting_product", product_id=product_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", product_id)
                .single()
                .execute()
            )

            if not result.data:
                raise ProductNotFoundError(product_id)

            return ProductResponse(**result.data)

        except ProductNotFoundError:
            raise
        except Exception as e:
            logger.error(
                "get_product_failed",
                product_id=product_id,
                error=str(e)
            )
            # Check if it's a "not found" from Supabase
            if "0 rows" in str(e) or "no rows" in str(e).lower():
                raise ProductNotFoundError(product_id)
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: ProductCreate, acting_user: ActingUser) -> ProductResponse:
        """
        Create a new product.

        Opening quantities are recorded as initial entries in the ledger.
        The product row and those entries are committed together: an
        unknown location rejects the whole create and nothing is written.

        Args:
            data: Product creation data
            acting_user: User credited with the opening stock

        Returns:
            Created ProductResponse

        Raises:
            LocationNotFoundError: An opening quantity names an unknown location
        """
        logger.info("creating_product", name=data.name)

        fields = {
            "name": data.name,
            "category_id": data.category_id,
            "supplier_id": data.supplier_id,
            "unit": data.unit,
            "unit_cost": str(data.unit_cost),
            "min_stock": data.min_stock,
        }

        opening = {loc: qty for loc, qty in data.initial_quantities.items() if qty > 0}
        if opening:
            product = get_stock_mutation_service().open_product(
                fields,
                opening,
                OPENING_STOCK_REASON,
                acting_user,
            ).product
        else:
            try:
                result = (
                    self.db.table(self.table)
                    .insert({**fields, "locations": {}, "version": 0})
                    .execute()
                )

                product = ProductResponse(**result.data[0])

            except Exception as e:
                logger.error(
                    "create_product_failed",
                    name=data.name,
                    error=str(e)
                )
                raise DatabaseError("insert", str(e))

        logger.info(
            "product_created",
            product_id=product.id,
            name=product.name,
            opening_locations=len(opening)
        )

        return product

    def update(self, product_id: str, data: ProductUpdate) -> ProductResponse:
        """
        Update an existing product's descriptive fields.

        Args:
            product_id: Product UUID
            data: Fields to update

        Returns:
            Updated ProductResponse

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.info("updating_product", product_id=product_id)

        existing = self.get_by_id(product_id)

        update_data = {}
        if data.name is not None:
            update_data["name"] = data.name
        if data.category_id is not None:
            update_data["category_id"] = data.category_id
        if data.supplier_id is not None:
            update_data["supplier_id"] = data.supplier_id
        if data.unit is not None:
            update_data["unit"] = data.unit
        if data.unit_cost is not None:
            update_data["unit_cost"] = str(data.unit_cost)
        if data.min_stock is not None:
            update_data["min_stock"] = data.min_stock

        if not update_data:
            # Nothing to update, return existing
            return existing

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", product_id)
                .execute()
            )

            product = ProductResponse(**result.data[0])

            logger.info(
                "product_updated",
                product_id=product_id,
                fields=list(update_data.keys())
            )

            return product

        except Exception as e:
            logger.error(
                "update_product_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

    def delete(self, product_id: str) -> bool:
        """
        Delete a product.

        Ledger entries that reference it are kept for the audit history.

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.info("deleting_product", product_id=product_id)

        self.get_by_id(product_id)

        try:
            self.db.table(self.table).delete().eq("id", product_id).execute()

            logger.info("product_deleted", product_id=product_id)

            return True

        except Exception as e:
            logger.error(
                "delete_product_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DatabaseError("delete", str(e))

    # ===================
    # BULK IMPORT
    # ===================

    def bulk_import(self, content: bytes, acting_user: ActingUser) -> ProductImportResponse:
        """
        Create products from an import CSV.

        Category and location names are resolved against the registries.
        Each valid row is created on its own, opening stock included, so a
        row that fails is reported without undoing the rows before it.

        Args:
            content: Raw CSV bytes
            acting_user: User credited with the opening stock

        Returns:
            ProductImportResponse with created products and per-row errors

        Raises:
            ImportParseError: Unreadable file or missing required columns
        """
        categories = {
            c.name: c.id for c in get_registry_service(Registry.CATEGORIES).get_all()
        }
        locations = {
            loc.name: loc.id for loc in get_registry_service(Registry.LOCATIONS).get_all()
        }

        parsed = parse_product_import(content, categories, locations)

        errors = [
            ProductImportError(row=e.row, field=e.field, error=e.error, name=e.name)
            for e in parsed.errors
        ]
        created: list[ProductResponse] = []

        for row in parsed.rows:
            try:
                data = ProductCreate(
                    name=row.name,
                    category_id=row.category_id,
                    unit=row.unit,
                    min_stock=row.min_stock,
                    initial_quantities=row.initial_quantities,
                )
                created.append(self.create(data, acting_user))
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first["loc"]) or "row"
                errors.append(ProductImportError(row=row.row, field=field, error=first["msg"], name=row.name))
                logger.warning("product_import_row_failed", row=row.row, error=first["msg"])
            except AppError as e:
                errors.append(ProductImportError(row=row.row, field="row", error=e.message, name=row.name))
                logger.warning("product_import_row_failed", row=row.row, code=e.code, error=e.message)

        logger.info(
            "product_import_completed",
            total_rows=parsed.total_rows,
            imported=len(created),
            errors=len(errors)
        )

        return ProductImportResponse(
            total_rows=parsed.total_rows,
            imported=len(created),
            products=created,
            errors=sorted(errors, key=lambda e: e.row),
            ignored_columns=parsed.ignored_columns,
        )

    def import_template(self) -> str:
        """CSV template with a stock column for every current location."""
        locations = get_registry_service(Registry.LOCATIONS).get_all()
        return build_import_template([loc.name for loc in locations])


# Singleton instance for convenience
_product_service: Optional[ProductService] = None

def get_product_service() -> ProductService:
    """Get or create ProductService instance."""
    global _product_service
    if _product_service is None:
        _product_service = ProductService()
    return _product_service
