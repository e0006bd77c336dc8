"""
Registry service: categories, locations and suppliers.

Simple id -> name reference data. The only rule beyond CRUD is that a
location still holding stock cannot be deleted.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.registry import (
    Registry,
    RegistryItemCreate,
    RegistryItemUpdate,
    RegistryItemResponse,
)
from services.product_aggregate import location_quantities
from services.stock_store import SupabaseStockStore
from exceptions import (
    ConflictError,
    DatabaseError,
    DuplicateError,
    RegistryItemNotFoundError,
)

logger = structlog.get_logger(__name__)

SUPPLIER_ONLY_FIELDS = ("contact_name", "email", "phone")


class RegistryService:
    """CRUD for one reference data table."""

    def __init__(self, registry: Registry):
        self.db = get_supabase_client()
        self.registry = registry
        self.table = registry.value

    def _row(self, data) -> dict:
        row = data.model_dump(exclude_none=True)
        if self.registry != Registry.SUPPLIERS:
            for name in SUPPLIER_ONLY_FIELDS:
                row.pop(name, None)
        return row

    # ===================
    # READ OPERATIONS
    # ===================

    def get_all(self) -> list[RegistryItemResponse]:
        """All items ordered by name."""
        try:
            result = self.db.table(self.table).select("*").order("name").execute()
            return [RegistryItemResponse(**row) for row in result.data]
        except Exception as e:
            logger.error("get_registry_failed", registry=self.table, error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_id(self, item_id: str) -> RegistryItemResponse:
        """
        Get one item.

        Raises:
            RegistryItemNotFoundError: If the item doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", item_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_registry_item_failed", registry=self.table, item_id=item_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise RegistryItemNotFoundError(self.registry.singular, item_id)
        return RegistryItemResponse(**result.data[0])

    def get_by_name(self, name: str) -> Optional[RegistryItemResponse]:
        """Case-insensitive exact name lookup."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .ilike("name", name)
                .execute()
            )
        except Exception as e:
            logger.error("get_registry_item_by_name_failed", registry=self.table, error=str(e))
            raise DatabaseError("select", str(e))
        return RegistryItemResponse(**result.data[0]) if result.data else None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: RegistryItemCreate) -> RegistryItemResponse:
        """
        Create an item.

        Raises:
            DuplicateError: Name already used in this registry
        """
        logger.info("creating_registry_item", registry=self.table, name=data.name)

        if self.get_by_name(data.name):
            raise DuplicateError(self.registry.singular, "name", data.name)

        try:
            result = self.db.table(self.table).insert(self._row(data)).execute()
            item = RegistryItemResponse(**result.data[0])
        except Exception as e:
            logger.error("create_registry_item_failed", registry=self.table, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info("registry_item_created", registry=self.table, item_id=item.id)
        return item

    def update(self, item_id: str, data: RegistryItemUpdate) -> RegistryItemResponse:
        """Update provided fields of an item."""
        existing = self.get_by_id(item_id)

        if data.name and data.name.lower() != existing.name.lower():
            clash = self.get_by_name(data.name)
            if clash and clash.id != item_id:
                raise DuplicateError(self.registry.singular, "name", data.name)

        update_data = self._row(data)
        if not update_data:
            return existing

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", item_id)
                .execute()
            )
            item = RegistryItemResponse(**result.data[0])
        except Exception as e:
            logger.error("update_registry_item_failed", registry=self.table, item_id=item_id, error=str(e))
            raise DatabaseError("update", str(e))

        logger.info(
            "registry_item_updated",
            registry=self.table,
            item_id=item_id,
            fields=list(update_data.keys())
        )
        return item

    def delete(self, item_id: str) -> bool:
        """
        Delete an item.

        Raises:
            ConflictError: Location still holds stock
        """
        self.get_by_id(item_id)

        if self.registry == Registry.LOCATIONS:
            self._ensure_location_empty(item_id)

        try:
            self.db.table(self.table).delete().eq("id", item_id).execute()
        except Exception as e:
            logger.error("delete_registry_item_failed", registry=self.table, item_id=item_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("registry_item_deleted", registry=self.table, item_id=item_id)
        return True

    def _ensure_location_empty(self, location_id: str) -> None:
        products = SupabaseStockStore(self.db).list_products()

        holding = [
            row["id"] for row in products
            if location_quantities(row).get(location_id, 0) > 0
        ]
        if holding:
            raise ConflictError(
                "location still holds stock; transfer or adjust it first",
                code="LOCATION_HAS_STOCK",
                details={"location_id": location_id, "product_ids": holding}
            )


_registry_services: dict[Registry, RegistryService] = {}


def get_registry_service(registry: Registry) -> RegistryService:
    """Get or create the RegistryService for a registry."""
    if registry not in _registry_services:
        _registry_services[registry] = RegistryService(registry)
    return _registry_services[registry]
