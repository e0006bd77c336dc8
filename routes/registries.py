"""
Registry API routes: categories, locations and suppliers.

The three registries share one shape, so their routers come from one
factory with per-registry permissions.
"""

from fastapi import APIRouter, Depends
import structlog

from models.ledger import ActingUser
from models.registry import (
    Registry,
    RegistryItemCreate,
    RegistryItemUpdate,
    RegistryItemResponse,
    RegistryListResponse,
)
from services.registry_service import get_registry_service
from routes.deps import require_permission
from routes.errors import handle_error
from utils.permissions import Permission

logger = structlog.get_logger(__name__)


# (view, create, edit, delete)
REGISTRY_PERMISSIONS: dict[Registry, tuple[Permission, Permission, Permission, Permission]] = {
    Registry.CATEGORIES: (
        Permission.VIEW_CATEGORIES,
        Permission.CREATE_CATEGORIES,
        Permission.EDIT_CATEGORIES,
        Permission.DELETE_CATEGORIES,
    ),
    Registry.SUPPLIERS: (
        Permission.VIEW_SUPPLIERS,
        Permission.CREATE_SUPPLIERS,
        Permission.EDIT_SUPPLIERS,
        Permission.DELETE_SUPPLIERS,
    ),
    Registry.LOCATIONS: (
        Permission.VIEW_SETTINGS,
        Permission.MANAGE_SETTINGS,
        Permission.MANAGE_SETTINGS,
        Permission.MANAGE_SETTINGS,
    ),
}


def build_registry_router(registry: Registry) -> APIRouter:
    view, create, edit, delete = REGISTRY_PERMISSIONS[registry]

    router = APIRouter(
        prefix=f"/api/{registry.value}",
        tags=[registry.value.capitalize()],
    )

    @router.get("", response_model=RegistryListResponse)
    async def list_items(user: ActingUser = Depends(require_permission(view))):
        try:
            items = get_registry_service(registry).get_all()
            return RegistryListResponse(data=items, total=len(items))
        except Exception as e:
            return handle_error(e)

    @router.get("/{item_id}", response_model=RegistryItemResponse)
    async def get_item(item_id: str, user: ActingUser = Depends(require_permission(view))):
        try:
            return get_registry_service(registry).get_by_id(item_id)
        except Exception as e:
            return handle_error(e)

    @router.post("", response_model=RegistryItemResponse, status_code=201)
    async def create_item(
        data: RegistryItemCreate,
        user: ActingUser = Depends(require_permission(create)),
    ):
        try:
            return get_registry_service(registry).create(data)
        except Exception as e:
            return handle_error(e)

    @router.patch("/{item_id}", response_model=RegistryItemResponse)
    async def update_item(
        item_id: str,
        data: RegistryItemUpdate,
        user: ActingUser = Depends(require_permission(edit)),
    ):
        try:
            return get_registry_service(registry).update(item_id, data)
        except Exception as e:
            return handle_error(e)

    @router.delete("/{item_id}", status_code=204)
    async def delete_item(item_id: str, user: ActingUser = Depends(require_permission(delete))):
        """A location still holding stock cannot be deleted (409)."""
        try:
            get_registry_service(registry).delete(item_id)
            return None
        except Exception as e:
            return handle_error(e)

    return router


categories_router = build_registry_router(Registry.CATEGORIES)
locations_router = build_registry_router(Registry.LOCATIONS)
suppliers_router = build_registry_router(Registry.SUPPLIERS)
