"""
Role-based permissions.

Roles map to sets of fine-grained permission strings. The API layer checks
these before calling a service; services themselves trust their caller.
"""

from enum import Enum
from typing import Iterable, Optional


class Role(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class Permission(str, Enum):
    # Products
    CREATE_PRODUCTS = "create_products"
    EDIT_PRODUCTS = "edit_products"
    DELETE_PRODUCTS = "delete_products"
    VIEW_PRODUCTS = "view_products"

    # Categories
    CREATE_CATEGORIES = "create_categories"
    EDIT_CATEGORIES = "edit_categories"
    DELETE_CATEGORIES = "delete_categories"
    VIEW_CATEGORIES = "view_categories"

    # Suppliers
    CREATE_SUPPLIERS = "create_suppliers"
    EDIT_SUPPLIERS = "edit_suppliers"
    DELETE_SUPPLIERS = "delete_suppliers"
    VIEW_SUPPLIERS = "view_suppliers"

    # Stock
    ADJUST_STOCK = "adjust_stock"
    TRANSFER_STOCK = "transfer_stock"
    VIEW_STOCK = "view_stock"

    # Movements
    CREATE_MOVEMENTS = "create_movements"
    VIEW_MOVEMENTS = "view_movements"

    # Counting
    CREATE_COUNTING = "create_counting"
    EDIT_COUNTING = "edit_counting"
    VIEW_COUNTING = "view_counting"

    # Reports and audit
    VIEW_REPORTS = "view_reports"
    VIEW_AUDIT = "view_audit"

    # Settings (locations live here)
    MANAGE_SETTINGS = "manage_settings"
    VIEW_SETTINGS = "view_settings"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.EDITOR: frozenset({
        Permission.CREATE_PRODUCTS,
        Permission.EDIT_PRODUCTS,
        Permission.VIEW_PRODUCTS,
        Permission.CREATE_CATEGORIES,
        Permission.EDIT_CATEGORIES,
        Permission.VIEW_CATEGORIES,
        Permission.CREATE_SUPPLIERS,
        Permission.EDIT_SUPPLIERS,
        Permission.VIEW_SUPPLIERS,
        Permission.ADJUST_STOCK,
        Permission.TRANSFER_STOCK,
        Permission.VIEW_STOCK,
        Permission.CREATE_MOVEMENTS,
        Permission.VIEW_MOVEMENTS,
        Permission.CREATE_COUNTING,
        Permission.EDIT_COUNTING,
        Permission.VIEW_COUNTING,
        Permission.VIEW_REPORTS,
        Permission.VIEW_AUDIT,
        Permission.VIEW_SETTINGS,
    }),
    Role.VIEWER: frozenset({
        Permission.VIEW_PRODUCTS,
        Permission.VIEW_CATEGORIES,
        Permission.VIEW_SUPPLIERS,
        Permission.VIEW_STOCK,
        Permission.VIEW_MOVEMENTS,
        Permission.VIEW_COUNTING,
        Permission.VIEW_REPORTS,
        Permission.VIEW_SETTINGS,
    }),
}


def _role(role: Optional[str]) -> Optional[Role]:
    try:
        return Role(role) if role else None
    except ValueError:
        return None


def has_permission(role: Optional[str], permission: Permission) -> bool:
    """Unknown or missing roles have no permissions."""
    known = _role(role)
    if known is None:
        return False
    return permission in ROLE_PERMISSIONS[known]


def has_any_permission(role: Optional[str], permissions: Iterable[Permission]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def has_all_permissions(role: Optional[str], permissions: Iterable[Permission]) -> bool:
    return all(has_permission(role, p) for p in permissions)
