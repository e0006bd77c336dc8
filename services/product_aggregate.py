"""
Product aggregate helpers.

A product's total quantity is always derived from its per-location map at
read time; it is never stored as a separate counter. Works on pydantic
models and on raw database rows alike.
"""

from collections.abc import Mapping
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


def _field(product: Any, name: str, default: Any = None) -> Any:
    if isinstance(product, Mapping):
        return product.get(name, default)
    return getattr(product, name, default)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def clean_locations(locations: Optional[Mapping], product_id: Any = None) -> dict[str, int]:
    """
    Normalize a stored locations map.

    Legacy null or non-numeric values read as 0. Negative values cannot be
    valid stock and are clamped to 0, with a warning so the row can be fixed.
    """
    cleaned = {}
    for loc, qty in (locations or {}).items():
        value = _as_int(qty)
        if value < 0:
            logger.warning(
                "negative_location_quantity",
                product_id=product_id,
                location_id=str(loc),
                stored=value,
            )
            value = 0
        cleaned[str(loc)] = value
    return cleaned


def location_quantities(product: Any) -> dict[str, int]:
    """Per-location quantities as read by clean_locations()."""
    return clean_locations(_field(product, "locations"), _field(product, "id"))


def total_quantity(product: Any) -> int:
    """Sum of all location quantities."""
    return sum(location_quantities(product).values())


def is_low_stock(product: Any) -> bool:
    """
    Low-stock check.

    A min_stock of 0 (or unset) disables monitoring for the product.
    """
    min_stock = _as_int(_field(product, "min_stock"))
    return min_stock > 0 and total_quantity(product) <= min_stock


def main_location(product: Any) -> Optional[str]:
    """Location holding the most stock; first one wins on ties."""
    best_id, best_qty = None, 0
    for location_id, qty in location_quantities(product).items():
        if qty > best_qty:
            best_id, best_qty = location_id, qty
    return best_id
