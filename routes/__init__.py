"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.products import router as products_router
from routes.stock import router as stock_router
from routes.ledger import router as ledger_router
from routes.counts import router as counts_router
from routes.reports import router as reports_router
from routes.registries import categories_router, locations_router, suppliers_router

__all__ = [
    "products_router",
    "stock_router",
    "ledger_router",
    "counts_router",
    "reports_router",
    "categories_router",
    "locations_router",
    "suppliers_router",
]
