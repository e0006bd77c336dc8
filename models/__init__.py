"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse,
    ProductImportError,
    ProductImportResponse,
)
from models.ledger import (
    MovementType,
    ActingUser,
    LedgerEntry,
    LedgerEntryListResponse,
)
from models.stock import (
    StockEntryRequest,
    StockExitRequest,
    StockTransferRequest,
    StockAdjustmentRequest,
    StockMutationResponse,
)
from models.count import (
    CountStatus,
    CountLine,
    CountSession,
    CountVarianceReport,
)
from models.registry import (
    Registry,
    RegistryItemCreate,
    RegistryItemUpdate,
    RegistryItemResponse,
)
from models.reports import (
    AbcClass,
    ValuationReport,
    AbcReport,
    DeadStockReport,
    LowStockReport,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Product
    "ProductCreate",
    "ProductUpdate",
    "ProductResponse",
    "ProductListResponse",
    "ProductImportError",
    "ProductImportResponse",

    # Ledger
    "MovementType",
    "ActingUser",
    "LedgerEntry",
    "LedgerEntryListResponse",

    # Stock movements
    "StockEntryRequest",
    "StockExitRequest",
    "StockTransferRequest",
    "StockAdjustmentRequest",
    "StockMutationResponse",

    # Counts
    "CountStatus",
    "CountLine",
    "CountSession",
    "CountVarianceReport",

    # Registries
    "Registry",
    "RegistryItemCreate",
    "RegistryItemUpdate",
    "RegistryItemResponse",

    # Reports
    "AbcClass",
    "ValuationReport",
    "AbcReport",
    "DeadStockReport",
    "LowStockReport",
]
