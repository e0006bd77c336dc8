"""
Product schemas for validation and serialization.
"""

from pydantic import Field, ValidationInfo, computed_field, field_validator
from typing import Optional
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin
from services.product_aggregate import clean_locations, total_quantity, is_low_stock


class ProductCreate(BaseSchema):
    """
    Create a new product.

    Required: name, category_id, unit
    Optional: supplier_id, unit_cost, min_stock, initial_quantities
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=120,
        description="Product name",
        examples=["Parafuso sextavado 8mm"]
    )
    category_id: str = Field(
        ...,
        description="Category UUID"
    )
    supplier_id: Optional[str] = Field(
        None,
        description="Supplier UUID"
    )
    unit: str = Field(
        "un",
        min_length=1,
        max_length=20,
        description="Unit of measure"
    )
    unit_cost: Decimal = Field(
        Decimal("0"),
        ge=0,
        description="Cost per unit"
    )
    min_stock: int = Field(
        0,
        ge=0,
        description="Low-stock threshold (0 disables monitoring)"
    )
    initial_quantities: dict[str, int] = Field(
        default_factory=dict,
        description="Opening quantity per location UUID"
    )

    @field_validator("initial_quantities")
    @classmethod
    def quantities_not_negative(cls, v: dict[str, int]) -> dict[str, int]:
        """Opening quantities must be zero or greater."""
        for location_id, qty in v.items():
            if qty < 0:
                raise ValueError(f"Quantity for location {location_id} cannot be negative")
        return v


class ProductUpdate(BaseSchema):
    """
    Update existing product.

    All fields optional - only provided fields are updated.
    Stock quantities are not editable here; use the stock endpoints.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=120)
    category_id: Optional[str] = None
    supplier_id: Optional[str] = None
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)


class ProductResponse(BaseSchema, TimestampMixin):
    """
    Product response with all fields.

    total_quantity and low_stock are derived from locations.
    """

    id: str = Field(..., description="Product UUID")
    name: str = Field(..., description="Product name")
    category_id: Optional[str] = Field(None, description="Category UUID")
    supplier_id: Optional[str] = Field(None, description="Supplier UUID")
    unit: str = Field("un", description="Unit of measure")
    unit_cost: Decimal = Field(Decimal("0"), description="Cost per unit")
    min_stock: int = Field(0, description="Low-stock threshold")
    locations: dict[str, int] = Field(default_factory=dict, description="Quantity per location UUID")
    version: int = Field(0, description="Optimistic concurrency version")

    @field_validator("unit_cost", mode="before")
    @classmethod
    def cost_default(cls, v):
        return Decimal("0") if v is None else v

    @field_validator("min_stock", mode="before")
    @classmethod
    def min_stock_default(cls, v):
        return 0 if v is None else v

    @field_validator("locations", mode="before")
    @classmethod
    def locations_default(cls, v, info: ValidationInfo):
        # Negative legacy quantities are clamped to 0 and logged
        return clean_locations(v, info.data.get("id"))

    @computed_field
    @property
    def total_quantity(self) -> int:
        return total_quantity(self)

    @computed_field
    @property
    def low_stock(self) -> bool:
        return is_low_stock(self)


class ProductListResponse(BaseSchema):
    """List of products with pagination."""

    data: list[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ProductImportError(BaseSchema):
    """A rejected import row."""

    row: int = Field(..., description="Line number in the file (header is line 1)")
    field: str
    error: str
    name: Optional[str] = None


class ProductImportResponse(BaseSchema):
    """Outcome of a bulk import: what was created and which rows were skipped."""

    total_rows: int
    imported: int
    products: list[ProductResponse] = Field(default_factory=list)
    errors: list[ProductImportError] = Field(default_factory=list)
    ignored_columns: list[str] = Field(default_factory=list)
