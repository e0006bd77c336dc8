"""
Reference data schemas: categories, locations and suppliers.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import BaseSchema, TimestampMixin


class Registry(str, Enum):
    """Reference data tables."""
    CATEGORIES = "categories"
    LOCATIONS = "locations"
    SUPPLIERS = "suppliers"

    @property
    def singular(self) -> str:
        return {"categories": "category", "locations": "location", "suppliers": "supplier"}[self.value]


class RegistryItemCreate(BaseSchema):
    """Create a category, location or supplier."""

    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    contact_name: Optional[str] = Field(None, max_length=120, description="Suppliers only")
    email: Optional[str] = Field(None, max_length=200, description="Suppliers only")
    phone: Optional[str] = Field(None, max_length=50, description="Suppliers only")


class RegistryItemUpdate(BaseSchema):
    """Update a reference item; only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    contact_name: Optional[str] = Field(None, max_length=120)
    email: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)


class RegistryItemResponse(BaseSchema, TimestampMixin):
    """Reference item as stored."""

    id: str
    name: str
    description: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RegistryListResponse(BaseSchema):
    """List of reference items."""

    data: list[RegistryItemResponse]
    total: int
