"""
Stock ledger (kardex) schemas.

One canonical entry shape for every stock movement. Older documents used
camelCase field names, unsigned quantities and Portuguese type labels; those
are normalized here, at the read boundary, so the rest of the code only ever
sees LedgerEntry.
"""

from enum import Enum
from datetime import datetime
from typing import Any, Optional

from pydantic import Field, model_validator

from models.base import BaseSchema


# ===================
# ENUMS
# ===================

class MovementType(str, Enum):
    """Kinds of stock movement recorded in the ledger."""
    INITIAL_ENTRY = "initial_entry"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    EXIT = "exit"

    @property
    def is_outbound(self) -> bool:
        """Exits and transfer-outs count as consumption."""
        return self in (MovementType.EXIT, MovementType.TRANSFER_OUT)


INBOUND_TYPES = {MovementType.INITIAL_ENTRY, MovementType.TRANSFER_IN}
OUTBOUND_TYPES = {MovementType.EXIT, MovementType.TRANSFER_OUT}


LEGACY_TYPE_LABELS = {
    "entrada inicial": MovementType.INITIAL_ENTRY,
    "entrada": MovementType.INITIAL_ENTRY,
    "ajuste manual": MovementType.MANUAL_ADJUSTMENT,
    "ajuste": MovementType.MANUAL_ADJUSTMENT,
    "saida": MovementType.EXIT,
    "saída": MovementType.EXIT,
}

LEGACY_FIELD_NAMES = {
    "productId": "product_id",
    "productName": "product_name",
    "locationId": "location_id",
    "locationName": "location_name",
    "previousStock": "quantity_before",
    "quantityBefore": "quantity_before",
    "newStock": "quantity_after",
    "quantityAfter": "quantity_after",
    "quantityChanged": "quantity_delta",
    "userId": "user_id",
    "userName": "user_name",
    "userEmail": "user_name",
    "timestamp": "created_at",
    "date": "created_at",
    "details": "reason",
    "motive": "reason",
}


def _parse_type(raw: Any) -> Any:
    if isinstance(raw, MovementType) or raw is None:
        return raw
    label = str(raw).strip()
    try:
        return MovementType(label)
    except ValueError:
        return LEGACY_TYPE_LABELS.get(label.lower(), label)


def normalize_legacy_record(data: dict) -> dict:
    """
    Map a raw ledger document onto the canonical field set.

    Canonical keys win over legacy aliases when both are present. An unsigned
    legacy `quantity` gets its sign from the movement type; legacy count
    adjustments ("ajuste") carried the sign in their motive text.
    """
    record = {k: v for k, v in data.items() if k not in LEGACY_FIELD_NAMES}
    for legacy, canonical in LEGACY_FIELD_NAMES.items():
        if legacy in data and record.get(canonical) is None:
            record[canonical] = data[legacy]

    raw_type = record.get("movement_type", record.pop("type", None))
    movement_type = _parse_type(raw_type)
    record["movement_type"] = movement_type

    if record.get("quantity_delta") is None:
        before, after = record.get("quantity_before"), record.get("quantity_after")
        if before is not None and after is not None:
            record["quantity_delta"] = int(after) - int(before)
        elif record.get("quantity") is not None:
            qty = abs(int(record["quantity"]))
            negative = movement_type in OUTBOUND_TYPES or (
                str(raw_type).strip().lower() == "ajuste"
                and "perda" in str(record.get("reason") or "").lower()
            )
            record["quantity_delta"] = -qty if negative else qty
    record.pop("quantity", None)
    return record


# ===================
# MODELS
# ===================

class ActingUser(BaseSchema):
    """Identity attributed to every ledger write."""

    user_id: str = Field(..., min_length=1, description="Stable user identifier")
    display_name: str = Field("", description="Display label (name or email)")
    role: Optional[str] = Field(None, description="Role used by the permission gate")

    @property
    def label(self) -> str:
        return self.display_name or self.user_id


class LedgerEntry(BaseSchema):
    """
    Immutable record of one quantity change at one product/location.

    quantity_delta is signed; quantity_after == quantity_before + quantity_delta.
    """

    id: Optional[str] = Field(None, description="Entry UUID (assigned on insert)")
    product_id: str = Field(..., description="Product UUID")
    product_name: Optional[str] = Field(None, description="Product name at write time")
    location_id: Optional[str] = Field(None, description="Location UUID")
    location_name: Optional[str] = Field(None, description="Location name at write time")
    movement_type: MovementType = Field(..., description="Kind of movement")
    quantity_delta: int = Field(..., description="Signed quantity change")
    quantity_before: Optional[int] = Field(None, description="Location quantity before")
    quantity_after: Optional[int] = Field(None, description="Location quantity after")
    counterpart_location_id: Optional[str] = Field(None, description="Other leg of a transfer")
    count_session_id: Optional[str] = Field(None, description="Count that caused the adjustment")
    user_id: Optional[str] = Field(None, description="Acting user id")
    user_name: Optional[str] = Field(None, description="Acting user label")
    reason: Optional[str] = Field(None, description="Free-text reason/details")
    created_at: Optional[datetime] = Field(None, description="When the movement happened")

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalize_legacy_record(data)
        return data

    @model_validator(mode="after")
    def check_arithmetic(self) -> "LedgerEntry":
        if self.quantity_before is not None and self.quantity_after is not None:
            if self.quantity_after != self.quantity_before + self.quantity_delta:
                raise ValueError(
                    f"quantity_after ({self.quantity_after}) != quantity_before "
                    f"({self.quantity_before}) + delta ({self.quantity_delta})"
                )
        if self.movement_type in OUTBOUND_TYPES and self.quantity_delta > 0:
            raise ValueError(f"{self.movement_type.value} must have a negative delta")
        if self.movement_type in INBOUND_TYPES and self.quantity_delta < 0:
            raise ValueError(f"{self.movement_type.value} must have a positive delta")
        return self

    @property
    def quantity(self) -> int:
        """Unsigned size of the movement."""
        return abs(self.quantity_delta)

    def to_row(self) -> dict:
        """Row for insertion; id and created_at are left to the database when unset."""
        return self.model_dump(mode="json", exclude_none=True)


class LedgerEntryListResponse(BaseSchema):
    """List of ledger entries."""

    data: list[LedgerEntry]
    total: int
