"""Price adjustment ledger models.

A ledger is an append-only list of discount/override records attached to a
generated estimate. Records are never edited; removing one triggers a full
replay of the survivors.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from models.money import to_decimal, to_float


class AdjustmentType(str, Enum):
    """Kind of manual price adjustment."""

    DISCOUNT_PERCENT = "discount_percent"
    DISCOUNT_FIXED = "discount_fixed"
    PRICE_OVERRIDE = "price_override"


class PriceAdjustmentRecord(BaseModel):
    """A single ledger entry.

    ``original_price`` and ``new_price`` are the effective prices before and
    after this record was applied. ``adjustment_amount`` is positive for
    discounts and negative when an override raised the price.
    """

    id: str
    estimate_id: str
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    adjustment_amount: Decimal
    original_price: Decimal
    new_price: Decimal
    description: Optional[str] = None
    internal_reason: Optional[str] = None
    applied_by: Optional[str] = None
    created_at: datetime

    class Config:
        frozen = True

    @field_validator(
        "adjustment_value", "adjustment_amount", "original_price", "new_price",
        mode="before"
    )
    @classmethod
    def _money(cls, value: Any) -> Decimal:
        return to_decimal(value)

    def to_row(self) -> Dict[str, Any]:
        """Convert to the persisted row shape (document id excluded)."""
        return {
            "estimate_id": self.estimate_id,
            "adjustment_type": self.adjustment_type.value,
            "adjustment_value": to_float(self.adjustment_value),
            "adjustment_amount": to_float(self.adjustment_amount),
            "original_price": to_float(self.original_price),
            "new_price": to_float(self.new_price),
            "description": self.description,
            "internal_reason": self.internal_reason,
            "applied_by": self.applied_by,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, adjustment_id: str, row: Dict[str, Any]) -> "PriceAdjustmentRecord":
        return cls.model_validate({**row, "id": adjustment_id})


class EstimateRecord(BaseModel):
    """Stored anchor of a ledger: the generated likely price and the current
    adjusted price (``None`` means no adjustment, not "adjusted to zero")."""

    id: str
    price_likely: Decimal
    adjusted_price: Optional[Decimal] = None
    version: Any = Field(default=None, description="Opaque token for conditional writes")

    @field_validator("price_likely", "adjusted_price", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Optional[Decimal]:
        return to_decimal(value)

    @property
    def effective_price(self) -> Decimal:
        return self.adjusted_price if self.adjusted_price is not None else self.price_likely


class ApplyAdjustmentResult(BaseModel):
    record: PriceAdjustmentRecord
    adjusted_price: Decimal


class RemoveAdjustmentResult(BaseModel):
    adjustment_id: str
    estimate_id: str
    new_price: Decimal = Field(..., description="Effective price after replay")
    adjusted_price: Optional[Decimal] = Field(
        default=None,
        description="Stored adjusted price; None once the ledger is empty"
    )
