"""Pricing models for the roof estimation engine.

Pydantic models for pricing rules, the sparse job attribute bag fed to the
engine, and the three-point estimate it produces.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from models.money import ZERO, to_decimal, to_float


# =============================================================================
# PRICING RULE
# =============================================================================


class PricingRule(BaseModel):
    """A single configurable pricing rule.

    Rules are configuration data: the engine only knows three composition
    primitives (base rate, multiplier, flat fee). Field aliases match the
    persisted row shape (``rule_key``, ``rule_category``).
    """

    key: str = Field(..., alias="rule_key", min_length=1, description="Unique rule key")
    category: str = Field(..., alias="rule_category", description="Open category tag")
    base_rate: Optional[Decimal] = Field(default=None, description="Dollars per unit")
    multiplier: Decimal = Field(default=Decimal("1"), description="Running subtotal multiplier")
    flat_fee: Decimal = Field(default=ZERO, description="Fee added once, independent of size")
    unit: str = Field(default="flat", description="sqft, linear_ft or flat")
    is_active: bool = Field(default=True)
    display_name: str = Field(default="")
    description: Optional[str] = Field(default=None)
    min_charge: Optional[Decimal] = Field(default=None, description="Floor used by minimum rules")
    effective_from: Optional[date] = Field(default=None)
    effective_until: Optional[date] = Field(default=None)

    class Config:
        populate_by_name = True
        frozen = True

    @field_validator("base_rate", "min_charge", mode="before")
    @classmethod
    def _optional_money(cls, value: Any) -> Optional[Decimal]:
        return to_decimal(value)

    @field_validator("multiplier", mode="before")
    @classmethod
    def _multiplier(cls, value: Any) -> Decimal:
        # Stored rows carry NULL for "no multiplier"
        return to_decimal(value, Decimal("1"))

    @field_validator("flat_fee", mode="before")
    @classmethod
    def _flat_fee(cls, value: Any) -> Decimal:
        return to_decimal(value, ZERO)

    @field_validator("unit", mode="before")
    @classmethod
    def _unit(cls, value: Any) -> str:
        return value or "flat"

    @field_validator("is_active", mode="before")
    @classmethod
    def _is_active(cls, value: Any) -> bool:
        return True if value is None else value

    @field_validator("display_name", mode="before")
    @classmethod
    def _display_name(cls, value: Any) -> str:
        return value or ""

    @property
    def label(self) -> str:
        """Human-readable name, falling back to the key."""
        return self.display_name or self.key

    def is_effective(self, on: date) -> bool:
        """Check whether the rule's effective window covers ``on``."""
        if self.effective_from and on < self.effective_from:
            return False
        if self.effective_until and on > self.effective_until:
            return False
        return True

    def to_row(self) -> Dict[str, Any]:
        """Convert to the persisted row shape."""
        return {
            "rule_key": self.key,
            "rule_category": self.category,
            "base_rate": to_float(self.base_rate),
            "multiplier": to_float(self.multiplier),
            "flat_fee": to_float(self.flat_fee),
            "unit": self.unit,
            "is_active": self.is_active,
            "display_name": self.display_name,
            "description": self.description,
            "min_charge": to_float(self.min_charge),
            "effective_from": self.effective_from.isoformat() if self.effective_from else None,
            "effective_until": self.effective_until.isoformat() if self.effective_until else None,
        }


# =============================================================================
# PRICING INPUT
# =============================================================================


class PricingInput(BaseModel):
    """Sparse attribute bag describing one roofing job.

    Every field is optional. ``None`` means "not specified"; values the
    caller passed explicitly are tracked in ``model_fields_set`` so that
    "material not specified" stays distinguishable from "material set to
    the default material", even though both price the same today.
    """

    roof_size_sqft: Optional[Decimal] = Field(default=None, ge=0)
    job_type: Optional[str] = None
    roof_material: Optional[str] = None
    stories: Optional[int] = Field(default=None, ge=0)
    roof_pitch: Optional[str] = None
    timeline_urgency: Optional[str] = None
    has_skylights: Optional[bool] = None
    has_chimneys: Optional[bool] = None
    has_solar_panels: Optional[bool] = None
    issues: Optional[List[str]] = None
    detected_issues: Optional[List[str]] = None

    class Config:
        extra = "ignore"
        frozen = True

    @field_validator("roof_size_sqft", mode="before")
    @classmethod
    def _roof_size(cls, value: Any) -> Optional[Decimal]:
        return to_decimal(value)

    @field_validator("job_type", "roof_material", "roof_pitch", "timeline_urgency", mode="before")
    @classmethod
    def _blank_is_unspecified(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("issues", "detected_issues", mode="before")
    @classmethod
    def _issue_list(cls, value: Any) -> Any:
        if isinstance(value, (set, frozenset, tuple)):
            return sorted(value) if isinstance(value, (set, frozenset)) else list(value)
        return value

    def is_specified(self, name: str) -> bool:
        """Return True if the caller explicitly supplied a non-empty value."""
        return name in self.model_fields_set and getattr(self, name) is not None

    @property
    def all_issues(self) -> List[str]:
        """Reported and detected issues, de-duplicated in first-seen order."""
        merged = [*(self.issues or []), *(self.detected_issues or [])]
        return [issue for issue in dict.fromkeys(merged) if issue]

    def snapshot(self) -> Dict[str, Any]:
        """Only the explicitly supplied fields, JSON-safe."""
        return self.model_dump(mode="json", exclude_none=True, exclude_unset=True)


# =============================================================================
# PRICING RESULT
# =============================================================================


class Adjustment(BaseModel):
    """One explanatory line of an estimate. Impacts (base line included) sum to the
    pre-rounding subtotal."""

    name: str
    rule_key: str
    category: str
    impact: Decimal = Field(..., description="Signed dollar delta")
    description: str = ""


class PricingResult(BaseModel):
    """Three-point estimate with the adjustments that produced it."""

    price_low: Decimal
    price_likely: Decimal
    price_high: Decimal
    base_cost: Decimal = ZERO
    material_cost: Decimal = ZERO
    labor_cost: Decimal = ZERO
    adjustments: List[Adjustment] = Field(default_factory=list)
    input_snapshot: Dict[str, Any] = Field(default_factory=dict)
    rules_snapshot: List[str] = Field(default_factory=list, description="Rule keys evaluated against")

    @model_validator(mode="after")
    def validate_order(self) -> "PricingResult":
        """Ensure low <= likely <= high."""
        if not (self.price_low <= self.price_likely <= self.price_high):
            raise ValueError(
                f"Estimate band must be low <= likely <= high, got: "
                f"low={self.price_low}, likely={self.price_likely}, high={self.price_high}"
            )
        return self

    @property
    def adjustment_total(self) -> Decimal:
        return sum((adj.impact for adj in self.adjustments), ZERO)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")
