"""
Good/Better/Best pricing tiers.

Derives three presentation tiers from a generated estimate so customers can
compare upgrade options. The base estimate is the "good" tier; better and
best scale its band by material-specific multipliers.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

import structlog

from models.money import ZERO, round_dollars, to_decimal

logger = structlog.get_logger(__name__)

TIER_LEVELS = ("good", "better", "best")
WORKMANSHIP_YEARS = {"good": 5, "better": 7, "best": 10}


# =============================================================================
# Data Models
# =============================================================================


class PriceBand(Protocol):
    price_low: Decimal
    price_likely: Decimal
    price_high: Decimal


@dataclass(frozen=True)
class TierConfig:
    """
    Static description of one tier for one material family.

    Attributes:
        name: Customer-facing tier name
        description: One-line pitch
        price_multiplier: Factor applied to the base band
        material_name: Product line offered in this tier
        material_description: Product line description
        manufacturer_warranty: Manufacturer warranty label
        features: Included scope items
    """

    name: str
    description: str
    price_multiplier: Decimal
    material_name: str
    material_description: str
    manufacturer_warranty: str
    features: List[str] = field(default_factory=list)


@dataclass
class PricingTier:
    """
    One priced tier.

    Attributes:
        level: good, better or best
        name: Customer-facing tier name
        price_low / price_likely / price_high: Scaled band, whole dollars
        workmanship_warranty: Installer warranty label
        is_recommended: Whether this tier is pre-selected
    """

    level: str
    name: str
    description: str
    price_multiplier: Decimal
    price_low: Decimal
    price_likely: Decimal
    price_high: Decimal
    material_name: str
    material_description: str
    manufacturer_warranty: str
    workmanship_warranty: str
    features: List[str]
    is_recommended: bool


@dataclass
class PricingTiersResult:
    tiers: List[PricingTier]
    selected_tier: str

    def get(self, level: str) -> Optional[PricingTier]:
        return next((tier for tier in self.tiers if tier.level == level), None)


# =============================================================================
# Tier configurations by material
# =============================================================================


ASPHALT_TIERS: Dict[str, TierConfig] = {
    "good": TierConfig(
        name="Essential",
        description="Quality protection at an affordable price",
        price_multiplier=Decimal("1.0"),
        material_name="3-Tab Shingles",
        material_description="Traditional 3-tab asphalt shingles - reliable and economical",
        manufacturer_warranty="25-Year Limited",
        features=["Standard 3-tab shingles", "Synthetic underlayment", "Basic ridge vent"],
    ),
    "better": TierConfig(
        name="Premium",
        description="Enhanced durability and curb appeal",
        price_multiplier=Decimal("1.15"),
        material_name="Architectural Shingles",
        material_description="Dimensional shingles with improved aesthetics and durability",
        manufacturer_warranty="30-Year Limited Lifetime",
        features=[
            "Architectural dimensional shingles",
            "Premium synthetic underlayment",
            "Enhanced ridge ventilation",
            "Upgraded drip edge",
        ],
    ),
    "best": TierConfig(
        name="Elite",
        description="Maximum protection and premium aesthetics",
        price_multiplier=Decimal("1.35"),
        material_name="Designer Shingles",
        material_description="High-definition designer shingles with superior performance",
        manufacturer_warranty="50-Year or Lifetime",
        features=[
            "Designer high-definition shingles",
            "Ice & water shield at all valleys",
            "Premium ventilation system",
            "Copper or aluminum drip edge",
            "Starter strip protection",
            "Transferable warranty",
        ],
    ),
}

METAL_TIERS: Dict[str, TierConfig] = {
    "good": TierConfig(
        name="Essential",
        description="Quality metal roofing at a great value",
        price_multiplier=Decimal("1.0"),
        material_name="Corrugated Metal",
        material_description="Galvanized corrugated metal panels",
        manufacturer_warranty="25-Year Paint Warranty",
        features=["Corrugated metal panels", "Standard underlayment", "Basic trim package"],
    ),
    "better": TierConfig(
        name="Premium",
        description="Standing seam for superior performance",
        price_multiplier=Decimal("1.20"),
        material_name="Standing Seam",
        material_description="Concealed fastener standing seam metal roofing",
        manufacturer_warranty="40-Year Warranty",
        features=[
            "Standing seam panels",
            "High-temp synthetic underlayment",
            "Premium trim & flashing",
            "Color-matched accessories",
        ],
    ),
    "best": TierConfig(
        name="Elite",
        description="Premium metal with maximum longevity",
        price_multiplier=Decimal("1.40"),
        material_name="Premium Standing Seam",
        material_description="Kynar/PVDF coated premium standing seam",
        manufacturer_warranty="Lifetime Limited",
        features=[
            "Kynar/PVDF coated panels",
            "Premium underlayment system",
            "Snow guards (if needed)",
            "Custom fabricated trim",
            "Color-matched ventilation",
            "Transferable warranty",
        ],
    ),
}

DEFAULT_TIERS: Dict[str, TierConfig] = {
    "good": TierConfig(
        name="Essential",
        description="Quality materials at an affordable price",
        price_multiplier=Decimal("1.0"),
        material_name="Standard Materials",
        material_description="Quality roofing materials from trusted manufacturers",
        manufacturer_warranty="25-Year Limited",
        features=["Standard roofing materials", "Synthetic underlayment", "Basic ventilation"],
    ),
    "better": TierConfig(
        name="Premium",
        description="Enhanced quality and durability",
        price_multiplier=Decimal("1.15"),
        material_name="Premium Materials",
        material_description="Upgraded materials with enhanced performance",
        manufacturer_warranty="30-Year Limited Lifetime",
        features=[
            "Premium roofing materials",
            "High-performance underlayment",
            "Enhanced ventilation system",
            "Upgraded accessories",
        ],
    ),
    "best": TierConfig(
        name="Elite",
        description="Top-tier materials and maximum protection",
        price_multiplier=Decimal("1.35"),
        material_name="Elite Materials",
        material_description="Best-in-class materials with superior performance",
        manufacturer_warranty="50-Year or Lifetime",
        features=[
            "Premium designer materials",
            "Ice & water shield protection",
            "Premium ventilation package",
            "All upgraded accessories",
            "Transferable warranty",
        ],
    ),
}

TIERS_BY_MATERIAL: Dict[str, Dict[str, TierConfig]] = {
    "asphalt_shingle": ASPHALT_TIERS,
    "metal": METAL_TIERS,
}


# =============================================================================
# Tier calculation
# =============================================================================


def get_tier_configs(material: Optional[str]) -> Dict[str, TierConfig]:
    return TIERS_BY_MATERIAL.get(material or "", DEFAULT_TIERS)


def calculate_pricing_tiers(
    base_estimate: PriceBand,
    material: Optional[str] = None,
    recommended_tier: str = "better"
) -> PricingTiersResult:
    """
    Calculate Good/Better/Best tiers from a base estimate.

    Args:
        base_estimate: Anything with price_low/price_likely/price_high
            (typically a PricingResult); it becomes the "good" tier.
        material: Roof material selecting the tier family.
        recommended_tier: Level flagged as recommended.

    Returns:
        PricingTiersResult with three tiers in good/better/best order.

    Raises:
        ValueError: If recommended_tier is not a known level.
    """
    if recommended_tier not in TIER_LEVELS:
        raise ValueError(f"Unknown tier level: {recommended_tier}")

    configs = get_tier_configs(material)
    tiers = []
    for level in TIER_LEVELS:
        config = configs[level]
        tiers.append(PricingTier(
            level=level,
            name=config.name,
            description=config.description,
            price_multiplier=config.price_multiplier,
            price_low=round_dollars(to_decimal(base_estimate.price_low) * config.price_multiplier),
            price_likely=round_dollars(to_decimal(base_estimate.price_likely) * config.price_multiplier),
            price_high=round_dollars(to_decimal(base_estimate.price_high) * config.price_multiplier),
            material_name=config.material_name,
            material_description=config.material_description,
            manufacturer_warranty=config.manufacturer_warranty,
            workmanship_warranty=f"{WORKMANSHIP_YEARS[level]} Years",
            features=[*config.features, f"{WORKMANSHIP_YEARS[level]}-year workmanship warranty"],
            is_recommended=level == recommended_tier,
        ))

    logger.debug(
        "pricing_tiers_calculated",
        material=material,
        recommended_tier=recommended_tier,
        likely_prices=[str(tier.price_likely) for tier in tiers],
    )
    return PricingTiersResult(tiers=tiers, selected_tier=recommended_tier)


def tier_price_difference(current: PricingTier, upgrade: PricingTier) -> Decimal:
    """Likely-price delta of moving from ``current`` to ``upgrade``."""
    return upgrade.price_likely - current.price_likely


def calculate_monthly_payment(
    price: Decimal,
    term_months: int = 60,
    annual_rate: Decimal = Decimal("0.0699")
) -> Decimal:
    """
    Standard amortized monthly payment, rounded to whole dollars.

    Args:
        price: Financed amount.
        term_months: Loan term in months.
        annual_rate: APR as a fraction (0.0699 = 6.99%).
    """
    if term_months <= 0:
        raise ValueError("term_months must be positive")
    price = to_decimal(price)
    annual_rate = to_decimal(annual_rate)
    if annual_rate == ZERO:
        return round_dollars(price / term_months)

    monthly_rate = annual_rate / 12
    growth = (1 + monthly_rate) ** term_months
    return round_dollars(price * monthly_rate * growth / (growth - 1))
