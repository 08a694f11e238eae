"""Roof pricing configuration settings.

Loads configuration from environment variables with sensible defaults.
Pricing constants (band factors, minimum charge, discount cap) can be
tuned per deployment without code changes.
"""

import os
from decimal import Decimal
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file for non-secret configuration (emulator hosts, pricing knobs, etc.)
load_dotenv()


def _env_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.getenv(name, default) or default)


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Estimate band factors (price_low / price_high relative to price_likely)
    low_factor: Decimal = field(default_factory=lambda: _env_decimal("PRICING_LOW_FACTOR", "0.85"))
    high_factor: Decimal = field(default_factory=lambda: _env_decimal("PRICING_HIGH_FACTOR", "1.25"))

    # Fallbacks used when the rule catalog is silent
    default_roof_size_sqft: Decimal = field(
        default_factory=lambda: _env_decimal("PRICING_DEFAULT_ROOF_SQFT", "2000")
    )
    default_minimum_charge: Decimal = field(
        default_factory=lambda: _env_decimal("PRICING_DEFAULT_MINIMUM_CHARGE", "350")
    )

    # Share of the likely price reported as material cost (remainder is labor)
    material_cost_share: Decimal = field(
        default_factory=lambda: _env_decimal("PRICING_MATERIAL_COST_SHARE", "0.40")
    )

    # Adjustment ledger guardrail
    max_discount_percent: Decimal = field(
        default_factory=lambda: _env_decimal("PRICING_MAX_DISCOUNT_PERCENT", "50")
    )

    # Firebase Configuration
    firebase_project_id: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID"))
    use_firebase_emulators: bool = field(default_factory=lambda: os.getenv("USE_FIREBASE_EMULATORS", "false").lower() == "true")
    firestore_emulator_host: str = field(default_factory=lambda: os.getenv("FIRESTORE_EMULATOR_HOST", "localhost:8081"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    # Print banner breakdowns of estimates and ledger replays to stdout
    verbose_pricing_logs: bool = field(default_factory=lambda: os.getenv("PRICING_VERBOSE_LOGS", "false").lower() == "true")

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate pricing settings are coherent.

        Raises:
            ValueError: If band factors or limits are out of range.
        """
        if not (Decimal("0") < self.low_factor < Decimal("1")):
            raise ValueError(f"PRICING_LOW_FACTOR must be in (0, 1), got {self.low_factor}")
        if self.high_factor <= Decimal("1"):
            raise ValueError(f"PRICING_HIGH_FACTOR must be > 1, got {self.high_factor}")
        if not (Decimal("0") < self.max_discount_percent <= Decimal("100")):
            raise ValueError(
                f"PRICING_MAX_DISCOUNT_PERCENT must be in (0, 100], got {self.max_discount_percent}"
            )
        if not (Decimal("0") <= self.material_cost_share <= Decimal("1")):
            raise ValueError(
                f"PRICING_MATERIAL_COST_SHARE must be in [0, 1], got {self.material_cost_share}"
            )

    @property
    def is_emulator_mode(self) -> bool:
        """Check if running in emulator mode."""
        return self.use_firebase_emulators


# Singleton settings instance
settings = Settings()
