"""Pricing rule catalog.

An immutable, indexed view over a set of pricing rules. Inactive rules (and,
when the catalog is built for a date, rules outside their effective window)
are retained for audit but invisible to lookups.
"""

from datetime import date
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.errors import ErrorCode, ValidationError
from models.pricing import PricingRule

logger = structlog.get_logger(__name__)

RuleLike = Union[PricingRule, Mapping[str, Any]]


# =============================================================================
# DEFAULT PRICING RULES
# =============================================================================


DEFAULT_PRICING_RULES: List[Dict[str, Any]] = [
    # Base rates by job type
    {"rule_key": "base_replacement", "rule_category": "base", "base_rate": "4.5", "unit": "sqft", "display_name": "Full Replacement Base"},
    {"rule_key": "base_repair", "rule_category": "base", "base_rate": "150", "unit": "flat", "display_name": "Repair Base"},
    {"rule_key": "base_inspection", "rule_category": "base", "base_rate": "250", "unit": "flat", "display_name": "Inspection Base"},
    # Materials
    {"rule_key": "material_asphalt_shingle", "rule_category": "material", "multiplier": "1.0", "display_name": "Asphalt Shingle"},
    {"rule_key": "material_metal", "rule_category": "material", "multiplier": "2.2", "display_name": "Metal Roofing"},
    {"rule_key": "material_tile", "rule_category": "material", "multiplier": "2.5", "display_name": "Tile Roofing"},
    # Pitch
    {"rule_key": "pitch_flat", "rule_category": "pitch", "multiplier": "0.9", "display_name": "Flat Pitch"},
    {"rule_key": "pitch_steep", "rule_category": "pitch", "multiplier": "1.25", "display_name": "Steep Pitch"},
    # Stories
    {"rule_key": "story_2", "rule_category": "stories", "multiplier": "1.15", "display_name": "2 Stories"},
    {"rule_key": "story_3", "rule_category": "stories", "multiplier": "1.35", "display_name": "3+ Stories"},
    # Urgency
    {"rule_key": "urgency_emergency", "rule_category": "urgency", "multiplier": "1.5", "display_name": "Emergency"},
    {"rule_key": "urgency_asap", "rule_category": "urgency", "multiplier": "1.2", "display_name": "ASAP"},
    # Features
    {"rule_key": "feature_skylights", "rule_category": "feature", "flat_fee": "350", "display_name": "Skylights"},
    {"rule_key": "feature_chimneys", "rule_category": "feature", "flat_fee": "450", "display_name": "Chimneys"},
    {"rule_key": "feature_solar", "rule_category": "feature", "flat_fee": "1500", "display_name": "Solar Panels"},
    # Reported issues
    {"rule_key": "issue_leaks", "rule_category": "issue", "flat_fee": "500", "display_name": "Active Leaks"},
    {"rule_key": "issue_missing_shingles", "rule_category": "issue", "flat_fee": "150", "display_name": "Missing Shingles"},
    {"rule_key": "issue_storm_damage", "rule_category": "issue", "flat_fee": "750", "display_name": "Storm Damage"},
    # Estimate band
    {"rule_key": "range_low", "rule_category": "range", "multiplier": "0.85", "display_name": "Low Estimate"},
    {"rule_key": "range_high", "rule_category": "range", "multiplier": "1.25", "display_name": "High Estimate"},
    # Minimum charges
    {"rule_key": "min_replacement", "rule_category": "minimum", "min_charge": "3500", "display_name": "Minimum Replacement"},
    {"rule_key": "min_repair", "rule_category": "minimum", "min_charge": "350", "display_name": "Minimum Repair"},
]


def _parse_rule(rule: RuleLike) -> PricingRule:
    if isinstance(rule, PricingRule):
        return rule
    try:
        return PricingRule.model_validate(rule)
    except PydanticValidationError as e:
        errors = [f"{err['loc']}: {err['msg']}" for err in e.errors()]
        raise ValidationError(
            message=f"Invalid pricing rule: {'; '.join(errors)}",
            field="rules",
            details={"rule_key": dict(rule).get("rule_key"), "errors": errors},
            code=ErrorCode.INVALID_INPUT
        )


class RuleCatalog:
    """Immutable collection of pricing rules indexed by key and category.

    Lookups by key are O(1). Building a catalog with two visible rules that
    share a key raises ``ValidationError``.
    """

    def __init__(self, rules: Iterable[RuleLike], as_of: Optional[date] = None):
        """Initialize RuleCatalog.

        Args:
            rules: PricingRule objects or persisted rule rows.
            as_of: If given, rules whose effective window excludes this date
                are treated as inactive.
        """
        self._as_of = as_of
        self._all_rules: Tuple[PricingRule, ...] = tuple(_parse_rule(r) for r in rules)

        visible = [
            rule for rule in self._all_rules
            if rule.is_active and (as_of is None or rule.is_effective(as_of))
        ]

        by_key: Dict[str, PricingRule] = {}
        by_category: Dict[str, List[PricingRule]] = {}
        for rule in visible:
            if rule.key in by_key:
                raise ValidationError(
                    message=f"Duplicate active pricing rule key: {rule.key}",
                    field="rule_key",
                    details={"rule_key": rule.key},
                    code=ErrorCode.DUPLICATE_RULE_KEY
                )
            by_key[rule.key] = rule
            by_category.setdefault(rule.category, []).append(rule)

        self._rules: Tuple[PricingRule, ...] = tuple(visible)
        self._by_key = MappingProxyType(by_key)
        self._by_category = MappingProxyType(
            {category: tuple(items) for category, items in by_category.items()}
        )

        logger.debug(
            "rule_catalog_built",
            total_rules=len(self._all_rules),
            active_rules=len(self._rules),
            categories=sorted(self._by_category.keys()),
            as_of=as_of.isoformat() if as_of else None,
        )

    @classmethod
    def default(cls, as_of: Optional[date] = None) -> "RuleCatalog":
        """Catalog built from DEFAULT_PRICING_RULES."""
        return cls(DEFAULT_PRICING_RULES, as_of=as_of)

    def with_overrides(self, overrides: Iterable[RuleLike]) -> "RuleCatalog":
        """Return a new catalog where override rules replace rules by key.

        An override with ``is_active=False`` hides the default it replaces.
        """
        merged: Dict[str, PricingRule] = {}
        for rule in self._all_rules:
            if rule.key not in merged or rule.is_active:
                merged[rule.key] = rule
        for rule in overrides:
            parsed = _parse_rule(rule)
            merged[parsed.key] = parsed
        return RuleCatalog(merged.values(), as_of=self._as_of)

    def get(self, key: str) -> Optional[PricingRule]:
        return self._by_key.get(key)

    def by_category(self, category: str) -> List[PricingRule]:
        return list(self._by_category.get(category, ()))

    @property
    def rules(self) -> Tuple[PricingRule, ...]:
        """Active (visible) rules in catalog order."""
        return self._rules

    @property
    def all_rules(self) -> Tuple[PricingRule, ...]:
        """Every rule the catalog was built from, including inactive ones."""
        return self._all_rules

    @property
    def categories(self) -> List[str]:
        return list(self._by_category.keys())

    def keys(self) -> List[str]:
        return list(self._by_key.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __iter__(self) -> Iterator[PricingRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)
