"""Roof Estimation Engine.

Turns a roofing job's attributes into a three-point price estimate
(low / likely / high) by evaluating a RuleCatalog.

Rule application (single pass, deterministic):
1. Base price from the job type's base rule (per sqft, per linear ft, or flat)
2. Multiplicative rules scale the running subtotal (running product)
3. Flat fees are added once after all multipliers, never multiplied
4. The subtotal is clamped up to the job type's minimum charge
5. Low/high are derived from the likely price with fixed band factors

Every step that changes the price emits an Adjustment. Running subtotals are
kept to the cent, so the impacts sum exactly to the subtotal that is then
rounded to the whole-dollar likely price.
"""

from decimal import Decimal
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import structlog

from config.settings import Settings, settings as default_settings
from models.money import ZERO, quantize_cents, round_dollars
from models.pricing import Adjustment, PricingInput, PricingResult, PricingRule
from services.rule_catalog import RuleCatalog, RuleLike
from utils.estimate_logger import log_estimate_breakdown
from validators.pricing_input_validator import parse_pricing_input

logger = structlog.get_logger(__name__)


DEFAULT_JOB_TYPE = "repair"
FALLBACK_BASE_RULE = "base_repair"
FALLBACK_MINIMUM_RULE = "min_repair"
MAX_STORY_TIER = 3
ONE = Decimal("1")

# (input flag, rule key, adjustment description)
FEATURE_RULES: Tuple[Tuple[str, str, str], ...] = (
    ("has_skylights", "feature_skylights", "Skylight work"),
    ("has_chimneys", "feature_chimneys", "Chimney flashing"),
    ("has_solar_panels", "feature_solar", "Solar panel handling"),
)


def _job_suffix(job_type: str) -> str:
    """Rule key suffix for a job type (``full_replacement`` -> ``replacement``)."""
    return "replacement" if job_type == "full_replacement" else job_type


def _percent_change(multiplier: Decimal) -> str:
    return f"{(multiplier - ONE) * 100:+.0f}%"


class EstimationEngine:
    """Deterministic pricing rule evaluator.

    The engine holds no mutable state; one instance can serve concurrent
    callers.
    """

    def __init__(
        self,
        catalog: Union[RuleCatalog, Iterable[RuleLike]],
        config: Optional[Settings] = None
    ):
        """Initialize EstimationEngine.

        Args:
            catalog: A RuleCatalog, or raw rules to build one from.
            config: Optional settings override (defaults to module settings).
        """
        self._catalog = catalog if isinstance(catalog, RuleCatalog) else RuleCatalog(catalog)
        self._settings = config or default_settings

    @property
    def catalog(self) -> RuleCatalog:
        return self._catalog

    def get_rule(self, key: str) -> Optional[PricingRule]:
        """Look up an active rule by key. Unknown keys return None."""
        return self._catalog.get(key)

    def get_rules_by_category(self, category: str) -> List[PricingRule]:
        """Active rules in a category. Unknown categories return []."""
        return self._catalog.by_category(category)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def calculate_estimate(
        self,
        pricing_input: Union[PricingInput, Mapping]
    ) -> PricingResult:
        """Calculate a three-point estimate for one job.

        Args:
            pricing_input: PricingInput or a raw attribute mapping.

        Returns:
            PricingResult with low/likely/high and the explaining adjustments.

        Raises:
            ValidationError: If a raw mapping has malformed values.
        """
        job = pricing_input if isinstance(pricing_input, PricingInput) else parse_pricing_input(pricing_input)
        job_type = job.job_type or DEFAULT_JOB_TYPE
        suffix = _job_suffix(job_type)
        adjustments: List[Adjustment] = []

        # Step 1: Base price
        base_rule = self.get_rule(f"base_{suffix}") or self.get_rule(FALLBACK_BASE_RULE)
        base_cost = ZERO
        if base_rule:
            base_cost = quantize_cents(self._base_cost(base_rule, job))
            adjustments.append(Adjustment(
                name=base_rule.label,
                rule_key=base_rule.key,
                category="base",
                impact=base_cost,
                description=f"Base {job_type.replace('_', ' ')} rate",
            ))

        # Step 2: Multipliers compose by running product; fees wait
        subtotal = base_cost
        deferred_fees: List[Tuple[PricingRule, str]] = []
        for rule, subject, fee_description in self._matched_rules(job):
            if rule.multiplier != ONE:
                after = quantize_cents(subtotal * rule.multiplier)
                adjustments.append(Adjustment(
                    name=rule.label,
                    rule_key=rule.key,
                    category=rule.category,
                    impact=after - subtotal,
                    description=f"{_percent_change(rule.multiplier)} for {subject}",
                ))
                subtotal = after
            if rule.flat_fee != ZERO:
                deferred_fees.append((rule, fee_description))

        # Step 3: Flat fees
        for rule, description in deferred_fees:
            fee = quantize_cents(rule.flat_fee)
            adjustments.append(Adjustment(
                name=rule.label,
                rule_key=rule.key,
                category=rule.category,
                impact=fee,
                description=description,
            ))
            subtotal += fee

        # Step 4: Minimum charge
        # A missing or non-positive catalog minimum falls back to the configured one
        min_rule = self.get_rule(f"min_{suffix}") or self.get_rule(FALLBACK_MINIMUM_RULE)
        minimum = (
            min_rule.min_charge
            if min_rule is not None and min_rule.min_charge is not None and min_rule.min_charge > ZERO
            else self._settings.default_minimum_charge
        )
        if subtotal < minimum:
            adjustments.append(Adjustment(
                name="Minimum charge",
                rule_key=min_rule.key if min_rule else "minimum_charge",
                category="minimum",
                impact=minimum - subtotal,
                description=f"Raised to the ${minimum:,.0f} {job_type.replace('_', ' ')} minimum",
            ))
            subtotal = minimum

        # Step 5: Band
        low_factor, high_factor = self._band_factors()
        price_likely = round_dollars(subtotal)
        material_cost = round_dollars(price_likely * self._settings.material_cost_share)

        result = PricingResult(
            price_low=round_dollars(price_likely * low_factor),
            price_likely=price_likely,
            price_high=round_dollars(price_likely * high_factor),
            base_cost=round_dollars(base_cost),
            material_cost=material_cost,
            labor_cost=price_likely - material_cost,
            adjustments=[adj for adj in adjustments if adj.impact != ZERO],
            input_snapshot=job.snapshot(),
            rules_snapshot=self._catalog.keys(),
        )

        logger.info(
            "estimate_calculated",
            job_type=job_type,
            price_low=str(result.price_low),
            price_likely=str(result.price_likely),
            price_high=str(result.price_high),
            adjustment_count=len(result.adjustments),
        )
        if self._settings.verbose_pricing_logs:
            log_estimate_breakdown(result)
        return result

    def _base_cost(self, rule: PricingRule, job: PricingInput) -> Decimal:
        roof_size = (
            job.roof_size_sqft
            if job.roof_size_sqft is not None
            else self._settings.default_roof_size_sqft
        )
        rate = rule.base_rate or ZERO
        if rule.unit == "sqft":
            return rate * roof_size
        if rule.unit == "linear_ft":
            # Perimeter of a square roof with the same area
            return rate * roof_size.sqrt() * 4
        return rule.base_rate if rule.base_rate is not None else rule.flat_fee

    def _matched_rules(self, job: PricingInput) -> Iterator[Tuple[PricingRule, str, str]]:
        """Yield (rule, multiplier subject, fee description) for every rule the
        job's attributes select, in evaluation order. Missing rules are skipped."""
        candidates: List[Tuple[str, str, Optional[str]]] = []

        if job.roof_material:
            candidates.append((f"material_{job.roof_material}", "", None))
        if job.roof_pitch:
            candidates.append((f"pitch_{job.roof_pitch}", "", None))
        if job.stories and job.stories > 1:
            candidates.append((
                f"story_{min(job.stories, MAX_STORY_TIER)}",
                f"{job.stories} stories",
                None,
            ))
        if job.timeline_urgency:
            candidates.append((f"urgency_{job.timeline_urgency}", "scheduling urgency", None))
        for flag, rule_key, description in FEATURE_RULES:
            if getattr(job, flag):
                candidates.append((rule_key, "", description))
        for issue in job.all_issues:
            candidates.append((f"issue_{issue}", "", None))

        for rule_key, subject, fee_description in candidates:
            rule = self.get_rule(rule_key)
            if rule is None:
                continue
            yield (
                rule,
                subject or rule.label.lower(),
                fee_description or (
                    f"Repair for {rule.label.lower()}" if rule.category == "issue" else rule.label
                ),
            )

    def _band_factors(self) -> Tuple[Decimal, Decimal]:
        low_rule = self.get_rule("range_low")
        high_rule = self.get_rule("range_high")
        return (
            low_rule.multiplier if low_rule else self._settings.low_factor,
            high_rule.multiplier if high_rule else self._settings.high_factor,
        )
