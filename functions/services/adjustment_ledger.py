"""Price Adjustment Ledger.

Applies discounts and overrides on top of a generated estimate's likely
price. Adjustments compose sequentially: each one is computed against the
current adjusted price. Removing an adjustment never subtracts its stored
amount; the adjusted price is recomputed by replaying every surviving record
in creation order from the original likely price, because later records may
have been computed against a price that depended on the removed one.

Apply/Remove are serialized per estimate (one lock per estimate id) and
committed conditionally on the estimate version read at the start.
"""

import threading
import uuid
import weakref
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

import structlog

from config.errors import (
    ConsistencyError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from config.settings import Settings, settings as default_settings
from models.adjustment import (
    AdjustmentType,
    ApplyAdjustmentResult,
    EstimateRecord,
    PriceAdjustmentRecord,
    RemoveAdjustmentResult,
)
from models.money import ZERO, quantize_cents, to_decimal
from models.pricing import PricingResult
from services.ledger_store import InMemoryLedgerRepository, LedgerRepository
from utils.estimate_logger import log_ledger_replay

logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")


# =============================================================================
# Pure ledger math
# =============================================================================


def compute_adjustment(
    base_price: Decimal,
    adjustment_type: AdjustmentType,
    value: Decimal
) -> Tuple[Decimal, Decimal]:
    """Apply one adjustment to a base price.

    Args:
        base_price: Effective price before this adjustment.
        adjustment_type: Kind of adjustment.
        value: Percent, dollar discount, or override price.

    Returns:
        Tuple of (adjustment_amount, new_price). The amount is negative when
        an override raises the price.
    """
    if adjustment_type == AdjustmentType.DISCOUNT_PERCENT:
        amount = quantize_cents(base_price * value / HUNDRED)
        return amount, base_price - amount
    if adjustment_type == AdjustmentType.DISCOUNT_FIXED:
        amount = quantize_cents(value)
        return amount, base_price - amount
    if adjustment_type == AdjustmentType.PRICE_OVERRIDE:
        new_price = quantize_cents(value)
        return base_price - new_price, new_price
    raise ValidationError(
        message=f"Unknown adjustment type: {adjustment_type!r}",
        field="adjustment_type",
        code=ErrorCode.INVALID_ADJUSTMENT_TYPE
    )


def replay_adjustments(
    original_price: Decimal,
    records: Iterable[PriceAdjustmentRecord]
) -> Decimal:
    """Recompute the effective price from scratch.

    Records are replayed in ascending ``created_at`` order; each step's base
    is the previous step's result.
    """
    price = original_price
    for record in sorted(records, key=lambda r: r.created_at):
        _, price = compute_adjustment(price, record.adjustment_type, record.adjustment_value)
    return price


def validate_adjustment(
    adjustment_type: Union[AdjustmentType, str],
    value: Any,
    max_discount_percent: Decimal
) -> Tuple[AdjustmentType, Decimal]:
    """Validate an adjustment request before anything is read or written.

    Raises:
        ValidationError: Malformed type, non-positive value, or a percent
            discount above ``max_discount_percent``.
    """
    try:
        parsed_type = AdjustmentType(adjustment_type)
    except ValueError:
        raise ValidationError(
            message=(
                f"Invalid adjustment type {adjustment_type!r}; expected one of "
                f"{', '.join(t.value for t in AdjustmentType)}"
            ),
            field="adjustment_type",
            code=ErrorCode.INVALID_ADJUSTMENT_TYPE
        )

    try:
        parsed_value = to_decimal(value)
    except ValueError as e:
        raise ValidationError(
            message=str(e),
            field="value",
            code=ErrorCode.INVALID_ADJUSTMENT_VALUE
        )
    if parsed_value is None or parsed_value <= ZERO:
        raise ValidationError(
            message="Adjustment value must be a positive number",
            field="value",
            details={"value": str(value)},
            code=ErrorCode.INVALID_ADJUSTMENT_VALUE
        )

    if parsed_type == AdjustmentType.DISCOUNT_PERCENT and parsed_value > max_discount_percent:
        raise ValidationError(
            message=f"Discount percentage cannot exceed {max_discount_percent:f}%",
            field="value",
            details={"value": str(parsed_value), "max": str(max_discount_percent)},
            code=ErrorCode.DISCOUNT_LIMIT_EXCEEDED
        )

    return parsed_type, parsed_value


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Ledger service
# =============================================================================


class AdjustmentLedger:
    """Ordered, replayable history of price adjustments per estimate."""

    def __init__(
        self,
        repository: Optional[LedgerRepository] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        """Initialize AdjustmentLedger.

        Args:
            repository: Backing store (defaults to an in-memory store).
            config: Optional settings override.
            clock: Source of ``created_at`` timestamps.
            id_factory: Source of adjustment ids.
        """
        self._repository = repository or InMemoryLedgerRepository()
        self._settings = config or default_settings
        self._clock = clock
        self._id_factory = id_factory
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def repository(self) -> LedgerRepository:
        return self._repository

    def _estimate_lock(self, estimate_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(estimate_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[estimate_id] = lock
            return lock

    def _require_estimate(self, estimate_id: str) -> EstimateRecord:
        estimate = self._repository.get_estimate(estimate_id)
        if estimate is None:
            raise NotFoundError(
                code=ErrorCode.ESTIMATE_NOT_FOUND,
                message="Estimate not found",
                resource_id=estimate_id
            )
        return estimate

    def create_estimate(
        self,
        estimate_id: str,
        estimate: Union[PricingResult, Decimal, int, str]
    ) -> EstimateRecord:
        """Store a generated estimate as the anchor of a new, empty ledger."""
        price_likely = (
            estimate.price_likely if isinstance(estimate, PricingResult) else to_decimal(estimate)
        )
        with self._estimate_lock(estimate_id):
            record = self._repository.create_estimate(estimate_id, price_likely)
        logger.info("ledger_estimate_created", estimate_id=estimate_id, price_likely=str(price_likely))
        return record

    def apply_adjustment(
        self,
        estimate_id: str,
        adjustment_type: Union[AdjustmentType, str],
        value: Any,
        description: Optional[str] = None,
        reason: Optional[str] = None,
        applied_by: Optional[str] = None
    ) -> ApplyAdjustmentResult:
        """Apply a discount or override on top of the current adjusted price.

        Raises:
            ValidationError: Bad type/value; nothing is read or written.
            NotFoundError: Unknown estimate.
            ConcurrencyError: The estimate changed under us in the store.
        """
        parsed_type, parsed_value = validate_adjustment(
            adjustment_type, value, self._settings.max_discount_percent
        )

        with self._estimate_lock(estimate_id):
            estimate = self._require_estimate(estimate_id)
            base_price = estimate.effective_price
            amount, new_price = compute_adjustment(base_price, parsed_type, parsed_value)

            record = PriceAdjustmentRecord(
                id=self._id_factory(),
                estimate_id=estimate_id,
                adjustment_type=parsed_type,
                adjustment_value=parsed_value,
                adjustment_amount=amount,
                original_price=base_price,
                new_price=new_price,
                description=description or None,
                internal_reason=reason or None,
                applied_by=applied_by,
                created_at=self._clock(),
            )
            self._repository.commit_apply(estimate, record, new_price)

        logger.info(
            "adjustment_applied",
            estimate_id=estimate_id,
            adjustment_id=record.id,
            adjustment_type=parsed_type.value,
            value=str(parsed_value),
            original_price=str(base_price),
            new_price=str(new_price),
        )
        return ApplyAdjustmentResult(record=record, adjusted_price=new_price)

    def remove_adjustment(
        self,
        adjustment_id: str,
        estimate_id: Optional[str] = None
    ) -> RemoveAdjustmentResult:
        """Remove an adjustment and recompute the adjusted price by replay.

        Args:
            adjustment_id: Record to delete.
            estimate_id: If given, the record must belong to this estimate.

        Raises:
            NotFoundError: Unknown adjustment (or its estimate is gone).
            ConsistencyError: The record belongs to a different estimate.
            ConcurrencyError: The estimate changed under us in the store.
        """
        record = self._repository.get_adjustment(adjustment_id)
        if record is None:
            raise NotFoundError(
                code=ErrorCode.ADJUSTMENT_NOT_FOUND,
                message="Adjustment not found",
                resource_id=adjustment_id
            )
        if estimate_id is not None and record.estimate_id != estimate_id:
            raise ConsistencyError(
                message="Adjustment does not belong to this estimate",
                adjustment_id=adjustment_id,
                estimate_id=estimate_id
            )

        with self._estimate_lock(record.estimate_id):
            estimate = self._require_estimate(record.estimate_id)
            records = self._repository.list_adjustments(estimate.id)
            survivors = [r for r in records if r.id != adjustment_id]
            if len(survivors) == len(records):
                # Removed by someone else between the lookup and the lock
                raise NotFoundError(
                    code=ErrorCode.ADJUSTMENT_NOT_FOUND,
                    message="Adjustment not found",
                    resource_id=adjustment_id
                )

            new_price = replay_adjustments(estimate.price_likely, survivors)
            adjusted_price = new_price if survivors else None
            self._repository.commit_remove(estimate, adjustment_id, adjusted_price)

        logger.info(
            "adjustment_removed",
            estimate_id=estimate.id,
            adjustment_id=adjustment_id,
            remaining=len(survivors),
            new_price=str(new_price),
        )
        if self._settings.verbose_pricing_logs:
            log_ledger_replay(estimate.id, estimate.price_likely, survivors, new_price)

        return RemoveAdjustmentResult(
            adjustment_id=adjustment_id,
            estimate_id=estimate.id,
            new_price=new_price,
            adjusted_price=adjusted_price,
        )

    def list_adjustments(self, estimate_id: str) -> List[PriceAdjustmentRecord]:
        """Adjustment records of an estimate, newest first.

        Raises:
            NotFoundError: Unknown estimate.
        """
        self._require_estimate(estimate_id)
        return list(reversed(self._repository.list_adjustments(estimate_id)))

    def current_price(self, estimate_id: str) -> Decimal:
        """Effective price: adjusted price if any, else the likely price."""
        return self._require_estimate(estimate_id).effective_price
