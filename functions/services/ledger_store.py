"""Storage seam for the price-adjustment ledger.

A LedgerRepository persists generated estimates and their adjustment records.
Mutations are committed conditionally on the estimate ``version`` read at the
start of an operation, so a stale read-modify-write fails with
ConcurrencyError instead of silently clobbering a newer adjusted price.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from config.errors import ConcurrencyError
from models.adjustment import EstimateRecord, PriceAdjustmentRecord

logger = structlog.get_logger(__name__)


class LedgerRepository(ABC):
    """Persistence interface used by AdjustmentLedger."""

    @abstractmethod
    def create_estimate(self, estimate_id: str, price_likely: Decimal) -> EstimateRecord:
        """Store a generated estimate. Replaces any estimate with the same id
        together with its ledger."""

    @abstractmethod
    def get_estimate(self, estimate_id: str) -> Optional[EstimateRecord]:
        """Fetch an estimate with its current version, or None."""

    @abstractmethod
    def delete_estimate(self, estimate_id: str) -> None:
        """Delete an estimate and cascade to its adjustments."""

    @abstractmethod
    def get_adjustment(self, adjustment_id: str) -> Optional[PriceAdjustmentRecord]:
        """Fetch one adjustment record, or None."""

    @abstractmethod
    def list_adjustments(self, estimate_id: str) -> List[PriceAdjustmentRecord]:
        """All adjustment records of an estimate in ascending creation order."""

    @abstractmethod
    def commit_apply(
        self,
        estimate: EstimateRecord,
        record: PriceAdjustmentRecord,
        adjusted_price: Decimal
    ) -> None:
        """Atomically append ``record`` and set ``adjusted_price``.

        Raises:
            ConcurrencyError: If the estimate changed since ``estimate`` was read.
        """

    @abstractmethod
    def commit_remove(
        self,
        estimate: EstimateRecord,
        adjustment_id: str,
        adjusted_price: Optional[Decimal]
    ) -> None:
        """Atomically delete a record and set the replayed ``adjusted_price``.

        Raises:
            ConcurrencyError: If the estimate changed since ``estimate`` was read.
        """


class InMemoryLedgerRepository(LedgerRepository):
    """Process-local repository. Versions are integers bumped on every write."""

    def __init__(self):
        self._lock = threading.RLock()
        self._estimates: Dict[str, EstimateRecord] = {}
        # Insertion order is creation order
        self._adjustments: Dict[str, PriceAdjustmentRecord] = {}
        self._versions = itertools.count(1)

    def create_estimate(self, estimate_id: str, price_likely: Decimal) -> EstimateRecord:
        with self._lock:
            self._drop_adjustments(estimate_id)
            estimate = EstimateRecord(
                id=estimate_id,
                price_likely=price_likely,
                adjusted_price=None,
                version=next(self._versions),
            )
            self._estimates[estimate_id] = estimate
            return estimate

    def get_estimate(self, estimate_id: str) -> Optional[EstimateRecord]:
        with self._lock:
            return self._estimates.get(estimate_id)

    def delete_estimate(self, estimate_id: str) -> None:
        with self._lock:
            self._estimates.pop(estimate_id, None)
            self._drop_adjustments(estimate_id)

    def get_adjustment(self, adjustment_id: str) -> Optional[PriceAdjustmentRecord]:
        with self._lock:
            return self._adjustments.get(adjustment_id)

    def list_adjustments(self, estimate_id: str) -> List[PriceAdjustmentRecord]:
        with self._lock:
            records = [r for r in self._adjustments.values() if r.estimate_id == estimate_id]
        # Stable sort keeps insertion order for equal timestamps
        return sorted(records, key=lambda r: r.created_at)

    def commit_apply(
        self,
        estimate: EstimateRecord,
        record: PriceAdjustmentRecord,
        adjusted_price: Decimal
    ) -> None:
        with self._lock:
            self._check_version(estimate)
            self._adjustments[record.id] = record
            self._bump(estimate.id, adjusted_price)

    def commit_remove(
        self,
        estimate: EstimateRecord,
        adjustment_id: str,
        adjusted_price: Optional[Decimal]
    ) -> None:
        with self._lock:
            self._check_version(estimate)
            self._adjustments.pop(adjustment_id, None)
            self._bump(estimate.id, adjusted_price)

    def _check_version(self, estimate: EstimateRecord) -> None:
        current = self._estimates.get(estimate.id)
        if current is None or current.version != estimate.version:
            logger.warning(
                "ledger_version_conflict",
                estimate_id=estimate.id,
                expected_version=estimate.version,
                actual_version=current.version if current else None,
            )
            raise ConcurrencyError(estimate.id)

    def _bump(self, estimate_id: str, adjusted_price: Optional[Decimal]) -> None:
        current = self._estimates[estimate_id]
        self._estimates[estimate_id] = current.model_copy(
            update={"adjusted_price": adjusted_price, "version": next(self._versions)}
        )

    def _drop_adjustments(self, estimate_id: str) -> None:
        for adjustment_id in [
            r.id for r in self._adjustments.values() if r.estimate_id == estimate_id
        ]:
            del self._adjustments[adjustment_id]
