"""Firestore service for the roof pricing engine.

Provides the Firestore-backed ledger repository and pricing rule loading.

Data layout:
  /estimates/{estimateId}          price_likely, adjusted_price
  /priceAdjustments/{adjustmentId} one ledger record (estimate_id field)
  /pricingRules/{ruleId}           tenant-configured rule rows
"""

import os
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from firebase_admin import firestore, initialize_app
from google.api_core import exceptions as gcp_exceptions

from config.errors import ConcurrencyError, ErrorCode, StorageError
from config.settings import settings
from models.adjustment import EstimateRecord, PriceAdjustmentRecord
from models.money import to_float
from services.ledger_store import LedgerRepository
from services.rule_catalog import RuleCatalog

logger = structlog.get_logger()


def initialize_firebase() -> None:
    """Initialize the Firebase Admin SDK once, pointing at the emulator when enabled."""
    if settings.is_emulator_mode:
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", settings.firestore_emulator_host)
    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    try:
        initialize_app(options=options)
    except ValueError:
        # Already initialized
        pass


class FirestoreLedgerRepository(LedgerRepository):
    """Ledger repository on Firestore.

    Every ledger mutation is one batched write: the adjustment create/delete
    plus the estimate's ``adjusted_price`` update, the latter guarded by a
    ``last_update_time`` precondition taken from the snapshot read at the
    start of the operation. A failed precondition means another writer got
    there first and surfaces as ConcurrencyError.

    Note: Firebase Admin SDK for Python is synchronous.
    """

    COLLECTION_ESTIMATES = "estimates"
    COLLECTION_ADJUSTMENTS = "priceAdjustments"
    COLLECTION_PRICING_RULES = "pricingRules"

    def __init__(self, db=None):
        """Initialize FirestoreLedgerRepository.

        Args:
            db: Optional Firestore client. If not provided, uses default.
        """
        self._db = db

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            initialize_firebase()
            self._db = firestore.client()
        return self._db

    def _estimate_ref(self, estimate_id: str):
        return self.db.collection(self.COLLECTION_ESTIMATES).document(estimate_id)

    def _adjustment_ref(self, adjustment_id: str):
        return self.db.collection(self.COLLECTION_ADJUSTMENTS).document(adjustment_id)

    def _adjustments_query(self, estimate_id: str):
        return (
            self.db
            .collection(self.COLLECTION_ADJUSTMENTS)
            .where("estimate_id", "==", estimate_id)
        )

    def _precondition(self, estimate: EstimateRecord) -> Dict[str, Any]:
        if estimate.version is None:
            return {}
        return {"option": self.db.write_option(last_update_time=estimate.version)}

    # -------------------------------------------------------------------------
    # Estimates
    # -------------------------------------------------------------------------

    def create_estimate(self, estimate_id: str, price_likely: Decimal) -> EstimateRecord:
        try:
            batch = self.db.batch()
            for doc in self._adjustments_query(estimate_id).stream():
                batch.delete(doc.reference)
            batch.set(self._estimate_ref(estimate_id), {
                "price_likely": to_float(price_likely),
                "adjusted_price": None,
                "created_at": firestore.SERVER_TIMESTAMP,
                "updated_at": firestore.SERVER_TIMESTAMP,
            })
            results = batch.commit()
            logger.info("estimate_created", estimate_id=estimate_id, price_likely=str(price_likely))
        except Exception as e:
            logger.error("estimate_create_failed", estimate_id=estimate_id, error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to create estimate: {str(e)}",
                details={"estimate_id": estimate_id}
            )

        # The estimate write is the last in the batch
        version = getattr(results[-1], "update_time", None) if results else None
        return EstimateRecord(id=estimate_id, price_likely=price_likely, version=version)

    def get_estimate(self, estimate_id: str) -> Optional[EstimateRecord]:
        """Fetch estimate document by ID.

        Raises:
            StorageError: If Firestore operation fails.
        """
        try:
            doc = self._estimate_ref(estimate_id).get()
        except Exception as e:
            logger.error("firestore_get_failed", estimate_id=estimate_id, error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get estimate: {str(e)}",
                details={"estimate_id": estimate_id}
            )

        if not doc.exists:
            return None
        data = doc.to_dict() or {}
        return EstimateRecord(
            id=doc.id,
            price_likely=data.get("price_likely"),
            adjusted_price=data.get("adjusted_price"),
            version=getattr(doc, "update_time", None),
        )

    def delete_estimate(self, estimate_id: str) -> None:
        """Delete estimate and its ledger.

        Raises:
            StorageError: If Firestore operation fails.
        """
        try:
            batch = self.db.batch()
            for doc in self._adjustments_query(estimate_id).stream():
                batch.delete(doc.reference)
            batch.delete(self._estimate_ref(estimate_id))
            batch.commit()
            logger.info("estimate_deleted", estimate_id=estimate_id)
        except Exception as e:
            logger.error("estimate_delete_failed", estimate_id=estimate_id, error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to delete estimate: {str(e)}",
                details={"estimate_id": estimate_id}
            )

    # -------------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------------

    def get_adjustment(self, adjustment_id: str) -> Optional[PriceAdjustmentRecord]:
        try:
            doc = self._adjustment_ref(adjustment_id).get()
        except Exception as e:
            logger.error("adjustment_get_failed", adjustment_id=adjustment_id, error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get adjustment: {str(e)}",
                details={"adjustment_id": adjustment_id}
            )
        if not doc.exists:
            return None
        return PriceAdjustmentRecord.from_row(doc.id, doc.to_dict() or {})

    def list_adjustments(self, estimate_id: str) -> List[PriceAdjustmentRecord]:
        try:
            docs = self._adjustments_query(estimate_id).order_by("created_at").stream()
            records = [PriceAdjustmentRecord.from_row(doc.id, doc.to_dict() or {}) for doc in docs]
        except Exception as e:
            logger.error("adjustments_list_failed", estimate_id=estimate_id, error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to list adjustments: {str(e)}",
                details={"estimate_id": estimate_id}
            )
        # Document id breaks timestamp ties so replay order is stable across reads
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def commit_apply(
        self,
        estimate: EstimateRecord,
        record: PriceAdjustmentRecord,
        adjusted_price: Decimal
    ) -> None:
        batch = self.db.batch()
        batch.create(self._adjustment_ref(record.id), record.to_row())
        batch.update(
            self._estimate_ref(estimate.id),
            {"adjusted_price": to_float(adjusted_price), "updated_at": firestore.SERVER_TIMESTAMP},
            **self._precondition(estimate)
        )
        self._commit(batch, estimate.id, "adjustment_apply")

    def commit_remove(
        self,
        estimate: EstimateRecord,
        adjustment_id: str,
        adjusted_price: Optional[Decimal]
    ) -> None:
        batch = self.db.batch()
        batch.delete(self._adjustment_ref(adjustment_id))
        batch.update(
            self._estimate_ref(estimate.id),
            {"adjusted_price": to_float(adjusted_price), "updated_at": firestore.SERVER_TIMESTAMP},
            **self._precondition(estimate)
        )
        self._commit(batch, estimate.id, "adjustment_remove")

    def _commit(self, batch, estimate_id: str, operation: str) -> None:
        try:
            batch.commit()
        except (gcp_exceptions.FailedPrecondition, gcp_exceptions.NotFound) as e:
            logger.warning("ledger_commit_conflict", estimate_id=estimate_id, operation=operation, error=str(e))
            raise ConcurrencyError(estimate_id, details={"operation": operation})
        except Exception as e:
            logger.error("ledger_commit_failed", estimate_id=estimate_id, operation=operation, error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to commit {operation}: {str(e)}",
                details={"estimate_id": estimate_id}
            )

    # -------------------------------------------------------------------------
    # Pricing rules
    # -------------------------------------------------------------------------

    def list_pricing_rules(self) -> List[Dict[str, Any]]:
        """Raw tenant rule rows.

        Raises:
            StorageError: If Firestore operation fails.
        """
        try:
            docs = self.db.collection(self.COLLECTION_PRICING_RULES).stream()
            return [doc.to_dict() or {} for doc in docs]
        except Exception as e:
            logger.error("pricing_rules_list_failed", error=str(e))
            raise StorageError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to list pricing rules: {str(e)}"
            )

    def load_rule_catalog(self, as_of: Optional[date] = None) -> RuleCatalog:
        """Default rules overlaid with tenant rules from Firestore.

        Falls back to the default catalog when Firestore is unavailable.
        """
        try:
            rows = self.list_pricing_rules()
        except StorageError as e:
            logger.warning("pricing_rules_fallback_to_defaults", error=e.message)
            return RuleCatalog.default(as_of=as_of)

        logger.info("pricing_rules_loaded", count=len(rows))
        return RuleCatalog.default(as_of=as_of).with_overrides(rows)
