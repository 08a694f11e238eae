"""Pytest configuration and shared fixtures for roof pricing tests."""

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest


# ============================================================================
# Ensure local imports work (models/, services/, config/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from services...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def pricing_settings():
    """Settings with the stock pricing constants, independent of the env."""
    from config.settings import Settings

    return Settings(
        low_factor=Decimal("0.85"),
        high_factor=Decimal("1.25"),
        default_roof_size_sqft=Decimal("2000"),
        default_minimum_charge=Decimal("350"),
        material_cost_share=Decimal("0.40"),
        max_discount_percent=Decimal("50"),
        verbose_pricing_logs=False,
    )


# ============================================================================
# Engine
# ============================================================================

@pytest.fixture
def default_catalog():
    from services.rule_catalog import RuleCatalog

    return RuleCatalog.default()


@pytest.fixture
def engine(default_catalog, pricing_settings):
    from services.estimation_engine import EstimationEngine

    return EstimationEngine(default_catalog, config=pricing_settings)


# ============================================================================
# Ledger
# ============================================================================

class TickingClock:
    """Deterministic clock: each call is one second after the previous."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def ledger_repository():
    from services.ledger_store import InMemoryLedgerRepository

    return InMemoryLedgerRepository()


@pytest.fixture
def ledger(ledger_repository, pricing_settings):
    from services.adjustment_ledger import AdjustmentLedger

    counter = iter(range(1, 10_000))
    return AdjustmentLedger(
        repository=ledger_repository,
        config=pricing_settings,
        clock=TickingClock(),
        id_factory=lambda: f"adj-{next(counter)}",
    )


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client.

    ``client.collection().document()`` always returns the same document mock
    and ``client.batch()`` the same batch mock, so tests can inspect calls.
    """
    client = MagicMock()

    collection_mock = MagicMock()
    document_mock = MagicMock()
    batch_mock = MagicMock()

    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock
    collection_mock.where.return_value.stream.return_value = []
    collection_mock.where.return_value.order_by.return_value.stream.return_value = []
    collection_mock.stream.return_value = []
    client.batch.return_value = batch_mock
    batch_mock.commit.return_value = [MagicMock(update_time="t-1")]

    return client


@pytest.fixture
def firestore_repository(mock_firestore_client):
    """FirestoreLedgerRepository with mocked client."""
    from services.firestore_service import FirestoreLedgerRepository

    return FirestoreLedgerRepository(db=mock_firestore_client)
