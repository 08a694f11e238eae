"""Unit tests for the price AdjustmentLedger."""

import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from config.errors import (
    ConcurrencyError,
    ConsistencyError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from models.adjustment import AdjustmentType, PriceAdjustmentRecord
from models.pricing import PricingResult
from services.adjustment_ledger import (
    AdjustmentLedger,
    compute_adjustment,
    replay_adjustments,
)
from services.ledger_store import InMemoryLedgerRepository


@pytest.fixture
def estimate(ledger):
    """A $10,000 estimate with an empty ledger."""
    return ledger.create_estimate("est-1", Decimal("10000"))


def _record(adjustment_type, value, seconds, adjustment_id=None):
    return PriceAdjustmentRecord(
        id=adjustment_id or f"r-{seconds}",
        estimate_id="est-1",
        adjustment_type=adjustment_type,
        adjustment_value=value,
        adjustment_amount=0,
        original_price=0,
        new_price=0,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=seconds),
    )


class TestComputeAdjustment:
    """Tests for single-step adjustment math."""

    def test_percent(self):
        assert compute_adjustment(Decimal("10000"), AdjustmentType.DISCOUNT_PERCENT, Decimal("10")) == (
            Decimal("1000.00"), Decimal("9000.00")
        )

    def test_fixed(self):
        assert compute_adjustment(Decimal("9000"), AdjustmentType.DISCOUNT_FIXED, Decimal("500")) == (
            Decimal("500.00"), Decimal("8500.00")
        )

    def test_override_above_base_gives_negative_amount(self):
        amount, new_price = compute_adjustment(
            Decimal("10000"), AdjustmentType.PRICE_OVERRIDE, Decimal("12000")
        )

        assert amount == Decimal("-2000.00")
        assert new_price == Decimal("12000.00")

    def test_percent_amount_rounded_to_cent(self):
        amount, new_price = compute_adjustment(
            Decimal("999.99"), AdjustmentType.DISCOUNT_PERCENT, Decimal("33")
        )

        assert amount == Decimal("330.00")
        assert new_price == Decimal("669.99")


class TestReplay:
    """Tests for replay_adjustments."""

    def test_empty_replay_is_original(self):
        assert replay_adjustments(Decimal("10000"), []) == Decimal("10000")

    def test_replays_in_creation_order_regardless_of_input_order(self):
        records = [
            _record(AdjustmentType.DISCOUNT_PERCENT, Decimal("10"), seconds=2),
            _record(AdjustmentType.DISCOUNT_FIXED, Decimal("1000"), seconds=1),
        ]

        # (10000 - 1000) * 0.9
        assert replay_adjustments(Decimal("10000"), records) == Decimal("8100.00")

    def test_override_resets_the_chain(self):
        records = [
            _record(AdjustmentType.DISCOUNT_FIXED, Decimal("1000"), seconds=1),
            _record(AdjustmentType.PRICE_OVERRIDE, Decimal("7000"), seconds=2),
            _record(AdjustmentType.DISCOUNT_PERCENT, Decimal("10"), seconds=3),
        ]

        assert replay_adjustments(Decimal("10000"), records) == Decimal("6300.00")


class TestApplyAdjustment:
    """Tests for AdjustmentLedger.apply_adjustment."""

    def test_apply_percent(self, ledger, estimate):
        result = ledger.apply_adjustment("est-1", "discount_percent", 10, reason="loyal customer")

        assert result.adjusted_price == Decimal("9000.00")
        assert result.record.original_price == Decimal("10000")
        assert result.record.adjustment_amount == Decimal("1000.00")
        assert result.record.internal_reason == "loyal customer"
        assert ledger.current_price("est-1") == Decimal("9000.00")

    def test_adjustments_compose_sequentially(self, ledger, estimate):
        ledger.apply_adjustment("est-1", AdjustmentType.DISCOUNT_PERCENT, "10")
        result = ledger.apply_adjustment("est-1", AdjustmentType.DISCOUNT_FIXED, "500")

        assert result.record.original_price == Decimal("9000.00")
        assert result.adjusted_price == Decimal("8500.00")

    def test_percent_at_cap_accepted(self, ledger, estimate):
        result = ledger.apply_adjustment("est-1", "discount_percent", 50)

        assert result.adjusted_price == Decimal("5000.00")

    def test_percent_above_cap_rejected_without_writing(self, ledger, estimate):
        with pytest.raises(ValidationError) as exc_info:
            ledger.apply_adjustment("est-1", "discount_percent", 51)

        assert exc_info.value.code == ErrorCode.DISCOUNT_LIMIT_EXCEEDED
        assert exc_info.value.message == "Discount percentage cannot exceed 50%"
        assert ledger.list_adjustments("est-1") == []
        assert ledger.current_price("est-1") == Decimal("10000")

    def test_cap_is_configurable(self, ledger_repository, pricing_settings, estimate):
        strict = AdjustmentLedger(
            repository=ledger_repository,
            config=replace(pricing_settings, max_discount_percent=Decimal("20")),
        )

        with pytest.raises(ValidationError):
            strict.apply_adjustment("est-1", "discount_percent", 25)

    def test_fixed_discount_above_cap_percent_is_allowed(self, ledger, estimate):
        result = ledger.apply_adjustment("est-1", "discount_fixed", 6000)

        assert result.adjusted_price == Decimal("4000.00")

    def test_invalid_type_rejected(self, ledger, estimate):
        with pytest.raises(ValidationError) as exc_info:
            ledger.apply_adjustment("est-1", "discount_bogus", 10)

        assert exc_info.value.code == ErrorCode.INVALID_ADJUSTMENT_TYPE
        assert exc_info.value.field == "adjustment_type"

    @pytest.mark.parametrize("value", [0, -5, "abc", None])
    def test_invalid_value_rejected(self, ledger, estimate, value):
        with pytest.raises(ValidationError) as exc_info:
            ledger.apply_adjustment("est-1", "discount_fixed", value)

        assert exc_info.value.code == ErrorCode.INVALID_ADJUSTMENT_VALUE

    def test_validation_happens_before_lookup(self, ledger):
        with pytest.raises(ValidationError):
            ledger.apply_adjustment("missing", "discount_percent", 99)

    def test_unknown_estimate(self, ledger):
        with pytest.raises(NotFoundError) as exc_info:
            ledger.apply_adjustment("missing", "discount_percent", 10)

        assert exc_info.value.code == ErrorCode.ESTIMATE_NOT_FOUND

    def test_override_can_raise_price(self, ledger, estimate):
        result = ledger.apply_adjustment("est-1", "price_override", 12000)

        assert result.record.adjustment_amount == Decimal("-2000.00")
        assert result.adjusted_price == Decimal("12000.00")


class TestRemoveAdjustment:
    """Tests for AdjustmentLedger.remove_adjustment."""

    def test_remove_replays_survivors(self, ledger, estimate):
        percent = ledger.apply_adjustment("est-1", "discount_percent", 10)
        ledger.apply_adjustment("est-1", "discount_fixed", 500)

        result = ledger.remove_adjustment(percent.record.id, "est-1")

        assert result.new_price == Decimal("9500.00")
        assert result.adjusted_price == Decimal("9500.00")
        assert ledger.current_price("est-1") == Decimal("9500.00")

    def test_remove_is_not_naive_subtraction(self, ledger, estimate):
        fixed = ledger.apply_adjustment("est-1", "discount_fixed", 1000)
        ledger.apply_adjustment("est-1", "discount_percent", 10)
        assert ledger.current_price("est-1") == Decimal("8100.00")

        result = ledger.remove_adjustment(fixed.record.id)

        # Adding back the stored $1,000 would give 9100
        assert result.new_price == Decimal("9000.00")

    def test_remove_override_restores_chain(self, ledger, estimate):
        override = ledger.apply_adjustment("est-1", "price_override", 7000)
        ledger.apply_adjustment("est-1", "discount_percent", 10)

        result = ledger.remove_adjustment(override.record.id)

        assert result.new_price == Decimal("9000.00")

    def test_remove_last_clears_adjusted_price(self, ledger, estimate):
        only = ledger.apply_adjustment("est-1", "discount_percent", 10)

        result = ledger.remove_adjustment(only.record.id, "est-1")

        assert result.adjusted_price is None
        assert result.new_price == Decimal("10000")
        assert ledger.repository.get_estimate("est-1").adjusted_price is None
        assert ledger.current_price("est-1") == Decimal("10000")

    def test_remove_unknown_adjustment(self, ledger, estimate):
        with pytest.raises(NotFoundError) as exc_info:
            ledger.remove_adjustment("adj-missing")

        assert exc_info.value.code == ErrorCode.ADJUSTMENT_NOT_FOUND

    def test_remove_twice(self, ledger, estimate):
        applied = ledger.apply_adjustment("est-1", "discount_percent", 10)
        ledger.remove_adjustment(applied.record.id)

        with pytest.raises(NotFoundError):
            ledger.remove_adjustment(applied.record.id)

    def test_remove_from_wrong_estimate(self, ledger, estimate):
        ledger.create_estimate("est-2", Decimal("5000"))
        applied = ledger.apply_adjustment("est-1", "discount_percent", 10)

        with pytest.raises(ConsistencyError) as exc_info:
            ledger.remove_adjustment(applied.record.id, "est-2")

        assert exc_info.value.code == ErrorCode.ADJUSTMENT_OWNERSHIP_MISMATCH
        assert ledger.current_price("est-1") == Decimal("9000.00")
        assert ledger.current_price("est-2") == Decimal("5000")

    def test_verbose_logging_prints_replay(self, ledger_repository, pricing_settings, estimate, capsys):
        verbose = AdjustmentLedger(
            repository=ledger_repository,
            config=replace(pricing_settings, verbose_pricing_logs=True),
        )
        applied = verbose.apply_adjustment("est-1", "discount_fixed", 100)

        verbose.remove_adjustment(applied.record.id)

        assert "LEDGER REPLAY: est-1" in capsys.readouterr().out


class TestLedgerQueries:
    """Tests for estimate creation and ledger listing."""

    def test_create_from_pricing_result(self, ledger):
        result = PricingResult(
            price_low=Decimal("7650"), price_likely=Decimal("9000"), price_high=Decimal("11250")
        )

        record = ledger.create_estimate("est-9", result)

        assert record.price_likely == Decimal("9000")
        assert record.adjusted_price is None

    def test_list_newest_first(self, ledger, estimate):
        first = ledger.apply_adjustment("est-1", "discount_percent", 10)
        second = ledger.apply_adjustment("est-1", "discount_fixed", 100)

        assert [r.id for r in ledger.list_adjustments("est-1")] == [second.record.id, first.record.id]

    def test_list_unknown_estimate(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.list_adjustments("missing")

    def test_recreating_estimate_resets_ledger(self, ledger, estimate):
        ledger.apply_adjustment("est-1", "discount_percent", 10)

        ledger.create_estimate("est-1", Decimal("12000"))

        assert ledger.list_adjustments("est-1") == []
        assert ledger.current_price("est-1") == Decimal("12000")


class TestConcurrency:
    """Tests for serialized and conditional ledger writes."""

    def test_parallel_applies_are_serialized(self, ledger, estimate):
        threads = [
            threading.Thread(target=ledger.apply_adjustment, args=("est-1", "discount_fixed", 10))
            for _ in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(ledger.list_adjustments("est-1")) == 20
        assert ledger.current_price("est-1") == Decimal("9800.00")

    def test_stale_write_raises_concurrency_error(self, pricing_settings):
        class RacingRepository(InMemoryLedgerRepository):
            """Another writer commits right after every estimate read."""

            def get_estimate(self, estimate_id):
                estimate = super().get_estimate(estimate_id)
                if estimate is not None:
                    super().commit_apply(
                        estimate,
                        _record(AdjustmentType.DISCOUNT_FIXED, Decimal("1"), seconds=0, adjustment_id="other"),
                        estimate.effective_price - 1,
                    )
                return estimate

        repository = RacingRepository()
        repository.create_estimate("est-1", Decimal("10000"))
        ledger = AdjustmentLedger(repository=repository, config=pricing_settings)

        with pytest.raises(ConcurrencyError) as exc_info:
            ledger.apply_adjustment("est-1", "discount_percent", 10)

        assert exc_info.value.code == ErrorCode.CONCURRENT_MODIFICATION
        assert all(r.id == "other" for r in repository.list_adjustments("est-1"))
