"""Tests for management and high-water-mark performance fee accrual."""

from datetime import timedelta
from decimal import Decimal

import pytest

from basketfund.errors import PriceUnavailable, StateViolation
from basketfund.fees import (
    FeeAccrualEngine,
    exact_seconds,
    management_fee_fraction,
    management_fee_shares,
    performance_fee_shares,
    performance_fee_value,
)
from basketfund.ledger import FundLedger
from basketfund.types import SECONDS_PER_YEAR


def flat_price(asset: str) -> Decimal:
    return Decimal("1")


@pytest.fixture
def ledger(fund_config, now) -> FundLedger:
    """Ledger holding 120 X against 100 shares: share price 1.2."""
    config = fund_config.with_changes(management_fee_bps=0, performance_fee_bps=2000)
    ledger = FundLedger(config, created_at=now)
    ledger.custody.credit("X", Decimal("120"))
    ledger.shares.mint("alice", Decimal("100"))
    return ledger


# ========== Closed-form Tests ==========


class TestClosedForms:
    def test_management_fraction_one_year(self) -> None:
        assert management_fee_fraction(200, SECONDS_PER_YEAR) == Decimal("0.02")

    def test_exact_seconds_keeps_microseconds(self) -> None:
        assert exact_seconds(timedelta(seconds=1, microseconds=900_000)) == Decimal("1.9")
        assert exact_seconds(timedelta(seconds=-0.5)) == Decimal("-0.5")

    def test_management_fraction_zero_elapsed(self) -> None:
        assert management_fee_fraction(200, 0) == 0
        assert management_fee_fraction(200, -10) == 0

    def test_management_shares_dilute_by_exact_fraction(self) -> None:
        minted = management_fee_shares(Decimal("100"), 200, SECONDS_PER_YEAR)
        assert minted == Decimal("2.040816326530612244")
        # Recipient ends up owning the fee fraction of the post-mint supply.
        assert abs(minted / (Decimal("100") + minted) - Decimal("0.02")) < Decimal("1e-17")

    def test_management_fraction_consuming_fund_raises(self) -> None:
        with pytest.raises(StateViolation):
            management_fee_shares(Decimal("100"), 1000, SECONDS_PER_YEAR * 10)

    def test_performance_fee_value(self) -> None:
        assert performance_fee_value(Decimal("1.2"), Decimal("1"), 2000) == Decimal("0.04")
        assert performance_fee_value(Decimal("0.9"), Decimal("1"), 2000) == 0

    def test_performance_fee_shares(self) -> None:
        assert performance_fee_shares(Decimal("100"), Decimal("1.2"), Decimal("0.04")) == Decimal(
            "3.448275862068965517"
        )


# ========== Engine Tests ==========


class TestFeeAccrualEngine:
    """Tests for FeeAccrualEngine.accrue."""

    def test_performance_fee_scenario_d(self, ledger, now) -> None:
        """Share price 1.0 -> 1.2 with a 20% fee: fee value 0.04, new high-water mark 1.16."""
        accrual = FeeAccrualEngine().accrue(ledger, flat_price, now)

        assert accrual.performance_fee_value == Decimal("0.04")
        assert accrual.performance_shares == Decimal("3.448275862068965517")
        assert ledger.high_water_mark == Decimal("1.16")
        assert ledger.shares.balance_of("treasury") == Decimal("3.448275862068965517")
        assert accrual.management_shares == 0

    def test_no_double_charge_on_same_gain(self, ledger, now) -> None:
        engine = FeeAccrualEngine()
        engine.accrue(ledger, flat_price, now)
        second = engine.accrue(ledger, flat_price, now)
        assert second.total_shares == 0

    def test_high_water_mark_is_monotone(self, ledger, now) -> None:
        engine = FeeAccrualEngine()
        engine.accrue(ledger, flat_price, now)
        marks = [ledger.high_water_mark]

        for price in ("0.5", "0.9", "1.1", "0.8", "1.5"):
            engine.accrue(ledger, lambda asset, p=price: Decimal(p), now)
            marks.append(ledger.high_water_mark)

        assert marks == sorted(marks)

    def test_management_fee_idempotent(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config.with_changes(performance_fee_bps=0), created_at=now)
        ledger.custody.credit("X", Decimal("100"))
        ledger.shares.mint("alice", Decimal("100"))
        engine = FeeAccrualEngine()
        later = now + timedelta(days=365)

        first = engine.accrue(ledger, flat_price, later)
        second = engine.accrue(ledger, flat_price, later)

        assert first.management_shares == Decimal("2.040816326530612244")
        assert second.management_shares == 0
        assert ledger.last_fee_accrual_at == later

    def test_backwards_time_is_a_noop(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now)
        ledger.custody.credit("X", Decimal("100"))
        ledger.shares.mint("alice", Decimal("100"))

        accrual = FeeAccrualEngine().accrue(ledger, flat_price, now - timedelta(days=1))

        assert accrual.total_shares == 0
        assert ledger.last_fee_accrual_at == now

    def test_empty_fund_only_advances_clock(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now)
        later = now + timedelta(days=1)

        accrual = FeeAccrualEngine().accrue(ledger, flat_price, later)

        assert accrual.total_shares == 0
        assert ledger.last_fee_accrual_at == later

    def test_missing_price_aborts_before_minting(self, ledger, now) -> None:
        def no_price(asset: str) -> Decimal:
            raise PriceUnavailable(asset)

        with pytest.raises(PriceUnavailable):
            FeeAccrualEngine().accrue(ledger, no_price, now + timedelta(days=1))
        assert ledger.total_shares == Decimal("100")
        assert ledger.last_fee_accrual_at == now

    def test_sub_second_steps_charge_full_elapsed_time(self, fund_config, now) -> None:
        config = fund_config.with_changes(performance_fee_bps=0)
        stepped = FundLedger(config, created_at=now)
        single = FundLedger(config, created_at=now)
        for ledger in (stepped, single):
            ledger.custody.credit("X", Decimal("100"))
            ledger.shares.mint("alice", Decimal("100"))
        engine = FeeAccrualEngine()
        step = timedelta(seconds=1, microseconds=900_000)

        minted = Decimal("0")
        for i in range(1, 1001):
            minted += engine.accrue(stepped, flat_price, now + step * i).management_shares
        expected = engine.accrue(single, flat_price, now + step * 1000).management_shares

        assert stepped.last_fee_accrual_at == now + timedelta(seconds=1900)
        assert expected > Decimal("0.00012")
        assert abs(minted - expected) < Decimal("1e-9")
