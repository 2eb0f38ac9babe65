"""Tests for custody balances, the share registry, NAV arithmetic and ledger snapshots."""

from datetime import datetime
from decimal import Decimal

import pytest

from basketfund.errors import InsufficientBalance, InvalidInput, PriceUnavailable, StateViolation
from basketfund.ledger import (
    CustodyLedger,
    FundLedger,
    ShareRegistry,
    compute_nav,
    compute_share_price,
    current_weights,
    shares_for_value,
    weight_drifts,
)
from basketfund.types import Asset, EmergencyState

PRICES = {"X": Decimal("1"), "Y": Decimal("300"), "Z": Decimal("15")}


def price_of(asset: str) -> Decimal:
    try:
        return PRICES[asset]
    except KeyError:
        raise PriceUnavailable(asset) from None


# ========== CustodyLedger Tests ==========


class TestCustodyLedger:
    """Tests for CustodyLedger."""

    def test_starts_at_zero(self) -> None:
        ledger = CustodyLedger([Asset("X"), Asset("Y")])
        assert ledger.all_balances() == {"X": Decimal("0"), "Y": Decimal("0")}

    def test_credit_and_debit(self) -> None:
        ledger = CustodyLedger([Asset("X")])
        assert ledger.credit("X", Decimal("10")) == Decimal("10")
        assert ledger.debit("X", Decimal("4")) == Decimal("6")

    def test_amounts_quantized_to_asset_precision(self) -> None:
        ledger = CustodyLedger([Asset("USDC", decimals=6)])
        ledger.credit("USDC", Decimal("1.23456789"))
        assert ledger.get_balance("USDC") == Decimal("1.234567")

    def test_credit_below_precision_raises(self) -> None:
        ledger = CustodyLedger([Asset("USDC", decimals=6)])
        with pytest.raises(InvalidInput, match="positive"):
            ledger.credit("USDC", Decimal("0.0000001"))

    def test_debit_insufficient_raises(self) -> None:
        ledger = CustodyLedger([Asset("X")], {"X": Decimal("1")})
        with pytest.raises(InsufficientBalance, match="Insufficient"):
            ledger.debit("X", Decimal("2"))

    def test_unknown_asset_raises(self) -> None:
        with pytest.raises(InvalidInput, match="Unknown asset"):
            CustodyLedger([Asset("X")]).credit("Q", Decimal("1"))

    def test_add_asset(self) -> None:
        ledger = CustodyLedger([Asset("X")])
        ledger.add_asset(Asset("W"))
        assert ledger.get_balance("W") == Decimal("0")
        with pytest.raises(InvalidInput):
            ledger.add_asset(Asset("W"))


# ========== ShareRegistry Tests ==========


class TestShareRegistry:
    """Tests for ShareRegistry."""

    def test_mint_and_burn_track_supply(self) -> None:
        registry = ShareRegistry()
        registry.mint("alice", Decimal("100"))
        registry.mint("bob", Decimal("50"))
        registry.burn("alice", Decimal("30"))

        assert registry.total_supply == Decimal("120")
        assert registry.balance_of("alice") == Decimal("70")

    def test_burn_more_than_held_raises(self) -> None:
        registry = ShareRegistry({"alice": Decimal("10")})
        with pytest.raises(InvalidInput, match="Cannot burn"):
            registry.burn("alice", Decimal("11"))

    def test_transfer_keeps_supply(self) -> None:
        registry = ShareRegistry({"alice": Decimal("10")})
        registry.transfer("alice", "bob", Decimal("4"))

        assert registry.total_supply == Decimal("10")
        assert registry.holders() == {"alice": Decimal("6"), "bob": Decimal("4")}

    def test_mint_rounding_to_zero_raises(self) -> None:
        with pytest.raises(InvalidInput):
            ShareRegistry().mint("alice", Decimal("1e-20"))


# ========== NAV Tests ==========


class TestNav:
    """Tests for the pure NAV / share price functions."""

    def test_compute_nav(self) -> None:
        balances = {"X": Decimal("50"), "Y": Decimal("0.1"), "Z": Decimal("2")}
        assert compute_nav(balances, price_of) == Decimal("110")

    def test_nav_is_all_or_nothing(self) -> None:
        with pytest.raises(PriceUnavailable):
            compute_nav({"X": Decimal("1"), "Q": Decimal("0")}, price_of)

    def test_share_price_bootstrap(self) -> None:
        assert compute_share_price(Decimal("0"), Decimal("0")) == Decimal("1")

    def test_share_price(self) -> None:
        assert compute_share_price(Decimal("120"), Decimal("100")) == Decimal("1.2")

    def test_current_weights(self) -> None:
        weights = current_weights({"X": Decimal("50"), "Y": Decimal("30"), "Z": Decimal("20")}, Decimal("100"))
        assert weights == {"X": Decimal("5000"), "Y": Decimal("3000"), "Z": Decimal("2000")}
        assert sum(weights.values()) == Decimal("10000")

    def test_current_weights_empty_fund(self) -> None:
        assert current_weights({"X": Decimal("0")}, Decimal("0")) == {"X": Decimal("0")}

    def test_weight_drifts(self) -> None:
        drifts = weight_drifts({"X": Decimal("5200"), "Y": Decimal("4800")}, {"X": 5000, "Y": 5000})
        assert drifts == {"X": Decimal("200"), "Y": Decimal("200")}

    def test_shares_for_value(self) -> None:
        assert shares_for_value(Decimal("100"), Decimal("0"), Decimal("0")) == Decimal("100")
        assert shares_for_value(Decimal("60"), Decimal("100"), Decimal("120")) == Decimal("50")

    def test_shares_against_zero_nav_raises(self) -> None:
        with pytest.raises(StateViolation):
            shares_for_value(Decimal("10"), Decimal("100"), Decimal("0"))


# ========== FundLedger Tests ==========


class TestFundLedger:
    """Tests for FundLedger valuation and snapshots."""

    def test_requires_timezone_aware_creation_time(self, fund_config) -> None:
        with pytest.raises(InvalidInput, match="timezone"):
            FundLedger(fund_config, created_at=datetime(2024, 1, 1))

    def test_valuation(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now)
        ledger.custody.credit("X", Decimal("50"))
        ledger.custody.credit("Y", Decimal("0.1"))
        ledger.custody.credit("Z", Decimal("2"))
        ledger.shares.mint("alice", Decimal("100"))

        assert ledger.compute_nav(price_of) == Decimal("110")
        assert ledger.compute_share_price(price_of) == Decimal("1.1")
        assert ledger.current_weights(price_of)["Z"] == Decimal("2727.272727272727272727")

    def test_snapshot_restore(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now, fund_id="f")
        ledger.custody.credit("X", Decimal("5"))
        ledger.shares.mint("alice", Decimal("5"))
        snapshot = ledger.snapshot()

        ledger.custody.debit("X", Decimal("5"))
        ledger.shares.burn("alice", Decimal("5"))
        ledger.emergency_state = EmergencyState.EMERGENCY
        ledger.raise_high_water_mark(Decimal("2"))

        ledger.restore(snapshot)
        assert ledger.snapshot() == snapshot
        assert ledger.custody.get_balance("X") == Decimal("5")
        assert ledger.emergency_state is EmergencyState.NORMAL
        assert ledger.high_water_mark == Decimal("1")

    def test_restore_other_fund_raises(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now, fund_id="a")
        other = FundLedger(fund_config, created_at=now, fund_id="b")
        with pytest.raises(InvalidInput):
            ledger.restore(other.snapshot())

    def test_high_water_mark_never_lowers(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now)
        ledger.raise_high_water_mark(Decimal("1.5"))
        ledger.raise_high_water_mark(Decimal("1.2"))
        assert ledger.high_water_mark == Decimal("1.5")

    def test_replace_config_cannot_drop_assets(self, fund_config, now) -> None:
        ledger = FundLedger(fund_config, created_at=now)
        smaller = fund_config.with_changes(assets=(Asset("X"), Asset("Y")), target_weights={"X": 5000, "Y": 5000})
        with pytest.raises(InvalidInput, match="dropped"):
            ledger.replace_config(smaller)
        assert ledger.config is fund_config
