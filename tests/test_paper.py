"""Tests for the paper trade executor and paper custody."""

from __future__ import annotations

from decimal import Decimal

import pytest

from basketfund.errors import InsufficientBalance, InvalidInput, PriceUnavailable, SlippageExceeded
from basketfund.execution import PaperCustody, PaperTradeExecutor


# ============================================================================
# PaperTradeExecutor Tests
# ============================================================================


def test_quote_uses_price_ratio(prices, now):
    """Test that quotes convert at the ratio of the two prices."""
    executor = PaperTradeExecutor(prices)

    assert executor.quote("X", "Y", Decimal("300"), now=now) == Decimal("1")
    assert executor.quote("Y", "Z", Decimal("1"), now=now) == Decimal("20")


def test_swap_without_slippage(prices, now):
    """Test that a swap fills at the quote and is logged."""
    executor = PaperTradeExecutor(prices)

    out = executor.swap("X", "Y", Decimal("600"), 100, now=now)

    assert out == Decimal("2")
    assert len(executor.swaps) == 1
    swap = executor.swaps[0]
    assert swap.swap_id == 1
    assert swap.fill.amount_in == Decimal("600")
    assert swap.executed_at == now


def test_swap_applies_simulated_slippage(prices, now):
    """Test that simulated slippage reduces the fill."""
    executor = PaperTradeExecutor(prices, simulated_slippage_bps=Decimal("50"))

    out = executor.swap("X", "Y", Decimal("300"), 100, now=now)

    assert out == Decimal("0.995")
    assert executor.swaps[0].expected_out == Decimal("1")


def test_swap_beyond_bound_raises(prices, now):
    """Test that a fill worse than max_slippage_bps is refused and not logged."""
    executor = PaperTradeExecutor(prices, simulated_slippage_bps=Decimal("50"))

    with pytest.raises(SlippageExceeded) as exc_info:
        executor.swap("X", "Y", Decimal("300"), 10, now=now)

    assert exc_info.value.min_out == Decimal("0.999")
    assert executor.swaps == []


def test_swap_ids_increment(prices, now):
    executor = PaperTradeExecutor(prices)
    executor.swap("X", "Y", Decimal("300"), 100, now=now)
    executor.swap("X", "Z", Decimal("15"), 100, now=now)

    assert [s.swap_id for s in executor.swaps] == [1, 2]


def test_swap_rejects_bad_input(prices, now):
    executor = PaperTradeExecutor(prices)

    with pytest.raises(InvalidInput):
        executor.swap("X", "Y", Decimal("0"), 100, now=now)
    with pytest.raises(InvalidInput):
        executor.swap("X", "X", Decimal("1"), 100, now=now)
    with pytest.raises(InvalidInput):
        executor.set_simulated_slippage(Decimal("-1"))


def test_swap_without_price_raises(prices, price_source, now):
    """Test that a missing quote aborts the swap."""
    price_source.clear("Z")
    executor = PaperTradeExecutor(prices)

    with pytest.raises(PriceUnavailable):
        executor.swap("X", "Z", Decimal("10"), 100, now=now)


# ============================================================================
# PaperCustody Tests
# ============================================================================


def test_custody_transfers():
    """Test that transfer_in debits and transfer_out credits external wallets."""
    custody = PaperCustody()
    custody.fund_wallet("alice", "X", Decimal("10"))

    custody.transfer_in("X", "alice", Decimal("4"))
    custody.transfer_out("X", "bob", Decimal("1.5"))

    assert custody.balance_of("alice", "X") == Decimal("6")
    assert custody.balance_of("bob", "X") == Decimal("1.5")
    assert custody.balance_of("carol", "X") == Decimal("0")


def test_custody_insufficient_wallet():
    custody = PaperCustody()
    custody.fund_wallet("alice", "X", Decimal("1"))

    with pytest.raises(InsufficientBalance):
        custody.transfer_in("X", "alice", Decimal("2"))
    assert custody.balance_of("alice", "X") == Decimal("1")


def test_custody_rejects_non_positive_amounts():
    custody = PaperCustody()

    with pytest.raises(InvalidInput):
        custody.fund_wallet("alice", "X", Decimal("0"))
    with pytest.raises(InvalidInput):
        custody.transfer_out("X", "bob", Decimal("-1"))
