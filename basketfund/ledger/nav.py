"""NAV, share price and weight arithmetic.

All functions are pure. Every product/quotient is brought back to the
uniform 18-decimal fixed-point scale so results do not depend on the order
of operations or on Decimal context precision.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Mapping

from basketfund.errors import StateViolation
from basketfund.types import BOOTSTRAP_SHARE_PRICE, BPS_DENOMINATOR, ZERO, to_fixed

PriceFn = Callable[[str], Decimal]


def asset_values(balances: Mapping[str, Decimal], price_of: PriceFn) -> dict[str, Decimal]:
    """Value each basket asset at its current price.

    A price is requested for every asset, including zero balances, so a
    missing quote anywhere in the basket fails the whole valuation.

    Raises:
        PriceUnavailable: Propagated from price_of
    """
    return {asset: to_fixed(amount * price_of(asset)) for asset, amount in balances.items()}


def compute_nav(balances: Mapping[str, Decimal], price_of: PriceFn) -> Decimal:
    """NAV = sum(balance * price); all-or-nothing."""
    return sum(asset_values(balances, price_of).values(), ZERO)


def compute_share_price(nav: Decimal, total_shares: Decimal) -> Decimal:
    """NAV per share, or the bootstrap reference value when no shares exist."""
    if total_shares <= 0:
        return BOOTSTRAP_SHARE_PRICE
    return to_fixed(nav / total_shares)


def current_weights(values: Mapping[str, Decimal], nav: Decimal) -> dict[str, Decimal]:
    """Weight of each asset in bps of NAV (all zero for an empty fund)."""
    if nav <= 0:
        return {asset: ZERO for asset in values}
    return {asset: to_fixed(value * BPS_DENOMINATOR / nav) for asset, value in values.items()}


def weight_drifts(current: Mapping[str, Decimal], target: Mapping[str, int]) -> dict[str, Decimal]:
    """Absolute drift |current - target| per target asset, in bps."""
    return {asset: abs(current.get(asset, ZERO) - Decimal(weight)) for asset, weight in target.items()}


def shares_for_value(value: Decimal, total_shares: Decimal, nav: Decimal) -> Decimal:
    """Shares that buy `value` worth of a fund with the given supply and NAV.

    Uses the bootstrap share price when no shares exist.

    Raises:
        StateViolation: If shares exist but the basket is worthless
    """
    if total_shares <= 0:
        return to_fixed(value / BOOTSTRAP_SHARE_PRICE)
    if nav <= 0:
        raise StateViolation("Shares outstanding against a zero NAV")
    return to_fixed(value * total_shares / nav)
