"""Fee accrual engine.

Fees are paid by minting new shares to the fee recipient, diluting existing
holders by exactly the fee amount. Both closed forms solve
"mint X shares such that X / (supply + X) equals the fee's share of the fund".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal, localcontext

from basketfund.errors import StateViolation
from basketfund.ledger import FundLedger, compute_share_price
from basketfund.ledger.nav import PriceFn
from basketfund.types import BPS_DENOMINATOR, DECIMAL_CONTEXT, SECONDS_PER_YEAR, ZERO, FeeAccrual, to_fixed

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR_BPS = Decimal(SECONDS_PER_YEAR) * BPS_DENOMINATOR


def exact_seconds(delta: timedelta) -> Decimal:
    """Exact length of a timedelta in seconds, microseconds included."""
    return Decimal(delta.days * 86_400 + delta.seconds) + Decimal(delta.microseconds).scaleb(-6)


def management_fee_fraction(rate_bps: int, elapsed_seconds: Decimal | int) -> Decimal:
    """Fraction of the fund owed for `elapsed_seconds` at `rate_bps` per year."""
    if elapsed_seconds <= 0 or rate_bps <= 0:
        return ZERO
    with localcontext(DECIMAL_CONTEXT):
        return Decimal(rate_bps) * Decimal(elapsed_seconds) / SECONDS_PER_YEAR_BPS


def management_fee_shares(total_shares: Decimal, rate_bps: int, elapsed_seconds: Decimal | int) -> Decimal:
    """newShares = totalShares * f / (1 - f).

    Raises:
        StateViolation: If so much time elapsed that the fee would consume the fund
    """
    fraction = management_fee_fraction(rate_bps, elapsed_seconds)
    if fraction <= 0 or total_shares <= 0:
        return ZERO
    if fraction >= 1:
        raise StateViolation(f"Management fee fraction {fraction} would consume the whole fund")
    with localcontext(DECIMAL_CONTEXT):
        return to_fixed(total_shares * fraction / (1 - fraction))


def performance_fee_value(share_price: Decimal, high_water_mark: Decimal, rate_bps: int) -> Decimal:
    """Fee per share on the gain above the high-water mark (zero when there is no gain)."""
    if share_price <= high_water_mark:
        return ZERO
    with localcontext(DECIMAL_CONTEXT):
        return to_fixed((share_price - high_water_mark) * Decimal(rate_bps) / BPS_DENOMINATOR)


def performance_fee_shares(total_shares: Decimal, share_price: Decimal, fee_value: Decimal) -> Decimal:
    """newShares = totalShares * feeValue / (sharePrice - feeValue)."""
    if fee_value <= 0 or total_shares <= 0:
        return ZERO
    with localcontext(DECIMAL_CONTEXT):
        return to_fixed(total_shares * fee_value / (share_price - fee_value))


class FeeAccrualEngine:
    """Applies management then performance fees to a ledger.

    Calling `accrue` twice at the same instant is harmless: the second call
    sees zero elapsed time and a share price at (not above) the high-water mark.
    """

    def accrue(self, ledger: FundLedger, price_of: PriceFn, now: datetime) -> FeeAccrual:
        """Mint fee shares to the fee recipient and advance the fee clock.

        Args:
            ledger: Ledger to mutate
            price_of: Validated price lookup (raises PriceUnavailable)
            now: Current time supplied by the caller

        Returns:
            FeeAccrual describing what was minted

        Raises:
            PriceUnavailable: If shares exist and any basket price is missing
        """
        config = ledger.config
        recipient = config.fee_recipient
        elapsed = exact_seconds(now - ledger.last_fee_accrual_at)

        # Valuation first so a missing price aborts before anything is minted.
        nav = ledger.compute_nav(price_of) if ledger.total_shares > 0 else ZERO

        management_shares = ZERO
        if elapsed > 0:
            management_shares = management_fee_shares(ledger.total_shares, config.management_fee_bps, elapsed)
            if management_shares > 0:
                ledger.shares.mint(recipient, management_shares)
            ledger.last_fee_accrual_at = now
        elif elapsed < 0:
            logger.warning(
                "Fee accrual time %s precedes last accrual %s; management fee skipped",
                now.isoformat(),
                ledger.last_fee_accrual_at.isoformat(),
            )

        performance_shares = ZERO
        fee_value = ZERO
        if ledger.total_shares > 0:
            share_price = compute_share_price(nav, ledger.total_shares)
            fee_value = performance_fee_value(share_price, ledger.high_water_mark, config.performance_fee_bps)
            if share_price > ledger.high_water_mark:
                performance_shares = performance_fee_shares(ledger.total_shares, share_price, fee_value)
                if performance_shares > 0:
                    ledger.shares.mint(recipient, performance_shares)
                ledger.raise_high_water_mark(share_price - fee_value)

        accrual = FeeAccrual(
            management_shares=management_shares,
            performance_shares=performance_shares,
            performance_fee_value=fee_value,
            high_water_mark=ledger.high_water_mark,
            accrued_at=now,
        )
        if accrual.total_shares > 0:
            logger.info(
                "Accrued fees for %s: management=%s performance=%s shares (hwm=%s)",
                ledger.fund_id,
                management_shares,
                performance_shares,
                ledger.high_water_mark,
            )
        return accrual
