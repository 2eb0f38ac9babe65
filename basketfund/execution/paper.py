from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import Optional

from basketfund.errors import InsufficientBalance, InvalidInput, SlippageExceeded
from basketfund.pricing import PriceAggregator
from basketfund.types import BPS_DENOMINATOR, DECIMAL_CONTEXT, ZERO, TradeFill, to_fixed


@dataclass
class PaperSwap:
    """Represents a simulated swap."""

    swap_id: int
    fill: TradeFill
    expected_out: Decimal
    slippage_bps: Decimal
    executed_at: Optional[datetime] = None


class PaperTradeExecutor:
    """Paper trade executor priced off the fund's aggregator.

    Features:
    - Converts at the ratio of the two validated prices
    - Applies a simulated slippage to every fill
    - Enforces the caller's slippage bound (raises SlippageExceeded)
    - Keeps a log of executed swaps
    """

    def __init__(
        self,
        prices: PriceAggregator,
        *,
        simulated_slippage_bps: Decimal = Decimal("0"),
    ) -> None:
        """Initialize the paper executor.

        Args:
            prices: Aggregator used to value both legs
            simulated_slippage_bps: Slippage applied to every fill, in basis points
        """
        if simulated_slippage_bps < 0:
            raise InvalidInput("Simulated slippage must not be negative")
        self._prices = prices
        self._simulated_slippage_bps = Decimal(simulated_slippage_bps)
        self._swaps: list[PaperSwap] = []
        self._next_swap_id = 1

    @property
    def swaps(self) -> list[PaperSwap]:
        return list(self._swaps)

    def set_simulated_slippage(self, slippage_bps: Decimal) -> None:
        if slippage_bps < 0:
            raise InvalidInput("Simulated slippage must not be negative")
        self._simulated_slippage_bps = Decimal(slippage_bps)

    def quote(self, from_asset: str, to_asset: str, amount_in: Decimal, *, now: datetime) -> Decimal:
        """Expected output before slippage.

        Raises:
            PriceUnavailable: If either leg has no valid price
        """
        price_in = self._prices.get_price(from_asset, now)
        price_out = self._prices.get_price(to_asset, now)
        with localcontext(DECIMAL_CONTEXT):
            return to_fixed(amount_in * price_in / price_out)

    def swap(
        self,
        from_asset: str,
        to_asset: str,
        amount_in: Decimal,
        max_slippage_bps: int,
        *,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """Execute a simulated swap.

        Returns:
            Amount of to_asset received

        Raises:
            InvalidInput: If amount_in <= 0 or both legs are the same asset
            PriceUnavailable: If either leg has no valid price
            SlippageExceeded: If simulated slippage exceeds max_slippage_bps
        """
        if amount_in <= 0:
            raise InvalidInput("Swap amount must be positive")
        if from_asset == to_asset:
            raise InvalidInput("Cannot swap an asset into itself")

        now = now or datetime.now(timezone.utc)
        expected_out = self.quote(from_asset, to_asset, amount_in, now=now)
        amount_out = self._apply_slippage(expected_out, self._simulated_slippage_bps)
        min_out = self._apply_slippage(expected_out, Decimal(max_slippage_bps))
        if amount_out < min_out:
            raise SlippageExceeded(amount_out=amount_out, min_out=min_out, context=f"{from_asset}->{to_asset}")

        swap = PaperSwap(
            swap_id=self._next_swap_id,
            fill=TradeFill(from_asset=from_asset, to_asset=to_asset, amount_in=amount_in, amount_out=amount_out),
            expected_out=expected_out,
            slippage_bps=self._simulated_slippage_bps,
            executed_at=now,
        )
        self._next_swap_id += 1
        self._swaps.append(swap)
        return amount_out

    @staticmethod
    def _apply_slippage(amount: Decimal, slippage_bps: Decimal) -> Decimal:
        """Reduce an output amount by slippage_bps."""
        with localcontext(DECIMAL_CONTEXT):
            return to_fixed(amount * (BPS_DENOMINATOR - slippage_bps) / BPS_DENOMINATOR)


@dataclass
class PaperCustody:
    """In-memory external wallets (investors, fee recipient).

    transfer_in debits the source wallet; transfer_out credits the destination.
    """

    _wallets: dict[tuple[str, str], Decimal] = field(default_factory=dict, repr=False)

    def fund_wallet(self, owner: str, asset: str, amount: Decimal) -> None:
        """Give an external account some of an asset (test / demo helper)."""
        if amount <= 0:
            raise InvalidInput("Wallet funding must be positive")
        self._wallets[(owner, asset)] = self.balance_of(owner, asset) + Decimal(amount)

    def balance_of(self, owner: str, asset: str) -> Decimal:
        return self._wallets.get((owner, asset), ZERO)

    def transfer_in(self, asset: str, source: str, amount: Decimal) -> None:
        if amount <= 0:
            raise InvalidInput("Transfer amount must be positive")
        balance = self.balance_of(source, asset)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient {asset} in wallet {source}: have {balance}, need {amount}")
        self._wallets[(source, asset)] = balance - amount

    def transfer_out(self, asset: str, destination: str, amount: Decimal) -> None:
        if amount <= 0:
            raise InvalidInput("Transfer amount must be positive")
        self._wallets[(destination, asset)] = self.balance_of(destination, asset) + amount
