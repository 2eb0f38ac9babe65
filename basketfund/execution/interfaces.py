from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol


class TradeExecutor(Protocol):
    """Converts one basket asset into another."""

    def swap(
        self,
        from_asset: str,
        to_asset: str,
        amount_in: Decimal,
        max_slippage_bps: int,
        *,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """Swap amount_in of from_asset and return the amount of to_asset received.

        Raises:
            SlippageExceeded: If the output falls below the slippage bound
        """


class Custody(Protocol):
    """Moves assets between the fund and external accounts."""

    def transfer_in(self, asset: str, source: str, amount: Decimal) -> None:
        """Pull amount of asset from source into the fund.

        Raises:
            InsufficientBalance: If source cannot cover amount
        """

    def transfer_out(self, asset: str, destination: str, amount: Decimal) -> None:
        """Send amount of asset from the fund to destination."""
