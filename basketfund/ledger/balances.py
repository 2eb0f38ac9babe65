"""Custody balance tracking.

Holds the amount of each basket asset owned by the fund.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional, Sequence

from basketfund.errors import InsufficientBalance, InvalidInput
from basketfund.types import ZERO, Asset


class CustodyLedger:
    """Per-asset custody balances.

    Supports:
    - Credit/debit operations (quantized to each asset's precision)
    - Balance queries
    - Bulk load/dump for snapshots
    """

    def __init__(self, assets: Sequence[Asset], initial_balances: Optional[Mapping[str, Decimal]] = None) -> None:
        """Initialize custody ledger.

        Args:
            assets: Basket assets (balances start at zero)
            initial_balances: Optional dict of asset -> balance
        """
        self._assets: dict[str, Asset] = {a.code: a for a in assets}
        self._balances: dict[str, Decimal] = {a.code: ZERO for a in assets}
        if initial_balances:
            self.load(initial_balances)

    def _asset(self, code: str) -> Asset:
        try:
            return self._assets[code]
        except KeyError:
            raise InvalidInput(f"Unknown asset: {code}") from None

    def add_asset(self, asset: Asset) -> None:
        if asset.code in self._assets:
            raise InvalidInput(f"Asset {asset.code} already held in custody")
        self._assets[asset.code] = asset
        self._balances[asset.code] = ZERO

    def get_balance(self, asset: str) -> Decimal:
        """Get balance for an asset.

        Args:
            asset: Asset code

        Returns:
            Custody balance
        """
        self._asset(asset)
        return self._balances[asset]

    def all_balances(self) -> dict[str, Decimal]:
        """Get balances for every basket asset (zero balances included)."""
        return dict(self._balances)

    def credit(self, asset: str, amount: Decimal) -> Decimal:
        """Add funds to custody.

        Args:
            asset: Asset code
            amount: Amount to add (must be > 0 after quantization)

        Returns:
            Updated balance

        Raises:
            InvalidInput: If amount <= 0 or asset unknown
        """
        amount = self._asset(asset).quantize(amount)
        if amount <= 0:
            raise InvalidInput("Credit amount must be positive")

        self._balances[asset] = self._balances[asset] + amount
        return self._balances[asset]

    def debit(self, asset: str, amount: Decimal) -> Decimal:
        """Remove funds from custody.

        Args:
            asset: Asset code
            amount: Amount to remove (must be > 0 after quantization)

        Returns:
            Updated balance

        Raises:
            InvalidInput: If amount <= 0 or asset unknown
            InsufficientBalance: If custody holds less than amount
        """
        amount = self._asset(asset).quantize(amount)
        if amount <= 0:
            raise InvalidInput("Debit amount must be positive")

        balance = self._balances[asset]
        if balance < amount:
            raise InsufficientBalance(f"Insufficient custody balance for {asset}: have {balance}, need {amount}")

        self._balances[asset] = balance - amount
        return self._balances[asset]

    def load(self, balances: Mapping[str, Decimal]) -> None:
        """Replace balances wholesale (snapshot restore)."""
        restored = {code: ZERO for code in self._assets}
        for code, amount in balances.items():
            self._asset(code)
            if amount < 0:
                raise InvalidInput(f"Negative balance for {code}")
            restored[code] = Decimal(amount)
        self._balances = restored
