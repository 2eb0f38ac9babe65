"""Share (ownership unit) registry."""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional

from basketfund.errors import InvalidInput
from basketfund.types import ZERO, to_fixed


class ShareRegistry:
    """Tracks share balances per holder and the total supply.

    Total supply changes only through mint and burn; transfers move shares
    between holders.
    """

    def __init__(self, balances: Optional[Mapping[str, Decimal]] = None) -> None:
        self._balances: dict[str, Decimal] = {}
        self._total = ZERO
        if balances:
            self.load(balances)

    @property
    def total_supply(self) -> Decimal:
        return self._total

    def balance_of(self, holder: str) -> Decimal:
        return self._balances.get(holder, ZERO)

    def holders(self) -> dict[str, Decimal]:
        """Holders with a non-zero balance."""
        return {h: b for h, b in self._balances.items() if b > 0}

    def mint(self, holder: str, amount: Decimal) -> Decimal:
        """Issue new shares.

        Returns:
            Shares actually minted (after fixed-point rounding)

        Raises:
            InvalidInput: If holder is empty or amount rounds to zero
        """
        if not holder:
            raise InvalidInput("Share holder is required")
        amount = to_fixed(amount)
        if amount <= 0:
            raise InvalidInput("Mint amount must be positive")

        self._balances[holder] = self.balance_of(holder) + amount
        self._total += amount
        return amount

    def burn(self, holder: str, amount: Decimal) -> Decimal:
        """Destroy shares held by holder.

        Raises:
            InvalidInput: If amount <= 0 or exceeds the holder's balance
        """
        amount = to_fixed(amount)
        if amount <= 0:
            raise InvalidInput("Burn amount must be positive")
        balance = self.balance_of(holder)
        if amount > balance:
            raise InvalidInput(f"Cannot burn {amount} shares: {holder} holds {balance}")

        self._balances[holder] = balance - amount
        self._total -= amount
        return amount

    def transfer(self, sender: str, recipient: str, amount: Decimal) -> None:
        if not recipient:
            raise InvalidInput("Share recipient is required")
        amount = to_fixed(amount)
        if amount <= 0:
            raise InvalidInput("Transfer amount must be positive")
        balance = self.balance_of(sender)
        if amount > balance:
            raise InvalidInput(f"Cannot transfer {amount} shares: {sender} holds {balance}")

        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    def load(self, balances: Mapping[str, Decimal]) -> None:
        """Replace all balances (snapshot restore); total is recomputed."""
        restored: dict[str, Decimal] = {}
        for holder, amount in balances.items():
            if amount < 0:
                raise InvalidInput(f"Negative share balance for {holder}")
            if amount > 0:
                restored[holder] = Decimal(amount)
        self._balances = restored
        self._total = sum(restored.values(), ZERO)
