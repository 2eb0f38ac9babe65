"""Concrete price sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from basketfund.types import RawPrice


@dataclass
class StaticPriceSource:
    """In-memory source fed by an operator (or a test).

    Quotes keep the timestamp they were set with, so they go stale once
    `max_age` has passed.
    """

    name: str
    max_age: timedelta = timedelta(hours=1)
    _prices: dict[str, RawPrice] = field(default_factory=dict, repr=False)

    def set_price(self, asset: str, price: Decimal, updated_at: datetime) -> None:
        """Record a price observation.

        Args:
            asset: Asset code
            price: Reported value (zero is allowed and reads as invalid)
            updated_at: Observation time (timezone-aware)

        Raises:
            ValueError: If price is negative
        """
        price = Decimal(price)
        if price < 0:
            raise ValueError("Price must not be negative")
        self._prices[asset] = RawPrice(price=price, updated_at=updated_at)

    def clear(self, asset: str) -> None:
        self._prices.pop(asset, None)

    def read(self, asset: str, *, now: datetime) -> Optional[RawPrice]:
        return self._prices.get(asset)


@dataclass
class CallablePriceSource:
    """Wraps a live price function.

    The function is called on every read and its value is stamped with the
    caller-supplied time. A function returning None means "no price".
    """

    name: str
    fetch: Callable[[str], Optional[Decimal]]
    max_age: timedelta = timedelta(minutes=5)

    def read(self, asset: str, *, now: datetime) -> Optional[RawPrice]:
        value = self.fetch(asset)
        if value is None:
            return None
        return RawPrice(price=Decimal(value), updated_at=now)
