from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol

from basketfund.types import RawPrice


class PriceSource(Protocol):
    """A single price feed.

    `max_age` is the staleness bound: a value older than this at read time is
    not a valid quote.
    """

    name: str
    max_age: timedelta

    def read(self, asset: str, *, now: datetime) -> Optional[RawPrice]:
        """Return the latest reported value for asset, or None if the feed has none.

        Implementations may raise; the aggregator treats a raising source as
        invalid and moves on to the next one.
        """
