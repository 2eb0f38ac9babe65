"""Price sources and the fallback aggregator.

Each asset has an ordered list of sources (primary, secondary, ...). The
aggregator returns the first valid quote and never substitutes a stale or
zero value.
"""

from .aggregator import PriceAggregator
from .interfaces import PriceSource
from .sources import CallablePriceSource, StaticPriceSource

__all__ = [
    "PriceAggregator",
    "PriceSource",
    "CallablePriceSource",
    "StaticPriceSource",
]
