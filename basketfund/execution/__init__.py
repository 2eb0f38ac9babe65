"""Execution collaborators.

Protocols for the trade executor and custody transfers, plus paper
implementations used by default and in tests. Real market routing lives
outside this package.
"""

from .interfaces import Custody, TradeExecutor
from .paper import PaperCustody, PaperTradeExecutor

__all__ = [
    "Custody",
    "TradeExecutor",
    "PaperCustody",
    "PaperTradeExecutor",
]
