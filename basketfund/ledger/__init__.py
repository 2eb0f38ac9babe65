"""Fund ledger module.

Custody balances, share registry, NAV / share price arithmetic and state snapshots.
"""

from .balances import CustodyLedger
from .fund_ledger import FundLedger
from .nav import (
    asset_values,
    compute_nav,
    compute_share_price,
    current_weights,
    shares_for_value,
    weight_drifts,
)
from .shares import ShareRegistry
from .state import FundState

__all__ = [
    # Ledger
    "CustodyLedger",
    "FundLedger",
    "FundState",
    "ShareRegistry",
    # NAV
    "asset_values",
    "compute_nav",
    "compute_share_price",
    "current_weights",
    "shares_for_value",
    "weight_drifts",
]
