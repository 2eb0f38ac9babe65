"""Fee accrual: continuous management fee and high-water-mark performance fee."""

from .accrual import (
    FeeAccrualEngine,
    exact_seconds,
    management_fee_fraction,
    management_fee_shares,
    performance_fee_shares,
    performance_fee_value,
)

__all__ = [
    "FeeAccrualEngine",
    "exact_seconds",
    "management_fee_fraction",
    "management_fee_shares",
    "performance_fee_shares",
    "performance_fee_value",
]
