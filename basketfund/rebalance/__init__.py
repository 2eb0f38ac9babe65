"""Rebalance planning: drift detection and greedy trade pairing."""

from .planner import (
    PlannerState,
    RebalancePlanner,
    calculate_required_trades,
    is_rebalance_due,
    max_drift,
    validate_rebalance,
)

__all__ = [
    "PlannerState",
    "RebalancePlanner",
    "calculate_required_trades",
    "is_rebalance_due",
    "max_drift",
    "validate_rebalance",
]
