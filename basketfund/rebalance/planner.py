"""Rebalance planner.

Works purely in weight space (basis points of NAV). Converting planned
weight moves into asset amounts and executing them is the engine's job.

The pairing is greedy: the most over-weight asset is matched against the
most under-weight one for min(excess, deficit), and so on. Every step zeroes
at least one side, so a basket of n assets needs at most n - 1 trades. This
is constraint satisfaction, not portfolio optimization; fine for small
baskets.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterator, Mapping

from basketfund.errors import InvalidInput, StateViolation
from basketfund.ledger import weight_drifts
from basketfund.types import ZERO, WeightTrade

logger = logging.getLogger(__name__)


class PlannerState(str, Enum):
    IDLE = "IDLE"
    PLANNING = "PLANNING"
    EXECUTING = "EXECUTING"


def max_drift(current: Mapping[str, Decimal], target: Mapping[str, int]) -> Decimal:
    drifts = weight_drifts(current, target)
    return max(drifts.values(), default=ZERO)


def validate_rebalance(current: Mapping[str, Decimal], target: Mapping[str, int], tolerance_bps: int) -> bool:
    """True if any asset drifts more than tolerance_bps from its target."""
    return max_drift(current, target) > tolerance_bps


def is_rebalance_due(
    *,
    now: datetime,
    last_rebalance_at: datetime,
    interval: timedelta,
    current: Mapping[str, Decimal],
    target: Mapping[str, int],
    tolerance_bps: int,
) -> bool:
    """Trigger: interval elapsed OR max drift above tolerance."""
    if now >= last_rebalance_at + interval:
        return True
    return validate_rebalance(current, target, tolerance_bps)


def calculate_required_trades(
    current: Mapping[str, Decimal],
    target: Mapping[str, int],
    tolerance_bps: int = 0,
    min_trade_bps: Decimal = ZERO,
) -> list[WeightTrade]:
    """Pair over-weight assets with under-weight ones.

    Args:
        current: Current weights in bps
        target: Target weights in bps
        tolerance_bps: Allowed drift; no trades are planned when every asset is inside it,
            otherwise every asset is moved back to its target
        min_trade_bps: Pairings smaller than this are skipped as dust

    Returns:
        Weight trades, largest imbalances first
    """
    if set(current) != set(target):
        raise InvalidInput(f"Weight maps disagree: current={sorted(current)} target={sorted(target)}")

    if not validate_rebalance(current, target, tolerance_bps):
        return []

    excess = [[asset, current[asset] - Decimal(weight)] for asset, weight in target.items() if current[asset] > weight]
    deficit = [[asset, Decimal(weight) - current[asset]] for asset, weight in target.items() if current[asset] < weight]
    excess.sort(key=lambda item: (-item[1], item[0]))
    deficit.sort(key=lambda item: (-item[1], item[0]))

    trades: list[WeightTrade] = []
    i = j = 0
    while i < len(excess) and j < len(deficit):
        over, under = excess[i], deficit[j]
        size = min(over[1], under[1])
        if size > 0 and size >= min_trade_bps:
            trades.append(WeightTrade(from_asset=over[0], to_asset=under[0], weight_bps=size))
        over[1] -= size
        under[1] -= size
        if over[1] <= 0:
            i += 1
        if under[1] <= 0:
            j += 1

    return trades


class RebalancePlanner:
    """State machine IDLE -> PLANNING -> EXECUTING -> IDLE.

    Use `cycle()` around one rebalance; the planner always returns to IDLE,
    whether the rebalance commits or aborts.
    """

    def __init__(self) -> None:
        self._state = PlannerState.IDLE

    @property
    def state(self) -> PlannerState:
        return self._state

    @contextmanager
    def cycle(self) -> Iterator["RebalancePlanner"]:
        if self._state is not PlannerState.IDLE:
            raise StateViolation(f"Rebalance already in progress ({self._state.value})")
        self._state = PlannerState.PLANNING
        try:
            yield self
        finally:
            self._state = PlannerState.IDLE

    def plan(
        self,
        current: Mapping[str, Decimal],
        target: Mapping[str, int],
        tolerance_bps: int,
        min_trade_bps: Decimal = ZERO,
    ) -> list[WeightTrade]:
        if self._state is not PlannerState.PLANNING:
            raise StateViolation(f"Cannot plan while {self._state.value}")
        trades = calculate_required_trades(current, target, tolerance_bps, min_trade_bps)
        logger.debug("Planned %d rebalance trades", len(trades))
        return trades

    def start_execution(self) -> None:
        if self._state is not PlannerState.PLANNING:
            raise StateViolation(f"Cannot execute while {self._state.value}")
        self._state = PlannerState.EXECUTING
