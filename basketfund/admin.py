"""Timelocked administrative changes.

Fee rates, the rebalance interval, tolerances and the basket itself are
fixed at creation. The only way to change them is to propose a change,
wait out the fund's timelock delay, and execute it. Changes are validated
both when proposed and when executed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping, Optional, Sequence
from uuid import uuid4

from basketfund.config import MUTABLE_PARAMETERS, FundConfig
from basketfund.errors import InvalidInput, StateViolation
from basketfund.pricing import PriceSource
from basketfund.types import Asset

logger = logging.getLogger(__name__)

ChangeKind = Literal["parameters", "add_asset"]


@dataclass(frozen=True)
class PendingChange:
    change_id: str
    kind: ChangeKind
    proposed_at: datetime
    eta: datetime
    parameters: Mapping[str, object] = field(default_factory=dict)
    asset: Optional[Asset] = None
    target_weights: Optional[Mapping[str, int]] = None
    price_sources: tuple[PriceSource, ...] = ()

    def apply(self, config: FundConfig) -> FundConfig:
        """Return the configuration this change produces (re-validated)."""
        if self.kind == "parameters":
            return config.with_changes(**self.parameters)
        assert self.asset is not None and self.target_weights is not None
        if config.has_asset(self.asset.code):
            raise InvalidInput(f"Asset {self.asset.code} is already in the basket")
        return config.with_changes(
            assets=config.assets + (self.asset,),
            target_weights=dict(self.target_weights),
        )


class AdminTimelock:
    """Queue of proposed configuration changes."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingChange] = {}

    @property
    def pending(self) -> list[PendingChange]:
        return sorted(self._pending.values(), key=lambda c: c.eta)

    def propose_parameters(self, config: FundConfig, changes: Mapping[str, object], now: datetime) -> PendingChange:
        """Queue a parameter change.

        Raises:
            InvalidInput: If a field is not timelock-mutable or the result is invalid
        """
        if not changes:
            raise InvalidInput("No parameter changes given")
        unknown = set(changes) - set(MUTABLE_PARAMETERS)
        if unknown:
            raise InvalidInput(f"Parameters cannot be changed: {sorted(unknown)}")
        change = PendingChange(
            change_id=str(uuid4()),
            kind="parameters",
            proposed_at=now,
            eta=now + config.timelock_delay,
            parameters=dict(changes),
        )
        change.apply(config)
        return self._queue(change)

    def propose_asset_addition(
        self,
        config: FundConfig,
        asset: Asset,
        target_weights: Mapping[str, int],
        price_sources: Sequence[PriceSource],
        now: datetime,
    ) -> PendingChange:
        """Queue adding an asset together with the full new weight map."""
        if not price_sources:
            raise InvalidInput(f"Price sources are required for new asset {asset.code}")
        change = PendingChange(
            change_id=str(uuid4()),
            kind="add_asset",
            proposed_at=now,
            eta=now + config.timelock_delay,
            asset=asset,
            target_weights=dict(target_weights),
            price_sources=tuple(price_sources),
        )
        change.apply(config)
        return self._queue(change)

    def cancel(self, change_id: str) -> PendingChange:
        try:
            change = self._pending.pop(change_id)
        except KeyError:
            raise InvalidInput(f"No pending change {change_id}") from None
        logger.info("Cancelled %s change %s", change.kind, change_id)
        return change

    def take_ready(self, change_id: str, now: datetime) -> PendingChange:
        """Remove and return a change whose timelock has expired.

        Raises:
            InvalidInput: If no such change is pending
            StateViolation: If the timelock has not expired yet
        """
        change = self._pending.get(change_id)
        if change is None:
            raise InvalidInput(f"No pending change {change_id}")
        if now < change.eta:
            raise StateViolation(f"Change {change_id} is timelocked until {change.eta.isoformat()}")
        return self._pending.pop(change_id)

    def requeue(self, change: PendingChange) -> None:
        """Put back a change whose execution aborted."""
        self._pending[change.change_id] = change

    def _queue(self, change: PendingChange) -> PendingChange:
        self._pending[change.change_id] = change
        logger.info("Queued %s change %s (eta=%s)", change.kind, change.change_id, change.eta.isoformat())
        return change
