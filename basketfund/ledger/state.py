from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping

from basketfund.config import FundConfig
from basketfund.types import EmergencyState


@dataclass(frozen=True)
class FundState:
    """Complete persisted state of one fund.

    Used for persistence and for rolling back an aborted operation.
    Timestamps are timezone-aware UTC datetimes.
    """

    fund_id: str
    config: FundConfig
    balances: Mapping[str, Decimal]
    share_balances: Mapping[str, Decimal]
    high_water_mark: Decimal
    last_fee_accrual_at: datetime
    last_rebalance_at: datetime
    emergency_state: EmergencyState = EmergencyState.NORMAL
    total_shares: Decimal = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "balances", dict(self.balances))
        object.__setattr__(self, "share_balances", {h: s for h, s in self.share_balances.items() if s > 0})
        object.__setattr__(self, "total_shares", sum(self.share_balances.values(), Decimal("0")))
