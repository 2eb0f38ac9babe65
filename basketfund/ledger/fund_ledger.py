"""Fund ledger - owns all mutable fund state.

Integrates custody balances, the share registry, the high-water mark, fee
and rebalance timestamps and the emergency flag. Valuation helpers take a
price function so the ledger never caches prices.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from basketfund.config import FundConfig
from basketfund.errors import InvalidInput
from basketfund.types import BOOTSTRAP_SHARE_PRICE, Asset, EmergencyState

from .balances import CustodyLedger
from .nav import PriceFn, asset_values, compute_nav, compute_share_price, current_weights
from .shares import ShareRegistry
from .state import FundState


class FundLedger:
    """Holds custody balances, share supply and target weights.

    Thread-safety: Not thread-safe. `basketfund.engine.Fund` serializes access.
    """

    def __init__(self, config: FundConfig, *, created_at: datetime, fund_id: Optional[str] = None) -> None:
        """Initialize an empty fund ledger.

        Args:
            config: Validated fund configuration
            created_at: Fund creation time; starts the fee and rebalance clocks
            fund_id: Stable identifier used by state stores (generated if omitted)
        """
        if created_at.tzinfo is None:
            raise InvalidInput("created_at must be timezone-aware")
        self.fund_id = fund_id or str(uuid4())
        self.config = config
        self.custody = CustodyLedger(config.assets)
        self.shares = ShareRegistry()
        self.high_water_mark: Decimal = BOOTSTRAP_SHARE_PRICE
        self.last_fee_accrual_at = created_at
        self.last_rebalance_at = created_at
        self.emergency_state = EmergencyState.NORMAL

    # ========== Valuation ==========

    @property
    def total_shares(self) -> Decimal:
        return self.shares.total_supply

    def asset_values(self, price_of: PriceFn) -> dict[str, Decimal]:
        return asset_values(self.custody.all_balances(), price_of)

    def compute_nav(self, price_of: PriceFn) -> Decimal:
        """Sum of balance * price over the whole basket.

        Raises:
            PriceUnavailable: If any basket asset lacks a valid price
        """
        return compute_nav(self.custody.all_balances(), price_of)

    def compute_share_price(self, price_of: PriceFn) -> Decimal:
        if self.total_shares <= 0:
            return BOOTSTRAP_SHARE_PRICE
        return compute_share_price(self.compute_nav(price_of), self.total_shares)

    def current_weights(self, price_of: PriceFn) -> dict[str, Decimal]:
        values = self.asset_values(price_of)
        return current_weights(values, sum(values.values(), Decimal("0")))

    # ========== Mutations ==========

    def raise_high_water_mark(self, value: Decimal) -> Decimal:
        """Move the high-water mark up to value; lower values are ignored."""
        if value > self.high_water_mark:
            self.high_water_mark = value
        return self.high_water_mark

    def replace_config(self, config: FundConfig) -> None:
        """Swap in a new configuration (timelocked admin path only)."""
        missing = set(self.config.asset_codes) - set(config.asset_codes)
        if missing:
            raise InvalidInput(f"Assets cannot be dropped from the basket: {sorted(missing)}")
        for asset in config.assets:
            if not self.config.has_asset(asset.code):
                self.custody.add_asset(asset)
        self.config = config

    # ========== Snapshots ==========

    def snapshot(self) -> FundState:
        return FundState(
            fund_id=self.fund_id,
            config=self.config,
            balances=self.custody.all_balances(),
            share_balances=self.shares.holders(),
            high_water_mark=self.high_water_mark,
            last_fee_accrual_at=self.last_fee_accrual_at,
            last_rebalance_at=self.last_rebalance_at,
            emergency_state=self.emergency_state,
        )

    def restore(self, state: FundState) -> None:
        """Reset every field to a previously captured snapshot."""
        if state.fund_id != self.fund_id:
            raise InvalidInput(f"Snapshot belongs to fund {state.fund_id}, not {self.fund_id}")
        self.config = state.config
        self.custody = CustodyLedger(state.config.assets, state.balances)
        self.shares = ShareRegistry(state.share_balances)
        self.high_water_mark = state.high_water_mark
        self.last_fee_accrual_at = state.last_fee_accrual_at
        self.last_rebalance_at = state.last_rebalance_at
        self.emergency_state = state.emergency_state

    @classmethod
    def from_state(cls, state: FundState) -> "FundLedger":
        ledger = cls(state.config, created_at=state.last_fee_accrual_at, fund_id=state.fund_id)
        ledger.restore(state)
        return ledger

    def asset(self, code: str) -> Asset:
        return self.config.asset(code)
