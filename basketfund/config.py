"""Fund configuration.

A `FundConfig` is created once per fund and owned by its ledger. Fee,
interval and tolerance fields change only through the timelocked
administrative path (see `basketfund.admin`).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Sequence

from basketfund.errors import InvalidInput
from basketfund.types import Asset

TOTAL_WEIGHT_BPS = 10_000

MAX_MANAGEMENT_FEE_BPS = 1_000  # 10% per year
MAX_PERFORMANCE_FEE_BPS = 5_000  # 50% of profit
MAX_EXIT_FEE_BPS = 500
MAX_SLIPPAGE_BPS = 1_000

# Parameters that may be changed through the timelock.
MUTABLE_PARAMETERS = (
    "management_fee_bps",
    "performance_fee_bps",
    "rebalance_interval",
    "weight_tolerance_bps",
    "max_slippage_bps",
    "exit_fee_bps",
)


def validate_target_weights(weights: Mapping[str, int], assets: Sequence[Asset]) -> None:
    """Check that weights cover exactly the basket and sum to 10,000 bps.

    Raises:
        InvalidInput: On mismatched assets, non-positive weights or a wrong sum
    """
    codes = [a.code for a in assets]
    if len(set(codes)) != len(codes):
        raise InvalidInput("Duplicate asset in basket")
    if set(weights) != set(codes):
        raise InvalidInput(
            f"Target weights must cover exactly the basket: weights={sorted(weights)} assets={sorted(codes)}"
        )
    for code, weight in weights.items():
        if not isinstance(weight, int) or isinstance(weight, bool):
            raise InvalidInput(f"Weight for {code} must be an integer number of bps")
        if weight <= 0:
            raise InvalidInput(f"Weight for {code} must be positive")
    total = sum(weights.values())
    if total != TOTAL_WEIGHT_BPS:
        raise InvalidInput(f"Target weights must sum to {TOTAL_WEIGHT_BPS}, got {total}")


def _check_bps(name: str, value: int, upper: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= upper:
        raise InvalidInput(f"{name} must be an integer within 0..{upper}, got {value!r}")


@dataclass(frozen=True)
class FundConfig:
    """Fund parameters.

    Attributes:
        name: Display name of the fund
        symbol: Share ticker
        base_asset: Asset accepted for deposits
        assets: Basket (must include the base asset)
        target_weights: Asset code -> weight in bps (sum 10,000)
        fee_recipient: Holder credited with fee shares and exit fees
        management_fee_bps: Annual management fee
        performance_fee_bps: Share of profit above the high-water mark
        rebalance_interval: Time after which a rebalance is always permitted
        weight_tolerance_bps: Allowed drift per asset
        max_slippage_bps: Slippage bound handed to the trade executor
        exit_fee_bps: Fee on single-asset redemptions
        price_heartbeat: Quote age beyond which emergency mode may trip
        timelock_delay: Delay between proposing and executing admin changes
        min_trade_bps: Planned trades below this weight are skipped
    """

    name: str
    symbol: str
    base_asset: str
    assets: tuple[Asset, ...]
    target_weights: Mapping[str, int]
    fee_recipient: str
    management_fee_bps: int = 200
    performance_fee_bps: int = 2_000
    rebalance_interval: timedelta = timedelta(days=7)
    weight_tolerance_bps: int = 500
    max_slippage_bps: int = 100
    exit_fee_bps: int = 0
    price_heartbeat: timedelta = timedelta(hours=1)
    timelock_delay: timedelta = timedelta(days=2)
    min_trade_bps: int = 1
    _by_code: dict[str, Asset] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "assets", tuple(self.assets))
        object.__setattr__(self, "target_weights", dict(self.target_weights))
        object.__setattr__(self, "_by_code", {a.code: a for a in self.assets})

        if not self.name or not self.symbol:
            raise InvalidInput("Fund name and symbol are required")
        if not self.fee_recipient:
            raise InvalidInput("Fee recipient is required")
        validate_target_weights(self.target_weights, self.assets)
        if self.base_asset not in self._by_code:
            raise InvalidInput(f"Base asset {self.base_asset} is not in the basket")

        _check_bps("management_fee_bps", self.management_fee_bps, MAX_MANAGEMENT_FEE_BPS)
        _check_bps("performance_fee_bps", self.performance_fee_bps, MAX_PERFORMANCE_FEE_BPS)
        _check_bps("weight_tolerance_bps", self.weight_tolerance_bps, TOTAL_WEIGHT_BPS)
        _check_bps("max_slippage_bps", self.max_slippage_bps, MAX_SLIPPAGE_BPS)
        _check_bps("exit_fee_bps", self.exit_fee_bps, MAX_EXIT_FEE_BPS)
        _check_bps("min_trade_bps", self.min_trade_bps, TOTAL_WEIGHT_BPS)
        # A trade floor above the tolerance would skip the trades that fix an out-of-tolerance drift.
        if self.min_trade_bps > self.weight_tolerance_bps:
            raise InvalidInput(
                f"min_trade_bps ({self.min_trade_bps}) must not exceed weight_tolerance_bps "
                f"({self.weight_tolerance_bps})"
            )

        for name in ("rebalance_interval", "price_heartbeat", "timelock_delay"):
            if getattr(self, name) <= timedelta(0):
                raise InvalidInput(f"{name} must be positive")

    @property
    def asset_codes(self) -> tuple[str, ...]:
        return tuple(a.code for a in self.assets)

    def asset(self, code: str) -> Asset:
        """Look up a basket asset.

        Raises:
            InvalidInput: If the asset is not part of the basket
        """
        try:
            return self._by_code[code]
        except KeyError:
            raise InvalidInput(f"Unknown asset: {code}") from None

    def has_asset(self, code: str) -> bool:
        return code in self._by_code

    def with_changes(self, **changes: object) -> "FundConfig":
        """Return a re-validated copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, object]:
        """JSON-serializable representation (used by the state stores)."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "base_asset": self.base_asset,
            "assets": [{"code": a.code, "decimals": a.decimals} for a in self.assets],
            "target_weights": dict(self.target_weights),
            "fee_recipient": self.fee_recipient,
            "management_fee_bps": self.management_fee_bps,
            "performance_fee_bps": self.performance_fee_bps,
            "rebalance_interval": self.rebalance_interval.total_seconds(),
            "weight_tolerance_bps": self.weight_tolerance_bps,
            "max_slippage_bps": self.max_slippage_bps,
            "exit_fee_bps": self.exit_fee_bps,
            "price_heartbeat": self.price_heartbeat.total_seconds(),
            "timelock_delay": self.timelock_delay.total_seconds(),
            "min_trade_bps": self.min_trade_bps,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "FundConfig":
        payload = dict(data)
        payload["assets"] = tuple(Asset(code=a["code"], decimals=int(a["decimals"])) for a in payload["assets"])
        payload["target_weights"] = {k: int(v) for k, v in payload["target_weights"].items()}
        for name in ("rebalance_interval", "price_heartbeat", "timelock_delay"):
            payload[name] = timedelta(seconds=float(payload[name]))
        return cls(**payload)
