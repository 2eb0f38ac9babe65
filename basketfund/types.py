from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_DOWN, Context, Decimal
from enum import Enum
from typing import Mapping, Optional

BPS_DENOMINATOR = Decimal(10_000)
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Uniform fixed-point scale for prices, NAV and share amounts.
FIXED_POINT_DECIMALS = 18
FIXED_POINT = Decimal(1).scaleb(-FIXED_POINT_DECIMALS)

# Arithmetic context wide enough that 18-decimal amounts never lose digits.
DECIMAL_CONTEXT = Context(prec=60)

# Share price reported (and used for minting) while no shares exist.
BOOTSTRAP_SHARE_PRICE = Decimal("1")

ZERO = Decimal("0")


def to_fixed(value: Decimal) -> Decimal:
    """Quantize to the 18-decimal fixed-point scale, rounding toward zero."""
    return Decimal(value).quantize(FIXED_POINT, rounding=ROUND_DOWN, context=DECIMAL_CONTEXT)


@dataclass(frozen=True)
class Asset:
    code: str
    decimals: int = 18

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError("Asset code must be non-empty")
        if not 0 <= self.decimals <= FIXED_POINT_DECIMALS:
            raise ValueError(f"Asset decimals must be within 0..{FIXED_POINT_DECIMALS}")

    @property
    def unit(self) -> Decimal:
        """Smallest representable amount of this asset."""
        return Decimal(1).scaleb(-self.decimals)

    def quantize(self, amount: Decimal) -> Decimal:
        """Round an amount down to this asset's precision."""
        return Decimal(amount).quantize(self.unit, rounding=ROUND_DOWN, context=DECIMAL_CONTEXT)


@dataclass(frozen=True)
class RawPrice:
    """A value reported by a single price source."""

    price: Decimal
    updated_at: datetime


@dataclass(frozen=True)
class PriceQuote:
    asset: str
    price: Decimal
    valid: bool
    source: Optional[str] = None
    source_index: Optional[int] = None  # position in the fallback order
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class WeightTrade:
    """Planned move of weight (in bps of NAV) from one asset to another."""

    from_asset: str
    to_asset: str
    weight_bps: Decimal


@dataclass(frozen=True)
class TradeFill:
    from_asset: str
    to_asset: str
    amount_in: Decimal
    amount_out: Decimal


@dataclass(frozen=True)
class FeeAccrual:
    management_shares: Decimal = ZERO
    performance_shares: Decimal = ZERO
    performance_fee_value: Decimal = ZERO
    high_water_mark: Optional[Decimal] = None
    accrued_at: Optional[datetime] = None

    @property
    def total_shares(self) -> Decimal:
        return self.management_shares + self.performance_shares


@dataclass(frozen=True)
class RebalanceResult:
    executed_at: datetime
    fills: tuple[TradeFill, ...] = ()
    weights_before: Mapping[str, Decimal] = field(default_factory=dict)
    weights_after: Mapping[str, Decimal] = field(default_factory=dict)


class EmergencyState(str, Enum):
    """Circuit-breaker state of a fund."""

    NORMAL = "NORMAL"
    PAUSED = "PAUSED"
    EMERGENCY = "EMERGENCY"
