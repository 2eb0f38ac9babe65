"""Shared test fixtures for pytest.

Provides a three-asset basket fund (X/Y/Z at prices 1/300/15), paper
collaborators and helpers used across multiple test files.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import pytest

from basketfund.auth import RoleAuthorizer
from basketfund.config import FundConfig
from basketfund.engine import Fund
from basketfund.execution import PaperCustody, PaperTradeExecutor
from basketfund.pricing import PriceAggregator, StaticPriceSource
from basketfund.storage import InMemoryFundStateStore
from basketfund.types import Asset

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

BASE_PRICES = {"X": Decimal("1"), "Y": Decimal("300"), "Z": Decimal("15")}


def set_prices(source: StaticPriceSource, at: datetime, prices: Optional[dict[str, Decimal]] = None) -> None:
    """Publish prices on a static source at the given time."""
    for asset, price in (prices or BASE_PRICES).items():
        source.set_price(asset, price, at)


@pytest.fixture
def now() -> datetime:
    return T0


@pytest.fixture
def assets() -> tuple[Asset, ...]:
    return (Asset("X"), Asset("Y"), Asset("Z"))


@pytest.fixture
def fund_config(assets: tuple[Asset, ...]) -> FundConfig:
    """Basket {X: 50%, Y: 30%, Z: 20%} with X as base asset."""
    return FundConfig(
        name="Test Basket",
        symbol="TBF",
        base_asset="X",
        assets=assets,
        target_weights={"X": 5000, "Y": 3000, "Z": 2000},
        fee_recipient="treasury",
        management_fee_bps=200,
        performance_fee_bps=2000,
        rebalance_interval=timedelta(days=7),
        weight_tolerance_bps=500,
        max_slippage_bps=100,
    )


@pytest.fixture
def price_source(now: datetime) -> StaticPriceSource:
    source = StaticPriceSource("primary", max_age=timedelta(hours=1))
    set_prices(source, now)
    return source


@pytest.fixture
def prices(price_source: StaticPriceSource) -> PriceAggregator:
    return PriceAggregator({asset: [price_source] for asset in BASE_PRICES})


@pytest.fixture
def executor(prices: PriceAggregator) -> PaperTradeExecutor:
    return PaperTradeExecutor(prices)


@pytest.fixture
def custody() -> PaperCustody:
    wallets = PaperCustody()
    wallets.fund_wallet("alice", "X", Decimal("1000"))
    wallets.fund_wallet("bob", "X", Decimal("1000"))
    return wallets


@pytest.fixture
def authorizer() -> RoleAuthorizer:
    return RoleAuthorizer(manager="manager", guardians=frozenset({"guardian"}))


@pytest.fixture
def store() -> InMemoryFundStateStore:
    return InMemoryFundStateStore()


@pytest.fixture
def fund(
    fund_config: FundConfig,
    prices: PriceAggregator,
    executor: PaperTradeExecutor,
    custody: PaperCustody,
    authorizer: RoleAuthorizer,
    store: InMemoryFundStateStore,
    now: datetime,
) -> Fund:
    return Fund.create(
        fund_config,
        created_at=now,
        prices=prices,
        executor=executor,
        custody=custody,
        authorizer=authorizer,
        store=store,
        fund_id="fund-1",
    )


@pytest.fixture
def funded(fund: Fund, now: datetime) -> Fund:
    """Fund after alice deposited 100 X."""
    fund.deposit("alice", Decimal("100"), now)
    return fund


@pytest.fixture
def publish_prices(price_source: StaticPriceSource) -> Callable[..., None]:
    """Re-publish (optionally overridden) prices on the primary source at a given time."""

    def _publish(at: datetime, **overrides: Decimal) -> None:
        set_prices(price_source, at, {**BASE_PRICES, **{k: Decimal(v) for k, v in overrides.items()}})

    return _publish
