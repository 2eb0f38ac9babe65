"""Fund facade.

`Fund` wires the ledger, price aggregator, fee engine, rebalance planner,
emergency controller and the external collaborators together, and is the
only place that mutates a `FundLedger`.

Every mutating operation:
1. takes the execution lock exclusively (re-entry from the same thread fails)
2. runs inside a `LedgerTransaction` (all-or-nothing, persisted on commit)
3. is audited on commit, or logged as rejected on abort

Read-only queries take the lock shared and never observe a half-applied
operation.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, localcontext
from typing import Any, Iterator, Mapping, Optional, Sequence

from basketfund.admin import AdminTimelock, PendingChange
from basketfund.audit import FundAuditLog
from basketfund.auth import Authorizer, require_manager
from basketfund.config import FundConfig
from basketfund.emergency import EmergencyController
from basketfund.engine.locks import ExecutionLock
from basketfund.engine.transaction import LedgerTransaction
from basketfund.errors import FundError, InvalidInput, PriceUnavailable, SlippageExceeded, StateViolation
from basketfund.execution import Custody, TradeExecutor
from basketfund.fees import FeeAccrualEngine
from basketfund.ledger import FundLedger, FundState, current_weights, shares_for_value
from basketfund.ledger.nav import PriceFn
from basketfund.persistence import FundStateStore
from basketfund.pricing import PriceAggregator, PriceSource
from basketfund.rebalance import RebalancePlanner, is_rebalance_due, validate_rebalance
from basketfund.types import (
    BPS_DENOMINATOR,
    DECIMAL_CONTEXT,
    ZERO,
    Asset,
    EmergencyState,
    FeeAccrual,
    RebalanceResult,
    TradeFill,
    to_fixed,
)

logger = logging.getLogger(__name__)

# Operations whose PriceUnavailable abort may move the fund into EMERGENCY.
_PRICE_DEGRADING_OPERATIONS = frozenset({"deposit", "redeem", "redeem_to_single_asset"})


def _positive_shares(shares: Decimal) -> Decimal:
    value = to_fixed(Decimal(shares))
    if value <= 0:
        raise InvalidInput("Share amount must be positive")
    return value


class Fund:
    """A pooled-asset basket fund.

    Construct with `Fund.create(...)` for a new fund or `Fund.restore(...)`
    to reload one from a state store. Times are supplied by the caller as
    timezone-aware datetimes; the fund never reads the clock itself.
    """

    def __init__(
        self,
        ledger: FundLedger,
        *,
        prices: PriceAggregator,
        executor: TradeExecutor,
        custody: Custody,
        authorizer: Authorizer,
        store: Optional[FundStateStore] = None,
        audit: Optional[FundAuditLog] = None,
    ) -> None:
        missing = [code for code in ledger.config.asset_codes if code not in prices.assets]
        if missing:
            raise InvalidInput(f"No price sources registered for basket assets: {missing}")

        self._ledger = ledger
        self._prices = prices
        self._executor = executor
        self._custody = custody
        self._authorizer = authorizer
        self._store = store
        self._audit = audit or FundAuditLog()

        self._lock = ExecutionLock()
        self._fees = FeeAccrualEngine()
        self._planner = RebalancePlanner()
        self._controller = EmergencyController(ledger, authorizer, self._audit)
        self._timelock = AdminTimelock()

    @classmethod
    def create(
        cls,
        config: FundConfig,
        *,
        created_at: datetime,
        prices: PriceAggregator,
        executor: TradeExecutor,
        custody: Custody,
        authorizer: Authorizer,
        store: Optional[FundStateStore] = None,
        audit: Optional[FundAuditLog] = None,
        fund_id: Optional[str] = None,
    ) -> "Fund":
        """Create an empty fund and persist its initial state."""
        ledger = FundLedger(config, created_at=created_at, fund_id=fund_id)
        fund = cls(
            ledger,
            prices=prices,
            executor=executor,
            custody=custody,
            authorizer=authorizer,
            store=store,
            audit=audit,
        )
        if store is not None:
            store.save_state(state=ledger.snapshot())
        logger.info("Created fund %s (%s, %s)", ledger.fund_id, config.name, config.symbol)
        return fund

    @classmethod
    def restore(
        cls,
        store: FundStateStore,
        fund_id: str,
        *,
        prices: PriceAggregator,
        executor: TradeExecutor,
        custody: Custody,
        authorizer: Authorizer,
        audit: Optional[FundAuditLog] = None,
    ) -> "Fund":
        """Reload a fund from its last committed state.

        Raises:
            InvalidInput: If the store holds no state for fund_id
        """
        state = store.load_state(fund_id=fund_id)
        if state is None:
            raise InvalidInput(f"No persisted state for fund {fund_id}")
        logger.info("Restored fund %s (state=%s)", fund_id, state.emergency_state.value)
        return cls(
            FundLedger.from_state(state),
            prices=prices,
            executor=executor,
            custody=custody,
            authorizer=authorizer,
            store=store,
            audit=audit,
        )

    # ========== Accessors ==========

    @property
    def fund_id(self) -> str:
        return self._ledger.fund_id

    # Ledger-backed accessors read under the shared lock.

    @property
    def config(self) -> FundConfig:
        with self._lock.shared("config"):
            return self._ledger.config

    @property
    def state(self) -> EmergencyState:
        with self._lock.shared("state"):
            return self._ledger.emergency_state

    @property
    def audit(self) -> FundAuditLog:
        return self._audit

    @property
    def total_shares(self) -> Decimal:
        with self._lock.shared("total_shares"):
            return self._ledger.total_shares

    @property
    def high_water_mark(self) -> Decimal:
        with self._lock.shared("high_water_mark"):
            return self._ledger.high_water_mark

    @property
    def last_rebalance_at(self) -> datetime:
        with self._lock.shared("last_rebalance_at"):
            return self._ledger.last_rebalance_at

    @property
    def last_fee_accrual_at(self) -> datetime:
        with self._lock.shared("last_fee_accrual_at"):
            return self._ledger.last_fee_accrual_at

    @property
    def pending_changes(self) -> list[PendingChange]:
        with self._lock.shared("pending_changes"):
            return self._timelock.pending

    def share_balance(self, holder: str) -> Decimal:
        with self._lock.shared("share_balance"):
            return self._ledger.shares.balance_of(holder)

    def balances(self) -> dict[str, Decimal]:
        """Custody balance per basket asset."""
        with self._lock.shared("balances"):
            return self._ledger.custody.all_balances()

    def snapshot(self) -> FundState:
        with self._lock.shared("snapshot"):
            return self._ledger.snapshot()

    # ========== Queries ==========

    def calculate_nav(self, now: datetime) -> Decimal:
        """Basket value at current prices.

        Raises:
            PriceUnavailable: If any basket asset lacks a valid price
        """
        with self._query("calculate_nav"):
            return self._ledger.compute_nav(self._pricer(now))

    def get_share_price(self, now: datetime) -> Decimal:
        """NAV per share (the bootstrap value 1 while no shares exist)."""
        with self._query("get_share_price"):
            return self._ledger.compute_share_price(self._pricer(now))

    def current_weights(self, now: datetime) -> dict[str, Decimal]:
        """Current weight of every basket asset in basis points."""
        with self._query("current_weights"):
            return self._ledger.current_weights(self._pricer(now))

    def can_rebalance(self, now: datetime) -> bool:
        """True if a rebalance would be accepted right now.

        Requires NORMAL state, a non-empty basket and a trigger (interval
        elapsed or drift above tolerance).
        """
        with self._query("can_rebalance"):
            if not self._controller.check("rebalance").ok:
                return False
            weights = self._rebalance_trigger_weights(now)
            return weights is not None

    # ========== Deposits / redemptions ==========

    def deposit(self, investor: str, amount: Decimal, now: datetime) -> Decimal:
        """Deposit base asset and mint shares.

        Args:
            investor: Account the base asset is pulled from and shares are minted to
            amount: Base asset amount
            now: Current time

        Returns:
            Shares minted

        Raises:
            InvalidInput: If amount is not positive or too small to mint shares
            StateViolation: If the fund is PAUSED or in EMERGENCY
            PriceUnavailable: If any basket price is missing
            SlippageExceeded: If an allocation swap falls short
            InsufficientBalance: If the investor cannot cover the transfer
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidInput("Deposit amount must be positive")

        with self._mutation("deposit", now) as tx:
            self._controller.require("deposit")
            config = self._ledger.config
            base = config.asset(config.base_asset)
            amount = base.quantize(amount)
            if amount <= 0:
                raise InvalidInput(f"Deposit amount is below {base.code} precision")

            tx.transfer_in(base.code, investor, amount)

            price_of = self._pricer(now)
            self._fees.accrue(self._ledger, price_of, now)
            total = self._ledger.total_shares
            nav_before = self._ledger.compute_nav(price_of) if total > 0 else ZERO
            value = to_fixed(amount * price_of(base.code))
            shares = shares_for_value(value, total, nav_before)
            if shares <= 0:
                raise InvalidInput("Deposit is too small to mint any shares")

            self._ledger.custody.credit(base.code, amount)
            self._ledger.shares.mint(investor, shares)
            fills = self._allocate(base, amount, now)

            tx.after_commit(
                lambda: self._audit.log_operation(
                    "deposit",
                    f"{investor} deposited {amount} {base.code} for {shares} shares",
                    at=now,
                    context={"investor": investor, "amount": amount, "shares": shares, "swaps": len(fills)},
                )
            )

        logger.info("Fund %s: %s deposited %s %s, minted %s shares", self.fund_id, investor, amount, base.code, shares)
        return shares

    def redeem(self, holder: str, shares: Decimal, now: datetime) -> dict[str, Decimal]:
        """Burn shares for a balance-proportional slice of every basket asset.

        Allowed while PAUSED; refused in EMERGENCY (use `emergency_redeem`).

        Returns:
            Amount of each asset transferred to the holder
        """
        shares = _positive_shares(shares)
        with self._mutation("redeem", now) as tx:
            self._controller.require("redeem")
            self._require_share_balance(holder, shares)
            self._fees.accrue(self._ledger, self._pricer(now), now)
            payout = self._withdraw(holder, shares)
            for asset, amount in payout.items():
                if amount > 0:
                    tx.transfer_out(asset, holder, amount)
            tx.after_commit(
                lambda: self._audit.log_operation(
                    "redeem",
                    f"{holder} redeemed {shares} shares",
                    at=now,
                    context={"holder": holder, "shares": shares, "payout": payout},
                )
            )

        logger.info("Fund %s: %s redeemed %s shares", self.fund_id, holder, shares)
        return payout

    def redeem_to_single_asset(
        self,
        holder: str,
        shares: Decimal,
        output_asset: str,
        now: datetime,
        min_amount_out: Optional[Decimal] = None,
    ) -> Decimal:
        """Redeem shares and receive everything converted into one asset.

        The exit fee (bps of the converted total) is paid to the fee recipient.

        Returns:
            Amount of output_asset received by the holder, net of the exit fee

        Raises:
            SlippageExceeded: If a conversion swap or the net amount falls below its minimum
        """
        shares = _positive_shares(shares)
        with self._mutation("redeem_to_single_asset", now) as tx:
            self._controller.require("redeem_to_single_asset")
            config = self._ledger.config
            out_asset = config.asset(output_asset)
            self._require_share_balance(holder, shares)
            self._fees.accrue(self._ledger, self._pricer(now), now)

            amounts = self._proportional_amounts(shares)
            self._ledger.shares.burn(holder, shares)

            gross = amounts[out_asset.code]
            for code, amount in amounts.items():
                if code != out_asset.code and amount > 0:
                    gross += self._swap(code, out_asset.code, amount, now).amount_out

            exit_fee = out_asset.quantize(gross * Decimal(config.exit_fee_bps) / BPS_DENOMINATOR)
            net = gross - exit_fee
            if min_amount_out is not None and net < Decimal(min_amount_out):
                raise SlippageExceeded(amount_out=net, min_out=Decimal(min_amount_out), context="redeem_to_single_asset")

            if gross > 0:
                self._ledger.custody.debit(out_asset.code, gross)
            if net > 0:
                tx.transfer_out(out_asset.code, holder, net)
            if exit_fee > 0:
                tx.transfer_out(out_asset.code, config.fee_recipient, exit_fee)

            tx.after_commit(
                lambda: self._audit.log_operation(
                    "redeem",
                    f"{holder} redeemed {shares} shares for {net} {out_asset.code}",
                    at=now,
                    context={
                        "holder": holder,
                        "shares": shares,
                        "output_asset": out_asset.code,
                        "amount_out": net,
                        "exit_fee": exit_fee,
                    },
                )
            )

        logger.info("Fund %s: %s redeemed %s shares for %s %s", self.fund_id, holder, shares, net, out_asset.code)
        return net

    def emergency_redeem(self, holder: str, shares: Decimal, now: datetime) -> dict[str, Decimal]:
        """Price-independent proportional withdrawal; only available in EMERGENCY.

        No fees are accrued and no prices are read.
        """
        shares = _positive_shares(shares)
        with self._mutation("emergency_redeem", now) as tx:
            self._controller.require("emergency_redeem")
            self._require_share_balance(holder, shares)
            payout = self._withdraw(holder, shares)
            for asset, amount in payout.items():
                if amount > 0:
                    tx.transfer_out(asset, holder, amount)
            tx.after_commit(
                lambda: self._audit.log_operation(
                    "redeem",
                    f"{holder} emergency-redeemed {shares} shares",
                    at=now,
                    context={"holder": holder, "shares": shares, "payout": payout, "emergency": True},
                )
            )

        logger.warning("Fund %s: %s emergency-redeemed %s shares", self.fund_id, holder, shares)
        return payout

    def transfer_shares(self, sender: str, recipient: str, shares: Decimal, now: datetime) -> None:
        """Move shares between holders; allowed in every state."""
        shares = _positive_shares(shares)
        with self._mutation("transfer_shares", now) as tx:
            self._ledger.shares.transfer(sender, recipient, shares)
            tx.after_commit(
                lambda: self._audit.log_operation(
                    "share_transfer",
                    f"{sender} transferred {shares} shares to {recipient}",
                    at=now,
                    context={"sender": sender, "recipient": recipient, "shares": shares},
                )
            )

    # ========== Fees ==========

    def accrue_fees(self, now: datetime) -> FeeAccrual:
        """Accrue management and performance fees up to now (callable by anyone)."""
        with self._mutation("accrue_fees", now) as tx:
            self._controller.require("accrue_fees")
            accrual = self._fees.accrue(self._ledger, self._pricer(now), now)
            if accrual.total_shares > 0:
                tx.after_commit(
                    lambda: self._audit.log_operation(
                        "fee_accrual",
                        f"Minted {accrual.total_shares} fee shares",
                        at=now,
                        context={
                            "management_shares": accrual.management_shares,
                            "performance_shares": accrual.performance_shares,
                            "high_water_mark": accrual.high_water_mark,
                        },
                    )
                )
        return accrual

    # ========== Rebalance ==========

    def rebalance(self, caller: str, now: datetime) -> RebalanceResult:
        """Trade the basket back to its target weights.

        Manager only, NORMAL state only, and only when the interval has
        elapsed or some asset drifts beyond tolerance. If any asset is still
        outside tolerance afterwards the whole rebalance is discarded.

        Raises:
            Unauthorized: If caller is not the manager
            StateViolation: If not NORMAL, no trigger holds, or drift remains
            SlippageExceeded: If a trade output falls below its minimum
        """
        with self._mutation("rebalance", now) as tx:
            require_manager(self._authorizer, caller, "rebalance")
            self._controller.require("rebalance")
            config = self._ledger.config
            price_of = self._pricer(now)

            before = self._rebalance_trigger_weights(now)
            if before is None:
                raise StateViolation("Rebalance not due: interval not elapsed and drift within tolerance")
            nav = self._ledger.compute_nav(price_of)

            fills: list[TradeFill] = []
            with self._planner.cycle() as planner:
                trades = planner.plan(
                    before, config.target_weights, config.weight_tolerance_bps, Decimal(config.min_trade_bps)
                )
                planner.start_execution()
                for trade in trades:
                    source = config.asset(trade.from_asset)
                    value = to_fixed(nav * trade.weight_bps / BPS_DENOMINATOR)
                    amount_in = source.quantize(value / price_of(source.code))
                    amount_in = min(amount_in, self._ledger.custody.get_balance(source.code))
                    if amount_in <= 0:
                        continue
                    fills.append(self._swap(source.code, trade.to_asset, amount_in, now))

                after = self._ledger.current_weights(price_of)
                if validate_rebalance(after, config.target_weights, config.weight_tolerance_bps):
                    raise StateViolation("Drift still exceeds tolerance after rebalance")

            self._ledger.last_rebalance_at = now
            result = RebalanceResult(executed_at=now, fills=tuple(fills), weights_before=before, weights_after=after)
            tx.after_commit(
                lambda: self._audit.log_operation(
                    "rebalance",
                    f"Rebalanced with {len(fills)} trades",
                    at=now,
                    context={"caller": caller, "weights_before": before, "weights_after": after},
                )
            )

        logger.info("Fund %s: rebalanced with %d trades", self.fund_id, len(result.fills))
        return result

    # ========== Emergency controls ==========

    def pause(self, caller: str, now: datetime) -> None:
        with self._mutation("pause", now):
            self._controller.pause(caller, at=now)

    def unpause(self, caller: str, now: datetime) -> None:
        with self._mutation("unpause", now):
            self._controller.unpause(caller, at=now)

    def enable_emergency_mode(self, caller: str, now: datetime, reason: str = "manual trigger") -> None:
        with self._mutation("enable_emergency_mode", now):
            self._controller.enable_emergency(caller, reason, at=now)

    def disable_emergency_mode(self, caller: str, now: datetime) -> None:
        """Return to NORMAL. The fee clock restarts at now; no management fee is charged for the emergency period."""
        with self._mutation("disable_emergency_mode", now):
            self._controller.disable_emergency(caller, at=now)
            if now > self._ledger.last_fee_accrual_at:
                self._ledger.last_fee_accrual_at = now

    def check_price_health(self, now: datetime) -> list[str]:
        """Enter EMERGENCY if any basket price is stale beyond the heartbeat (callable by anyone).

        Returns:
            Stale asset codes
        """
        with self._mutation("check_price_health", now):
            return self._controller.check_price_health(self._prices, now)

    # ========== Timelocked administration ==========

    def propose_parameter_change(self, caller: str, changes: Mapping[str, Any], now: datetime) -> PendingChange:
        with self._lock.exclusive("propose_parameter_change"):
            require_manager(self._authorizer, caller, "propose parameter change")
            change = self._timelock.propose_parameters(self._ledger.config, changes, now)
            self._audit_admin(f"Proposed parameter change {change.change_id}", change, now)
            return change

    def propose_asset_addition(
        self,
        caller: str,
        asset: Asset,
        target_weights: Mapping[str, int],
        price_sources: Sequence[PriceSource],
        now: datetime,
    ) -> PendingChange:
        with self._lock.exclusive("propose_asset_addition"):
            require_manager(self._authorizer, caller, "propose asset addition")
            change = self._timelock.propose_asset_addition(self._ledger.config, asset, target_weights, price_sources, now)
            self._audit_admin(f"Proposed adding {asset.code} ({change.change_id})", change, now)
            return change

    def cancel_change(self, caller: str, change_id: str, now: datetime) -> PendingChange:
        with self._lock.exclusive("cancel_change"):
            require_manager(self._authorizer, caller, "cancel change")
            change = self._timelock.cancel(change_id)
            self._audit_admin(f"Cancelled change {change_id}", change, now)
            return change

    def execute_change(self, caller: str, change_id: str, now: datetime) -> FundConfig:
        """Apply a proposed change whose timelock has expired.

        Raises:
            Unauthorized: If caller is not the manager
            StateViolation: If the change is still timelocked
            InvalidInput: If the change no longer validates against the current config
        """
        with self._mutation("execute_change", now) as tx:
            require_manager(self._authorizer, caller, "execute change")
            change = self._timelock.take_ready(change_id, now)
            tx.on_rollback(f"requeue change {change_id}", lambda: self._timelock.requeue(change))

            new_config = change.apply(self._ledger.config)
            if change.kind == "add_asset":
                assert change.asset is not None
                code = change.asset.code
                if code not in self._prices.assets:
                    self._prices.add_asset(code, change.price_sources)
                    tx.on_rollback(f"unregister {code} price sources", lambda: self._prices.remove_asset(code))
            self._ledger.replace_config(new_config)
            tx.after_commit(lambda: self._audit_admin(f"Executed change {change_id}", change, now))

        logger.info("Fund %s: executed %s change %s", self.fund_id, change.kind, change_id)
        return new_config

    # ========== Internals ==========

    @contextmanager
    def _query(self, name: str) -> Iterator[None]:
        with self._lock.shared(name), localcontext(DECIMAL_CONTEXT):
            yield

    @contextmanager
    def _mutation(self, operation: str, now: datetime) -> Iterator[LedgerTransaction]:
        with self._lock.exclusive(operation), localcontext(DECIMAL_CONTEXT):
            try:
                with LedgerTransaction(
                    self._ledger, operation=operation, custody=self._custody, store=self._store
                ) as tx, self._controller.deferred_audit(tx.after_commit):
                    yield tx
            except FundError as exc:
                logger.warning("Fund %s: %s aborted: %s", self.fund_id, operation, exc)
                self._audit.log_rejected(operation, str(exc), at=now, context={"error": type(exc).__name__})
                if isinstance(exc, PriceUnavailable) and operation in _PRICE_DEGRADING_OPERATIONS:
                    self._degrade_on_price_failure(now)
                raise

    def _degrade_on_price_failure(self, now: datetime) -> None:
        """After a price-driven abort, trip EMERGENCY if prices are stale beyond the heartbeat."""
        with LedgerTransaction(
            self._ledger, operation="degrade", custody=self._custody, store=self._store
        ) as tx, self._controller.deferred_audit(tx.after_commit):
            self._controller.check_price_health(self._prices, now)

    def _pricer(self, now: datetime) -> PriceFn:
        def price_of(asset: str) -> Decimal:
            return self._prices.get_price(asset, now)

        return price_of

    def _rebalance_trigger_weights(self, now: datetime) -> Optional[dict[str, Decimal]]:
        """Current weights if a rebalance trigger holds, else None."""
        config = self._ledger.config
        values = self._ledger.asset_values(self._pricer(now))
        nav = sum(values.values(), ZERO)
        if nav <= 0:
            return None
        weights = current_weights(values, nav)
        due = is_rebalance_due(
            now=now,
            last_rebalance_at=self._ledger.last_rebalance_at,
            interval=config.rebalance_interval,
            current=weights,
            target=config.target_weights,
            tolerance_bps=config.weight_tolerance_bps,
        )
        return weights if due else None

    def _require_share_balance(self, holder: str, shares: Decimal) -> None:
        balance = self._ledger.shares.balance_of(holder)
        if shares > balance:
            raise InvalidInput(f"{holder} holds {balance} shares, cannot redeem {shares}")

    def _proportional_amounts(self, shares: Decimal) -> dict[str, Decimal]:
        """balance[asset] * shares / totalShares for every asset, rounded down."""
        total = self._ledger.total_shares
        amounts = {
            code: self._ledger.asset(code).quantize(balance * shares / total)
            for code, balance in self._ledger.custody.all_balances().items()
        }
        if not any(amount > 0 for amount in amounts.values()):
            raise InvalidInput(f"Redeeming {shares} shares is too small to pay out any asset")
        return amounts

    def _withdraw(self, holder: str, shares: Decimal) -> dict[str, Decimal]:
        """Burn shares and debit the proportional basket slice from custody."""
        payout = self._proportional_amounts(shares)
        self._ledger.shares.burn(holder, shares)
        for code, amount in payout.items():
            if amount > 0:
                self._ledger.custody.debit(code, amount)
        return payout

    def _allocate(self, base: Asset, amount: Decimal, now: datetime) -> list[TradeFill]:
        """Swap the deposited base asset into the basket per target weights."""
        config = self._ledger.config
        fills = []
        for asset in config.assets:
            if asset.code == base.code:
                continue
            portion = base.quantize(amount * Decimal(config.target_weights[asset.code]) / BPS_DENOMINATOR)
            if portion <= 0:
                continue
            fills.append(self._swap(base.code, asset.code, portion, now))
        return fills

    def _swap(self, from_asset: str, to_asset: str, amount_in: Decimal, now: datetime) -> TradeFill:
        """Swap fund custody from one asset into another under the slippage bound.

        The executor enforces max_slippage_bps itself; the fund re-checks the
        output against its own minimum computed from validated prices.
        """
        config = self._ledger.config
        target = config.asset(to_asset)
        expected = to_fixed(amount_in * self._prices.get_price(from_asset, now) / self._prices.get_price(to_asset, now))
        min_out = target.quantize(
            expected * (BPS_DENOMINATOR - Decimal(config.max_slippage_bps)) / BPS_DENOMINATOR
        )

        self._ledger.custody.debit(from_asset, amount_in)
        amount_out = Decimal(
            self._executor.swap(from_asset, to_asset, amount_in, config.max_slippage_bps, now=now)
        )
        if amount_out < min_out:
            raise SlippageExceeded(amount_out=amount_out, min_out=min_out, context=f"{from_asset}->{to_asset}")

        received = target.quantize(amount_out)
        if received > 0:
            self._ledger.custody.credit(to_asset, received)
        logger.debug("Swapped %s %s -> %s %s", amount_in, from_asset, received, to_asset)
        return TradeFill(from_asset=from_asset, to_asset=to_asset, amount_in=amount_in, amount_out=received)

    def _audit_admin(self, message: str, change: PendingChange, now: datetime) -> None:
        self._audit.log_operation(
            "admin",
            message,
            at=now,
            context={"change_id": change.change_id, "kind": change.kind, "eta": change.eta},
        )
