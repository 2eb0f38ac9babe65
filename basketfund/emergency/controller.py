"""Emergency controller.

Holds no state of its own: the current mode lives on the ledger so it is
snapshotted, rolled back and persisted together with balances. Inside a
fund transaction, transition audit events are deferred until commit.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Literal, Optional

from basketfund.audit import FundAuditLog, Severity
from basketfund.auth import Authorizer, require_manager_or_guardian
from basketfund.errors import StateViolation
from basketfund.ledger import FundLedger
from basketfund.pricing import PriceAggregator
from basketfund.types import EmergencyState

logger = logging.getLogger(__name__)

AuditHook = Callable[[Callable[[], None]], None]

Operation = Literal[
    "deposit",
    "redeem",
    "redeem_to_single_asset",
    "emergency_redeem",
    "rebalance",
    "accrue_fees",
]

_BLOCKED: dict[EmergencyState, frozenset[str]] = {
    EmergencyState.NORMAL: frozenset({"emergency_redeem"}),
    EmergencyState.PAUSED: frozenset({"deposit", "rebalance", "emergency_redeem"}),
    EmergencyState.EMERGENCY: frozenset({"deposit", "rebalance", "redeem", "redeem_to_single_asset", "accrue_fees"}),
}


@dataclass(frozen=True)
class GateResult:
    ok: bool
    reason: str


class EmergencyController:
    """Gates mutating operations by fund state and drives state transitions.

    Transitions:
    - NORMAL <-> PAUSED: pause / unpause (manager or guardian)
    - any -> EMERGENCY: enable_emergency (manager or guardian) or trip (automatic)
    - EMERGENCY -> NORMAL: disable_emergency (manager or guardian)
    """

    def __init__(self, ledger: FundLedger, authorizer: Authorizer, audit: Optional[FundAuditLog] = None) -> None:
        self._ledger = ledger
        self._authorizer = authorizer
        self._audit = audit or FundAuditLog()
        self._defer_audit: Optional[AuditHook] = None

    @property
    def state(self) -> EmergencyState:
        return self._ledger.emergency_state

    @contextmanager
    def deferred_audit(self, after_commit: AuditHook) -> Iterator[None]:
        """Hand transition audit events to after_commit while the block runs."""
        previous = self._defer_audit
        self._defer_audit = after_commit
        try:
            yield
        finally:
            self._defer_audit = previous

    def check(self, operation: Operation) -> GateResult:
        state = self.state
        if operation in _BLOCKED[state]:
            if operation == "emergency_redeem":
                return GateResult(ok=False, reason="Emergency redemption is only available in EMERGENCY mode")
            return GateResult(ok=False, reason=f"{operation} is not allowed while {state.value}")
        return GateResult(ok=True, reason="ok")

    def require(self, operation: Operation) -> None:
        """Raise StateViolation if operation is blocked in the current state."""
        result = self.check(operation)
        if not result.ok:
            raise StateViolation(result.reason)

    # ========== Transitions ==========

    def pause(self, caller: str, *, at: Optional[datetime] = None) -> None:
        require_manager_or_guardian(self._authorizer, caller, "pause")
        if self.state is not EmergencyState.NORMAL:
            raise StateViolation(f"Cannot pause while {self.state.value}")
        self._transition(EmergencyState.PAUSED, f"Paused by {caller}", severity="warning", at=at)

    def unpause(self, caller: str, *, at: Optional[datetime] = None) -> None:
        require_manager_or_guardian(self._authorizer, caller, "unpause")
        if self.state is not EmergencyState.PAUSED:
            raise StateViolation(f"Cannot unpause while {self.state.value}")
        self._transition(EmergencyState.NORMAL, f"Unpaused by {caller}", severity="info", at=at)

    def enable_emergency(self, caller: str, reason: str = "manual trigger", *, at: Optional[datetime] = None) -> None:
        require_manager_or_guardian(self._authorizer, caller, "enable emergency mode")
        if self.state is EmergencyState.EMERGENCY:
            raise StateViolation("Emergency mode already enabled")
        self._transition(EmergencyState.EMERGENCY, f"Emergency enabled by {caller}: {reason}", at=at)

    def disable_emergency(self, caller: str, *, at: Optional[datetime] = None) -> None:
        require_manager_or_guardian(self._authorizer, caller, "disable emergency mode")
        if self.state is not EmergencyState.EMERGENCY:
            raise StateViolation("Emergency mode is not enabled")
        self._transition(EmergencyState.NORMAL, f"Emergency disabled by {caller}", severity="warning", at=at)

    def trip(self, reason: str, *, at: Optional[datetime] = None) -> bool:
        """Enter EMERGENCY automatically. Returns False if already there."""
        if self.state is EmergencyState.EMERGENCY:
            return False
        self._transition(EmergencyState.EMERGENCY, f"Emergency tripped: {reason}", at=at)
        return True

    def check_price_health(self, prices: PriceAggregator, now: datetime) -> list[str]:
        """Trip into EMERGENCY if any basket asset is stale beyond the heartbeat.

        Returns:
            Stale asset codes (empty if all healthy)
        """
        config = self._ledger.config
        stale = prices.stale_assets(config.asset_codes, now, config.price_heartbeat)
        if stale:
            self.trip(f"prices stale beyond {config.price_heartbeat}: {', '.join(stale)}", at=now)
        return stale

    def _transition(
        self,
        new_state: EmergencyState,
        message: str,
        *,
        severity: Severity = "error",
        at: Optional[datetime] = None,
    ) -> None:
        previous = self.state
        self._ledger.emergency_state = new_state
        if severity == "error":
            logger.error("Fund %s: %s", self._ledger.fund_id, message)
        else:
            logger.warning("Fund %s: %s", self._ledger.fund_id, message)

        def record() -> None:
            self._audit.log_emergency(
                message,
                severity=severity,
                at=at,
                context={"from": previous.value, "to": new_state.value},
            )

        if self._defer_audit is not None:
            self._defer_audit(record)
        else:
            record()
