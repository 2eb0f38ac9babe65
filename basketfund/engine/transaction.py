"""All-or-nothing wrapper around a single fund operation.

A `LedgerTransaction` snapshots the ledger on entry. External custody
transfers made through it register a compensating transfer. On any
exception the snapshot is restored, compensations run newest first, and
the exception propagates. On success the new state is persisted and the
after-commit callbacks run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from types import TracebackType
from typing import Callable, Optional

from basketfund.execution import Custody
from basketfund.ledger import FundLedger, FundState
from basketfund.persistence import FundStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Compensation:
    description: str
    action: Callable[[], None]


class LedgerTransaction:
    """Context manager for one mutating operation.

    Example:
        with LedgerTransaction(ledger, operation="redeem", custody=custody, store=store) as tx:
            ledger.shares.burn(holder, shares)
            tx.transfer_out("X", holder, amount)
    """

    def __init__(
        self,
        ledger: FundLedger,
        *,
        operation: str,
        custody: Custody,
        store: Optional[FundStateStore] = None,
    ) -> None:
        self._ledger = ledger
        self._operation = operation
        self._custody = custody
        self._store = store
        self._snapshot: Optional[FundState] = None
        self._compensations: list[Compensation] = []
        self._after_commit: list[Callable[[], None]] = []

    @property
    def snapshot(self) -> FundState:
        if self._snapshot is None:
            raise RuntimeError("Transaction has not started")
        return self._snapshot

    def __enter__(self) -> "LedgerTransaction":
        self._snapshot = self._ledger.snapshot()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        if exc_type is not None:
            self._rollback()
            return False

        try:
            if self._store is not None:
                self._store.save_state(state=self._ledger.snapshot())
        except BaseException:
            logger.error("Persisting %s failed; rolling back", self._operation)
            self._rollback()
            raise

        for callback in self._after_commit:
            callback()
        return False

    # ========== External effects ==========

    def transfer_in(self, asset: str, source: str, amount: Decimal) -> None:
        """Pull assets into fund custody; undone by returning them to source."""
        self._custody.transfer_in(asset, source, amount)
        self.on_rollback(
            f"return {amount} {asset} to {source}",
            lambda: self._custody.transfer_out(asset, source, amount),
        )

    def transfer_out(self, asset: str, destination: str, amount: Decimal) -> None:
        """Send assets out of fund custody; undone by pulling them back."""
        self._custody.transfer_out(asset, destination, amount)
        self.on_rollback(
            f"reclaim {amount} {asset} from {destination}",
            lambda: self._custody.transfer_in(asset, destination, amount),
        )

    def on_rollback(self, description: str, action: Callable[[], None]) -> None:
        self._compensations.append(Compensation(description=description, action=action))

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    # ========== Rollback ==========

    def _rollback(self) -> None:
        self._ledger.restore(self.snapshot)
        for compensation in reversed(self._compensations):
            try:
                compensation.action()
            except Exception:
                # Keep unwinding; the original error is what the caller sees.
                logger.exception("Compensation failed during %s rollback: %s", self._operation, compensation.description)
        if self._compensations:
            logger.warning("Rolled back %s (%d compensations)", self._operation, len(self._compensations))
