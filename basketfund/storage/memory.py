from __future__ import annotations

import threading
from typing import Optional, Sequence

from basketfund.ledger import FundState
from basketfund.persistence import FundStateStore


class InMemoryFundStateStore(FundStateStore):
    """Keeps the latest snapshot per fund in a dict.

    Snapshots are immutable, so storing the object itself is safe.
    """

    def __init__(self) -> None:
        self._states: dict[str, FundState] = {}
        self._lock = threading.Lock()
        self.save_count = 0

    def save_state(self, *, state: FundState) -> None:
        with self._lock:
            self._states[state.fund_id] = state
            self.save_count += 1

    def load_state(self, *, fund_id: str) -> Optional[FundState]:
        with self._lock:
            return self._states.get(fund_id)

    def list_fund_ids(self) -> Sequence[str]:
        with self._lock:
            return sorted(self._states)
