from __future__ import annotations

from typing import Optional, Protocol, Sequence

from basketfund.ledger import FundState


class FundStateStore(Protocol):
    def save_state(self, *, state: FundState) -> None:
        """Persist a complete fund snapshot, replacing any previous one for the same fund."""

    def load_state(self, *, fund_id: str) -> Optional[FundState]:
        """Fetch the latest snapshot for a fund, or None if it was never saved."""

    def list_fund_ids(self) -> Sequence[str]:
        """Identifiers of every persisted fund."""
