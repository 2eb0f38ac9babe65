from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from basketfund.config import FundConfig
from basketfund.ledger import FundState
from basketfund.persistence import FundStateStore
from basketfund.storage.sql.config import SqlStoreConfig
from basketfund.types import EmergencyState

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS fund_state (
        fund_id TEXT PRIMARY KEY,
        config_json TEXT NOT NULL,
        high_water_mark TEXT NOT NULL,
        total_shares TEXT NOT NULL,
        last_fee_accrual_at TEXT NOT NULL,
        last_rebalance_at TEXT NOT NULL,
        emergency_state TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_balances (
        fund_id TEXT NOT NULL,
        asset TEXT NOT NULL,
        amount TEXT NOT NULL,
        PRIMARY KEY (fund_id, asset)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_share_balances (
        fund_id TEXT NOT NULL,
        holder TEXT NOT NULL,
        shares TEXT NOT NULL,
        PRIMARY KEY (fund_id, holder)
    )
    """,
)


class SqlFundStateStore(FundStateStore):
    """SQLAlchemy-backed fund state store.

    Decimals are stored as TEXT so no precision is lost to the database's
    numeric types; timestamps are ISO 8601 strings with offset. Each save is
    one database transaction.
    """

    def __init__(self, *, config: SqlStoreConfig) -> None:
        self._config = config
        self._engine: Any | None = None
        self._schema_ready = False

    def _require_sqlalchemy(self) -> tuple[Any, Any]:
        try:
            from sqlalchemy import create_engine, text
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("SQLAlchemy is required for SqlFundStateStore. Install the package dependencies.") from exc

        return create_engine, text

    def _get_engine(self) -> Any:
        if self._engine is None:
            create_engine, _ = self._require_sqlalchemy()
            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._config.database_url, echo=self._config.echo, pool_pre_ping=True)
        return self._engine

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()
        with engine.begin() as conn:
            for ddl in _SCHEMA:
                conn.execute(text(ddl))
        self._schema_ready = True
        logger.debug("Fund state schema ready")

    def dispose(self) -> None:
        """Close pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._schema_ready = False

    # ========== FundStateStore ==========

    def save_state(self, *, state: FundState) -> None:
        self.ensure_schema()
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        upsert = text(
            """
            INSERT INTO fund_state (
                fund_id, config_json, high_water_mark, total_shares,
                last_fee_accrual_at, last_rebalance_at, emergency_state
            )
            VALUES (
                :fund_id, :config_json, :high_water_mark, :total_shares,
                :last_fee_accrual_at, :last_rebalance_at, :emergency_state
            )
            ON CONFLICT (fund_id) DO UPDATE SET
                config_json = excluded.config_json,
                high_water_mark = excluded.high_water_mark,
                total_shares = excluded.total_shares,
                last_fee_accrual_at = excluded.last_fee_accrual_at,
                last_rebalance_at = excluded.last_rebalance_at,
                emergency_state = excluded.emergency_state
            """
        )

        with engine.begin() as conn:
            conn.execute(
                upsert,
                {
                    "fund_id": state.fund_id,
                    "config_json": json.dumps(state.config.to_dict(), sort_keys=True),
                    "high_water_mark": str(state.high_water_mark),
                    "total_shares": str(state.total_shares),
                    "last_fee_accrual_at": state.last_fee_accrual_at.isoformat(),
                    "last_rebalance_at": state.last_rebalance_at.isoformat(),
                    "emergency_state": state.emergency_state.value,
                },
            )
            conn.execute(text("DELETE FROM fund_balances WHERE fund_id = :fund_id"), {"fund_id": state.fund_id})
            conn.execute(text("DELETE FROM fund_share_balances WHERE fund_id = :fund_id"), {"fund_id": state.fund_id})

            balance_rows = [
                {"fund_id": state.fund_id, "asset": asset, "amount": str(amount)}
                for asset, amount in state.balances.items()
            ]
            if balance_rows:
                conn.execute(
                    text("INSERT INTO fund_balances (fund_id, asset, amount) VALUES (:fund_id, :asset, :amount)"),
                    balance_rows,
                )

            share_rows = [
                {"fund_id": state.fund_id, "holder": holder, "shares": str(shares)}
                for holder, shares in state.share_balances.items()
            ]
            if share_rows:
                conn.execute(
                    text(
                        "INSERT INTO fund_share_balances (fund_id, holder, shares) VALUES (:fund_id, :holder, :shares)"
                    ),
                    share_rows,
                )

    def load_state(self, *, fund_id: str) -> Optional[FundState]:
        self.ensure_schema()
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        with engine.begin() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT config_json, high_water_mark, total_shares,
                           last_fee_accrual_at, last_rebalance_at, emergency_state
                    FROM fund_state
                    WHERE fund_id = :fund_id
                    """
                ),
                {"fund_id": fund_id},
            ).fetchone()
            if row is None:
                return None
            balance_rows = conn.execute(
                text("SELECT asset, amount FROM fund_balances WHERE fund_id = :fund_id"),
                {"fund_id": fund_id},
            ).fetchall()
            share_rows = conn.execute(
                text("SELECT holder, shares FROM fund_share_balances WHERE fund_id = :fund_id"),
                {"fund_id": fund_id},
            ).fetchall()

        state = FundState(
            fund_id=fund_id,
            config=FundConfig.from_dict(json.loads(row[0])),
            balances={asset: Decimal(amount) for asset, amount in balance_rows},
            share_balances={holder: Decimal(shares) for holder, shares in share_rows},
            high_water_mark=Decimal(row[1]),
            last_fee_accrual_at=datetime.fromisoformat(row[3]),
            last_rebalance_at=datetime.fromisoformat(row[4]),
            emergency_state=EmergencyState(row[5]),
        )
        if state.total_shares != Decimal(row[2]):
            logger.warning(
                "Fund %s: stored total supply %s disagrees with holder balances %s",
                fund_id,
                row[2],
                state.total_shares,
            )
        return state

    def list_fund_ids(self) -> Sequence[str]:
        self.ensure_schema()
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        with engine.begin() as conn:
            rows = conn.execute(text("SELECT fund_id FROM fund_state ORDER BY fund_id")).fetchall()
        return [r[0] for r in rows]
