"""Fund engine: the `Fund` facade plus its execution lock and transactions."""

from .fund import Fund
from .locks import ExecutionLock
from .transaction import LedgerTransaction

__all__ = [
    "ExecutionLock",
    "Fund",
    "LedgerTransaction",
]
