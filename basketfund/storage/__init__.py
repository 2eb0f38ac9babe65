"""Fund state stores.

`InMemoryFundStateStore` for tests and single-process use; `SqlFundStateStore`
for anything that must survive a restart.
"""

from .memory import InMemoryFundStateStore
from .sql import SqlFundStateStore, SqlStoreConfig

__all__ = [
    "InMemoryFundStateStore",
    "SqlFundStateStore",
    "SqlStoreConfig",
]
