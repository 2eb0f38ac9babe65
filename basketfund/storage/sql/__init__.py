"""SQL storage via SQLAlchemy Core.

Works with any SQLAlchemy URL (PostgreSQL in production, SQLite in tests).

Notes
- Connection URLs are never logged; they may contain credentials.
- The schema is created on first use (`ensure_schema`).
"""

from .config import SqlStoreConfig
from .stores import SqlFundStateStore

__all__ = ["SqlFundStateStore", "SqlStoreConfig"]
