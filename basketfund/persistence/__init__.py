"""Persistence boundary.

Protocols only. Concrete stores (in-memory, SQL via SQLAlchemy) live in
`basketfund.storage`.
"""

from .interfaces import FundStateStore

__all__ = ["FundStateStore"]
