from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Protocol

from basketfund.errors import Unauthorized


class Authorizer(Protocol):
    """Role lookup for callers of administrative operations."""

    def is_manager(self, caller: str) -> bool:
        """Return True if caller manages the fund."""

    def is_guardian(self, caller: str) -> bool:
        """Return True if caller may pause / trip the fund."""


@dataclass(frozen=True)
class RoleAuthorizer:
    """Static role table: one manager, any number of guardians."""

    manager: str
    guardians: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "guardians", frozenset(self.guardians))

    def is_manager(self, caller: str) -> bool:
        return caller == self.manager

    def is_guardian(self, caller: str) -> bool:
        return caller in self.guardians


def require_manager(authorizer: Authorizer, caller: str, action: str) -> None:
    if not authorizer.is_manager(caller):
        raise Unauthorized(f"{action} requires manager role (caller={caller})")


def require_manager_or_guardian(authorizer: Authorizer, caller: str, action: str) -> None:
    if not (authorizer.is_manager(caller) or authorizer.is_guardian(caller)):
        raise Unauthorized(f"{action} requires manager or guardian role (caller={caller})")
