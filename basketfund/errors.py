"""Error kinds raised by fund operations.

Every mutating operation aborts atomically on any of these.
"""

from __future__ import annotations


class FundError(Exception):
    """Base class for all fund errors."""


class InvalidInput(FundError, ValueError):
    """Zero/negative amount, unknown asset, malformed weights, ..."""


class Unauthorized(FundError):
    """Caller lacks the role required by the operation."""


class StateViolation(FundError):
    """Operation not allowed in the current fund state."""


class ReentrancyError(StateViolation):
    """A mutating operation was invoked while another one was running on the same thread."""


class PriceUnavailable(FundError):
    """No valid quote for a required asset."""

    def __init__(self, asset: str, reason: str = "no valid quote") -> None:
        super().__init__(f"Price unavailable for {asset}: {reason}")
        self.asset = asset


class SlippageExceeded(FundError):
    """Trade output fell below the configured minimum."""

    def __init__(self, *, amount_out, min_out, context: str = "") -> None:
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}amount out {amount_out} below minimum {min_out}")
        self.amount_out = amount_out
        self.min_out = min_out


class InsufficientBalance(FundError, ValueError):
    """Custody or share balance cannot cover a transfer."""
