"""Audit trail for fund operations.

Provides a structured event format for every committed operation, every
rejection and every circuit-breaker transition, with enough context to
replay or debug what happened.

All timestamps use timezone-aware UTC datetimes for consistency.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Mapping, Optional

EventType = Literal[
    "deposit",
    "redeem",
    "fee_accrual",
    "rebalance",
    "share_transfer",
    "emergency",
    "admin",
    "operation_rejected",
]

Severity = Literal["debug", "info", "warning", "error"]


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class AuditEvent:
    """Structured audit event for fund operations."""

    event_type: EventType
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: Severity = "info"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        result["context"] = _jsonable(self.context)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEvent:
        """Create from dictionary."""
        data = dict(data)
        timestamp_value = data.get("timestamp")
        if isinstance(timestamp_value, str):
            ts = timestamp_value
            # Normalize common ISO 8601 variant with trailing 'Z' (UTC)
            if ts.endswith("Z"):
                ts = ts[:-1] + "+00:00"
            try:
                data["timestamp"] = datetime.fromisoformat(ts)
            except ValueError:
                data.pop("timestamp", None)
        return cls(**data)


class FundAuditLog:
    """In-memory audit log for one fund."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        self.events.append(event)

    def log_operation(
        self,
        event_type: EventType,
        message: str,
        *,
        at: Optional[datetime] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a committed operation."""
        self.log(
            AuditEvent(
                event_type=event_type,
                message=message,
                timestamp=at or datetime.now(timezone.utc),
                context=dict(context or {}),
            )
        )

    def log_rejected(
        self,
        operation: str,
        reason: str,
        *,
        at: Optional[datetime] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an aborted or refused operation."""
        self.log(
            AuditEvent(
                event_type="operation_rejected",
                message=f"{operation} rejected: {reason}",
                timestamp=at or datetime.now(timezone.utc),
                severity="warning",
                context={"operation": operation, "reason": reason, **(context or {})},
            )
        )

    def log_emergency(
        self,
        message: str,
        *,
        severity: Severity = "error",
        at: Optional[datetime] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a circuit-breaker transition."""
        self.log(
            AuditEvent(
                event_type="emergency",
                message=message,
                timestamp=at or datetime.now(timezone.utc),
                severity=severity,
                context=dict(context or {}),
            )
        )

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        severity: Optional[Severity] = None,
    ) -> list[AuditEvent]:
        """Get filtered audit events."""
        return [
            e
            for e in self.events
            if (event_type is None or e.event_type == event_type) and (severity is None or e.severity == severity)
        ]

    def clear(self) -> None:
        """Clear all events (for testing)."""
        self.events.clear()

    def to_json_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.events]
