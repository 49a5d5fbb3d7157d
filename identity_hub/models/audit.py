"""
Audit Models for Identity Hub

Every mutation of the identity graph is recorded as an audit event.
This gives:
1. Traceability of what the agent changed on the user's behalf
2. Debugging information when a command batch partly fails
3. A way to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""

    # Identity graph
    IDENTITY_CREATED = "identity_created"

    # Agent command execution
    COMMAND_SUCCEEDED = "command_succeeded"
    COMMAND_FAILED = "command_failed"
    BATCH_COMPLETED = "batch_completed"
    AGENT_QUERY_RECEIVED = "agent_query_received"

    # Service writes from forms
    SERVICE_SAVED = "service_saved"
    SERVICE_REJECTED = "service_rejected"

    # Exchange rates
    RATES_FETCHED = "rates_fetched"
    RATES_PROVIDER_FAILED = "rates_provider_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about? Entity ids are plain strings in the graph.
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'identity', 'service', 'batch')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties together all events of one batch or form save"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """Convert to a JSON-safe document for the keyed store."""
        return json.loads(self.model_dump_json())


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.identity_created(identity_id, name, correlation_id)
        event = AuditEventBuilder.command_failed("add_task", "No identity ...", correlation_id)
    """

    @staticmethod
    def identity_created(
        identity_id: str,
        name: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IDENTITY_CREATED,
            entity_type="identity",
            entity_id=identity_id,
            correlation_id=correlation_id,
            description=f"Identity created: {name}",
            details={"name": name},
        )

    @staticmethod
    def command_succeeded(
        command_type: str,
        message: str,
        correlation_id: Optional[UUID] = None,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_SUCCEEDED,
            entity_type="command",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{command_type}: {message}"[:500],
            details={"command_type": command_type},
        )

    @staticmethod
    def command_failed(
        command_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        error_code: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Command failed: {command_type}",
            error_code=error_code,
            error_message=error_message,
            details={"command_type": command_type},
        )

    @staticmethod
    def batch_completed(
        total: int,
        succeeded: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        failed = total - succeeded
        return AuditEvent(
            event_type=AuditEventType.BATCH_COMPLETED,
            severity=AuditSeverity.INFO if failed == 0 else AuditSeverity.WARNING,
            entity_type="batch",
            correlation_id=correlation_id,
            description=f"Batch completed: {succeeded}/{total} commands succeeded",
            details={"total": total, "succeeded": succeeded, "failed": failed},
            is_user_action=True,
        )

    @staticmethod
    def agent_query_received(
        query: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AGENT_QUERY_RECEIVED,
            entity_type="query",
            correlation_id=correlation_id,
            description="Agent query received",
            details={"query": query[:200]},
            is_user_action=True,
        )

    @staticmethod
    def service_saved(
        service_id: str,
        name: str,
        created: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERVICE_SAVED,
            entity_type="service",
            entity_id=service_id,
            correlation_id=correlation_id,
            description=f"Service {'created' if created else 'updated'}: {name}",
            details={"name": name, "created": created},
            is_user_action=True,
        )

    @staticmethod
    def service_rejected(
        service_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERVICE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="service",
            entity_id=service_id,
            correlation_id=correlation_id,
            description="Service save rejected",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def rates_fetched(
        base: str,
        targets: list[str],
        from_cache: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_FETCHED,
            severity=AuditSeverity.DEBUG if from_cache else AuditSeverity.INFO,
            entity_type="exchange_rates",
            entity_id=base,
            description=f"Rates for {base} {'served from cache' if from_cache else 'fetched'}",
            details={"base": base, "targets": targets, "from_cache": from_cache},
        )

    @staticmethod
    def rates_provider_failed(
        base: str,
        error_message: str,
        used_stale_cache: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_PROVIDER_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="exchange_rates",
            entity_id=base,
            description="Exchange rate provider unavailable",
            error_message=error_message,
            details={"base": base, "used_stale_cache": used_stale_cache},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
