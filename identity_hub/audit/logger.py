"""
Audit Logger

DESIGN DECISION: Every change to the identity graph is logged.
This provides:
1. Traceability of what the agent did on the user's behalf
2. Debugging capability when a batch partly fails
3. A history the user can browse

The audit logger:
- Is async to match the storage interface
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace all events of one batch or save
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from identity_hub.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from identity_hub.services.storage.repositories import AuditEventRepository


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging (which structlog renders through) to stderr."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The keyed store's audit collection (for history), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditEventRepository] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Audit event repository for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity is AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_identity_created(
        self,
        identity_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.identity_created(identity_id, name, correlation_id))

    async def log_command_succeeded(
        self,
        command_type: str,
        message: str,
        correlation_id: Optional[UUID] = None,
        entity_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.command_succeeded(
            command_type=command_type,
            message=message,
            correlation_id=correlation_id,
            entity_id=entity_id,
        ))

    async def log_command_failed(
        self,
        command_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        error_code: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.command_failed(
            command_type=command_type,
            error_message=error_message,
            correlation_id=correlation_id,
            error_code=error_code,
        ))

    async def log_batch_completed(
        self,
        total: int,
        succeeded: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.batch_completed(total, succeeded, correlation_id))

    async def log_agent_query(self, query: str, correlation_id: Optional[UUID] = None) -> None:
        await self.log(AuditEventBuilder.agent_query_received(query, correlation_id))

    async def log_service_saved(
        self,
        service_id: str,
        name: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.service_saved(service_id, name, created, correlation_id))

    async def log_service_rejected(
        self,
        service_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.service_rejected(service_id, reason, correlation_id))

    async def log_rates_fetched(self, base: str, targets: list[str], from_cache: bool) -> None:
        await self.log(AuditEventBuilder.rates_fetched(base, targets, from_cache))

    async def log_rates_provider_failed(
        self,
        base: str,
        error_message: str,
        used_stale_cache: bool,
    ) -> None:
        await self.log(AuditEventBuilder.rates_provider_failed(base, error_message, used_stale_cache))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a batch or a form save and pass it
    through all subsequent operations.
    """
    return uuid4()
