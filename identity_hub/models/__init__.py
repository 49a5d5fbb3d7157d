"""Data models for the identity graph, agent commands, currency and audit."""

from identity_hub.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from identity_hub.models.commands import (
    AddAdminLinkPayload,
    AddEmailPayload,
    AddServicePayload,
    AddSubscriptionPayload,
    AddTaskPayload,
    AgentCommand,
    AgentResponse,
    BatchResult,
    CommandResult,
    CommandType,
    CompleteTaskPayload,
    CreateIdentityPayload,
    CreateServicePayload,
    DeleteEmailPayload,
    DeleteIdentityPayload,
    DeleteServicePayload,
    NotePayload,
    UpdateEmailPayload,
    UpdateIdentityPayload,
    UpdateServicePayload,
)
from identity_hub.models.currency import (
    CachedRates,
    CostAggregate,
    CostLine,
    ExchangeRates,
)
from identity_hub.models.identity import (
    AdminLinkRecord,
    BillingCycle,
    EmailAccount,
    EmailRecord,
    Identity,
    IdentityModules,
    IdentityType,
    ModuleKey,
    Service,
    ServiceCost,
    ServiceModuleRecord,
    ServicePatch,
    ServiceStatus,
    SubscriptionFrequency,
    SubscriptionRecord,
    TaskRecord,
    detect_email_provider,
    normalize_name,
)

__all__ = [
    # Identity graph
    "AdminLinkRecord",
    "BillingCycle",
    "EmailAccount",
    "EmailRecord",
    "Identity",
    "IdentityModules",
    "IdentityType",
    "ModuleKey",
    "Service",
    "ServiceCost",
    "ServiceModuleRecord",
    "ServicePatch",
    "ServiceStatus",
    "SubscriptionFrequency",
    "SubscriptionRecord",
    "TaskRecord",
    "detect_email_provider",
    "normalize_name",
    # Commands
    "AddAdminLinkPayload",
    "AddEmailPayload",
    "AddServicePayload",
    "AddSubscriptionPayload",
    "AddTaskPayload",
    "AgentCommand",
    "AgentResponse",
    "BatchResult",
    "CommandResult",
    "CommandType",
    "CompleteTaskPayload",
    "CreateIdentityPayload",
    "CreateServicePayload",
    "DeleteEmailPayload",
    "DeleteIdentityPayload",
    "DeleteServicePayload",
    "NotePayload",
    "UpdateEmailPayload",
    "UpdateIdentityPayload",
    "UpdateServicePayload",
    # Currency
    "CachedRates",
    "CostAggregate",
    "CostLine",
    "ExchangeRates",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
