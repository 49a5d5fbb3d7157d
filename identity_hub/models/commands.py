"""
Agent Command Models

The agent answers a query with `{answer, commands}`. Each command is an
envelope `{type, identityName?, identityId?, payload}`; the payload is
validated against a per-type model only when the command is applied,
so one malformed command fails alone instead of rejecting the batch.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from identity_hub.models.identity import (
    CamelModel,
    IdentityType,
    ServiceCost,
    ServicePatch,
    SubscriptionFrequency,
)


class CommandType(str, Enum):
    """Command types the executor knows how to apply."""
    CREATE_IDENTITY = "create_identity"
    ADD_TASK = "add_task"
    COMPLETE_TASK = "complete_task"
    ADD_SUBSCRIPTION = "add_subscription"
    ADD_SERVICE = "add_service"
    ADD_ADMIN_LINK = "add_admin_link"

    # Identity graph writes, also issued under the legacy `action` key
    ADD_EMAIL_TO_IDENTITY = "add_email_to_identity"
    UPDATE_IDENTITY = "update_identity"
    DELETE_IDENTITY = "delete_identity"
    UPDATE_EMAIL = "update_email"
    DELETE_EMAIL = "delete_email"
    CREATE_SERVICE = "create_service"
    UPDATE_SERVICE = "update_service"
    DELETE_SERVICE = "delete_service"

    # Informational: acknowledged, never written
    FLAG_FINANCIAL_ITEM = "flag_financial_item"
    SECURITY_ALERT = "security_alert"
    FLAG_AMBIGUOUS_IDENTITY = "flag_ambiguous_identity"
    SUGGEST_NEW_IDENTITY = "suggest_new_identity"
    UPDATE_USAGE_ATTRIBUTION = "update_usage_attribution"
    UPDATE_SERVICE_OWNERSHIP = "update_service_ownership"
    NOTE_SHARED_USAGE = "note_shared_usage"
    LINK_SERVICE_IDENTITY = "link_service_identity"


NOTED_COMMANDS = frozenset({
    CommandType.FLAG_FINANCIAL_ITEM,
    CommandType.SECURITY_ALERT,
    CommandType.FLAG_AMBIGUOUS_IDENTITY,
    CommandType.SUGGEST_NEW_IDENTITY,
    CommandType.UPDATE_USAGE_ATTRIBUTION,
    CommandType.UPDATE_SERVICE_OWNERSHIP,
    CommandType.NOTE_SHARED_USAGE,
    CommandType.LINK_SERVICE_IDENTITY,
})

# Commands that act on one identity and therefore resolve it first
IDENTITY_COMMANDS = frozenset({
    CommandType.ADD_TASK,
    CommandType.COMPLETE_TASK,
    CommandType.ADD_SUBSCRIPTION,
    CommandType.ADD_SERVICE,
    CommandType.ADD_ADMIN_LINK,
    CommandType.ADD_EMAIL_TO_IDENTITY,
    CommandType.UPDATE_IDENTITY,
    CommandType.DELETE_IDENTITY,
    CommandType.CREATE_SERVICE,
})


class AgentCommand(CamelModel):
    """
    One command from the agent.

    `type` is kept as a plain string so unknown types survive parsing
    and are reported as a failed result rather than a parse error.
    """

    model_config = ConfigDict(extra="ignore")

    type: str
    identity_name: Optional[str] = None
    identity_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator('payload', mode='before')
    @classmethod
    def default_payload(cls, v: Any) -> Any:
        return {} if v is None else v


# =============================================================================
# PAYLOADS
# =============================================================================

class CreateIdentityPayload(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: Optional[IdentityType] = None
    description: Optional[str] = None


class AddTaskPayload(CamelModel):
    title: str = Field(..., min_length=1, max_length=500)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class CompleteTaskPayload(CamelModel):
    task_title: Optional[str] = None
    task_id: Optional[str] = None


class AddSubscriptionPayload(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    frequency: Optional[SubscriptionFrequency] = None
    next_billing_date: Optional[date] = None


class AddServicePayload(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None


class AddAdminLinkPayload(CamelModel):
    label: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1)
    category: Optional[str] = None
    notes: Optional[str] = None


class LegacyUpdatesPayload(CamelModel):
    """
    Base for update payloads.

    Older agent output nests the changed fields under `updates`. They
    are lifted to the top level and win over same-named siblings.
    """

    @model_validator(mode='before')
    @classmethod
    def lift_updates(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("updates"), dict):
            lifted = {k: v for k, v in data.items() if k != "updates"}
            lifted.update(data["updates"])
            return lifted
        return data


class AddEmailPayload(CamelModel):
    """`email` and `address` are interchangeable; one is required."""

    email: Optional[str] = None
    address: Optional[str] = None
    identity_id: Optional[str] = None
    label: Optional[str] = Field(default=None, max_length=100)
    provider: Optional[str] = None
    is_primary: bool = True

    @model_validator(mode='after')
    def require_address(self) -> "AddEmailPayload":
        if not (self.email or self.address):
            raise ValueError("an email address is required")
        return self

    @property
    def email_address(self) -> str:
        return self.email or self.address


class UpdateIdentityPayload(LegacyUpdatesPayload):
    identity_id: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[IdentityType] = None
    description: Optional[str] = None


class DeleteIdentityPayload(CamelModel):
    identity_id: Optional[str] = None


class UpdateEmailPayload(LegacyUpdatesPayload):
    email_id: str = Field(..., min_length=1)
    address: Optional[str] = None
    email: Optional[str] = None
    label: Optional[str] = Field(default=None, max_length=100)
    provider: Optional[str] = None
    is_primary: Optional[bool] = None


class DeleteEmailPayload(CamelModel):
    email_id: str = Field(..., min_length=1)


class ServiceCommandFields(ServicePatch):
    """
    Service fields as agents send them.

    Besides every ServicePatch field, agents use three shorthands:
    `amount`/`currency` for cost, `url` for websiteUrl and `email` for
    loginEmail. The canonical field wins when both are given.
    """

    amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    url: Optional[str] = None
    email: Optional[str] = None

    def to_patch(self, default_currency: str) -> ServicePatch:
        """A ServicePatch carrying only what the agent supplied."""
        updates = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name in ServicePatch.model_fields
        }
        if "cost" not in updates and self.amount is not None:
            updates["cost"] = ServiceCost(
                amount=self.amount,
                currency=self.currency or default_currency,
            )
        if "website_url" not in updates and self.url is not None:
            updates["website_url"] = self.url
        if "login_email" not in updates and self.email is not None:
            updates["login_email"] = self.email
        return ServicePatch.model_validate(updates)


class CreateServicePayload(ServiceCommandFields):
    name: str = Field(..., min_length=1, max_length=200)


class UpdateServicePayload(LegacyUpdatesPayload, ServiceCommandFields):
    service_id: str = Field(..., min_length=1)


class DeleteServicePayload(CamelModel):
    service_id: str = Field(..., min_length=1)


class NotePayload(CamelModel):
    """Informational commands carry free-form data."""

    model_config = ConfigDict(extra="allow")


PAYLOAD_MODELS: dict[CommandType, type[CamelModel]] = {
    CommandType.CREATE_IDENTITY: CreateIdentityPayload,
    CommandType.ADD_TASK: AddTaskPayload,
    CommandType.COMPLETE_TASK: CompleteTaskPayload,
    CommandType.ADD_SUBSCRIPTION: AddSubscriptionPayload,
    CommandType.ADD_SERVICE: AddServicePayload,
    CommandType.ADD_ADMIN_LINK: AddAdminLinkPayload,
    CommandType.ADD_EMAIL_TO_IDENTITY: AddEmailPayload,
    CommandType.UPDATE_IDENTITY: UpdateIdentityPayload,
    CommandType.DELETE_IDENTITY: DeleteIdentityPayload,
    CommandType.UPDATE_EMAIL: UpdateEmailPayload,
    CommandType.DELETE_EMAIL: DeleteEmailPayload,
    CommandType.CREATE_SERVICE: CreateServicePayload,
    CommandType.UPDATE_SERVICE: UpdateServicePayload,
    CommandType.DELETE_SERVICE: DeleteServicePayload,
    **{command_type: NotePayload for command_type in NOTED_COMMANDS},
}


# =============================================================================
# RESULTS
# =============================================================================

class CommandResult(BaseModel):
    """Outcome of one command, reported in input order."""

    command: AgentCommand
    success: bool
    message: str
    data: Optional[dict[str, Any]] = None


class BatchResult(BaseModel):
    """All outcomes of one batch."""

    results: list[CommandResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0


class AgentResponse(BaseModel):
    """What the agent returns for a query."""

    answer: str = ""
    commands: list[AgentCommand] = Field(default_factory=list)
