"""
Command Execution Engine

Applies a batch of agent-issued commands to the identity graph.

DESIGN DECISION: A batch is best-effort, not a transaction.
- Commands run strictly in order; later commands may depend on
  identities created by earlier ones.
- Each command either applies fully or not at all.
- A failing command is reported and the batch moves on. Nothing is
  rolled back.

State per batch: IDLE -> RESOLVING -> APPLYING -> DONE.

GUARANTEES:
- Exactly one result per input command, in input order
- No exception escapes execute_batch() for a single bad command
"""

from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from identity_hub.audit.logger import AuditLogger, create_correlation_id
from identity_hub.billing.cycle import DateValidationError, validate_future_or_today
from identity_hub.commands.errors import (
    CommandError,
    EmailNotFoundError,
    IdentityNameConflictError,
    IdentityNotFoundError,
    ServiceNotFoundError,
    TaskNotFoundError,
    UnknownCommandTypeError,
)
from identity_hub.commands.working_copy import BatchWorkingCopy
from identity_hub.config import get_settings
from identity_hub.models.commands import (
    IDENTITY_COMMANDS,
    NOTED_COMMANDS,
    PAYLOAD_MODELS,
    AddAdminLinkPayload,
    AddEmailPayload,
    AddServicePayload,
    AddSubscriptionPayload,
    AddTaskPayload,
    AgentCommand,
    BatchResult,
    CommandResult,
    CommandType,
    CompleteTaskPayload,
    CreateIdentityPayload,
    CreateServicePayload,
    DeleteEmailPayload,
    DeleteIdentityPayload,
    DeleteServicePayload,
    UpdateEmailPayload,
    UpdateIdentityPayload,
    UpdateServicePayload,
)
from identity_hub.models.identity import (
    AdminLinkRecord,
    EmailAccount,
    Identity,
    IdentityType,
    Service,
    ServiceModuleRecord,
    ServicePatch,
    SubscriptionFrequency,
    SubscriptionRecord,
    TaskRecord,
    detect_email_provider,
)
from identity_hub.reconciliation.reconciler import OWNERSHIP_FIELDS, apply_patch, reconcile
from identity_hub.services.storage.interface import DuplicateError, StorageError
from identity_hub.services.storage.repositories import (
    EmailRepository,
    IdentityRepository,
    ModuleDataRepository,
    ServiceRepository,
)

logger = structlog.get_logger(__name__)


class BatchState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    APPLYING = "applying"
    DONE = "done"


# (message, data) returned by every handler
HandlerResult = tuple[str, dict[str, Any]]


class CommandExecutor:
    """
    Executes agent command batches against the identity graph.

    Identities and module data go through the batch working copy.
    Email accounts and services are written straight to their
    repositories; service writes pass through the reconciler exactly
    like form saves do.

    Not re-entrant: one batch at a time (single writer).
    """

    def __init__(
        self,
        identities: IdentityRepository,
        modules: ModuleDataRepository,
        services: ServiceRepository,
        emails: EmailRepository,
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], date] = date.today,
    ):
        self._identities = identities
        self._modules = modules
        self._services = services
        self._emails = emails
        self._audit = audit_logger or AuditLogger()
        self._today = today
        self._settings = get_settings().app
        self.state = BatchState.IDLE
        self._handlers: dict[CommandType, Any] = {
            CommandType.CREATE_IDENTITY: self._create_identity,
            CommandType.ADD_TASK: self._add_task,
            CommandType.COMPLETE_TASK: self._complete_task,
            CommandType.ADD_SUBSCRIPTION: self._add_subscription,
            CommandType.ADD_SERVICE: self._add_service,
            CommandType.ADD_ADMIN_LINK: self._add_admin_link,
            CommandType.ADD_EMAIL_TO_IDENTITY: self._add_email_to_identity,
            CommandType.UPDATE_IDENTITY: self._update_identity,
            CommandType.DELETE_IDENTITY: self._delete_identity,
            CommandType.UPDATE_EMAIL: self._update_email,
            CommandType.DELETE_EMAIL: self._delete_email,
            CommandType.CREATE_SERVICE: self._create_service,
            CommandType.UPDATE_SERVICE: self._update_service,
            CommandType.DELETE_SERVICE: self._delete_service,
        }

    async def execute_batch(
        self,
        commands: list[AgentCommand],
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """
        Apply commands in order and report one result per command.

        Args:
            commands: Commands as issued by the agent.
            correlation_id: Ties the batch's audit events together.

        Returns:
            BatchResult with results in input order.
        """
        correlation_id = correlation_id or create_correlation_id()
        working_copy = BatchWorkingCopy(self._identities, self._modules)
        results: list[CommandResult] = []

        logger.info("batch_started", size=len(commands), correlation_id=str(correlation_id))

        for index, command in enumerate(commands):
            result = await self._execute_one(command, working_copy)
            results.append(result)

            if result.success:
                logger.info("command_applied", index=index, type=command.type, message=result.message)
                await self._audit.log_command_succeeded(
                    command.type,
                    result.message,
                    correlation_id=correlation_id,
                    entity_id=(result.data or {}).get("id"),
                )
            else:
                logger.warning("command_failed", index=index, type=command.type, message=result.message)
                await self._audit.log_command_failed(
                    command.type,
                    result.message,
                    correlation_id=correlation_id,
                    error_code=(result.data or {}).get("errorCode"),
                )

        self.state = BatchState.DONE
        batch = BatchResult(results=results)
        logger.info(
            "batch_completed",
            total=len(results),
            succeeded=batch.succeeded,
            correlation_id=str(correlation_id),
        )
        await self._audit.log_batch_completed(len(results), batch.succeeded, correlation_id)
        self.state = BatchState.IDLE
        return batch

    async def _execute_one(self, command: AgentCommand, working_copy: BatchWorkingCopy) -> CommandResult:
        """Apply one command, turning every failure into a result."""
        try:
            self.state = BatchState.RESOLVING
            try:
                command_type = CommandType(command.type)
            except ValueError:
                raise UnknownCommandTypeError(command.type)

            payload = PAYLOAD_MODELS[command_type].model_validate(command.payload)

            if command_type in NOTED_COMMANDS:
                return CommandResult(
                    command=command,
                    success=True,
                    message=f"Noted: {command_type.value}",
                    data=dict(command.payload),
                )

            identity = None
            if command_type in IDENTITY_COMMANDS:
                identity = await self._resolve_identity(command, payload, working_copy)

            self.state = BatchState.APPLYING
            message, data = await self._handlers[command_type](payload, identity, working_copy)
            return CommandResult(command=command, success=True, message=message, data=data)

        except CommandError as e:
            return self._failure(command, str(e), e.code)
        except ValidationError as e:
            return self._failure(
                command,
                f"Invalid payload for {command.type}: {_summarize_validation(e)}",
                "invalid_payload",
            )
        except DateValidationError as e:
            return self._failure(command, str(e), "invalid_date")
        except DuplicateError as e:
            return self._failure(command, str(e), "duplicate")
        except StorageError as e:
            return self._failure(command, f"Storage error: {e}", "storage_error")
        except Exception as e:
            logger.exception("command_crashed", type=command.type)
            await self._audit.log_error(
                "command_crashed",
                str(e),
                details={"type": command.type},
            )
            return self._failure(command, f"Command execution failed: {e}", "internal_error")

    @staticmethod
    def _failure(command: AgentCommand, message: str, code: str) -> CommandResult:
        return CommandResult(
            command=command,
            success=False,
            message=message,
            data={"errorCode": code},
        )

    async def _resolve_identity(
        self,
        command: AgentCommand,
        payload: Any,
        working_copy: BatchWorkingCopy,
    ) -> Identity:
        """
        identityId must match exactly; identityName matches ignoring case.

        Older agent output puts identityId inside the payload; the
        envelope's value wins when both are present.
        """
        identity_id = command.identity_id or getattr(payload, "identity_id", None)
        if identity_id:
            identity = await working_copy.get_identity(identity_id)
            if identity is None:
                raise IdentityNotFoundError(f"No identity with id {identity_id}")
            return identity

        if command.identity_name:
            identity = await working_copy.find_by_name(command.identity_name)
            if identity is None:
                raise IdentityNotFoundError(f'No identity named "{command.identity_name}"')
            return identity

        raise IdentityNotFoundError(f"{command.type} needs an identityName or identityId")

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _create_identity(
        self,
        payload: CreateIdentityPayload,
        identity: None,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        if await working_copy.find_by_name(payload.name) is not None:
            raise IdentityNameConflictError(payload.name)

        created = Identity(
            name=payload.name,
            type=payload.type or IdentityType(self._settings.default_identity_type),
            description=payload.description,
        )
        await working_copy.commit_identity(created)
        await self._audit.log_identity_created(created.id, created.name)
        return f'Created identity "{created.name}"', created.to_document()

    async def _add_task(
        self,
        payload: AddTaskPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        modules = await working_copy.modules(identity.id)
        task = TaskRecord(title=payload.title, due_date=payload.due_date, notes=payload.notes)
        modules.tasks.append(task)
        await working_copy.commit_modules(modules)
        return f'Added task "{task.title}" to {identity.name}', task.to_document()

    async def _complete_task(
        self,
        payload: CompleteTaskPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        if not payload.task_id and not payload.task_title:
            raise TaskNotFoundError("complete_task needs a taskId or taskTitle")

        modules = await working_copy.modules(identity.id)
        open_tasks = modules.open_tasks()

        task = None
        if payload.task_id:
            task = next((t for t in open_tasks if t.id == payload.task_id), None)
        if task is None and payload.task_title:
            needle = payload.task_title.casefold()
            task = next((t for t in open_tasks if needle in t.title.casefold()), None)
        if task is None:
            wanted = payload.task_id or payload.task_title
            raise TaskNotFoundError(f'No open task matching "{wanted}" for {identity.name}')

        task.is_done = True
        await working_copy.commit_modules(modules)
        return f'Completed task "{task.title}"', task.to_document()

    async def _add_subscription(
        self,
        payload: AddSubscriptionPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        validate_future_or_today(payload.next_billing_date, self._today())

        modules = await working_copy.modules(identity.id)
        subscription = SubscriptionRecord(
            name=payload.name,
            amount=payload.amount if payload.amount is not None else 0,
            currency=payload.currency or self._settings.default_subscription_currency,
            frequency=payload.frequency or SubscriptionFrequency.MONTHLY,
            next_billing_date=payload.next_billing_date,
        )
        modules.subscriptions.append(subscription)
        await working_copy.commit_modules(modules)
        return (
            f'Added subscription "{subscription.name}" to {identity.name}',
            subscription.to_document(),
        )

    async def _add_service(
        self,
        payload: AddServicePayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        modules = await working_copy.modules(identity.id)
        record = ServiceModuleRecord(
            name=payload.name,
            category=payload.category,
            url=payload.url,
            notes=payload.notes,
        )
        modules.services.append(record)
        await working_copy.commit_modules(modules)
        return f'Added service "{record.name}" to {identity.name}', record.to_document()

    async def _add_admin_link(
        self,
        payload: AddAdminLinkPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        modules = await working_copy.modules(identity.id)
        link = AdminLinkRecord(
            label=payload.label,
            url=payload.url,
            category=payload.category,
            notes=payload.notes,
        )
        modules.admin_links.append(link)
        await working_copy.commit_modules(modules)
        return f'Added admin link "{link.label}" to {identity.name}', link.to_document()

    async def _add_email_to_identity(
        self,
        payload: AddEmailPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        address = payload.email_address
        account = EmailAccount(
            identity_id=identity.id,
            address=address,
            label=payload.label or "Primary",
            provider=payload.provider or detect_email_provider(address),
            is_primary=payload.is_primary,
        )
        await self._emails.save(account)
        return f'Added email "{account.address}" to {identity.name}', account.to_document()

    async def _update_identity(
        self,
        payload: UpdateIdentityPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        changes: dict[str, Any] = {"updated_at": datetime.utcnow()}
        if payload.name is not None:
            holder = await working_copy.find_by_name(payload.name)
            if holder is not None and holder.id != identity.id:
                raise IdentityNameConflictError(payload.name)
            changes["name"] = payload.name
        if payload.type is not None:
            changes["type"] = payload.type
        if "description" in payload.model_fields_set:
            changes["description"] = payload.description

        updated = identity.model_copy(update=changes)
        await working_copy.commit_identity(updated)
        return f'Updated identity "{updated.name}"', updated.to_document()

    async def _delete_identity(
        self,
        payload: DeleteIdentityPayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        # Services and email accounts keep their references
        await working_copy.delete_identity(identity)
        return f'Deleted identity "{identity.name}"', {"id": identity.id}

    async def _update_email(
        self,
        payload: UpdateEmailPayload,
        identity: None,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        account = await self._require_email(payload.email_id)
        changes: dict[str, Any] = {}
        if payload.address or payload.email:
            changes["address"] = payload.address or payload.email
        if payload.label is not None:
            changes["label"] = payload.label
        if payload.provider is not None:
            changes["provider"] = payload.provider
        if payload.is_primary is not None:
            changes["is_primary"] = payload.is_primary

        updated = EmailAccount.model_validate({**account.model_dump(), **changes})
        await self._emails.save(updated)
        return f'Updated email "{updated.address}"', updated.to_document()

    async def _delete_email(
        self,
        payload: DeleteEmailPayload,
        identity: None,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        account = await self._require_email(payload.email_id)
        await self._emails.delete(account.id)
        return f'Deleted email "{account.address}"', {"id": account.id}

    async def _create_service(
        self,
        payload: CreateServicePayload,
        identity: Identity,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        updates = payload.to_patch(self._settings.default_subscription_currency).supplied_updates()
        for name in OWNERSHIP_FIELDS:
            updates.pop(name, None)
        updates["profile_ids"] = [identity.id]

        service = await self._write_service(ServicePatch.model_validate(updates))
        return f'Added service "{service.name}" to {identity.name}', service.to_document()

    async def _update_service(
        self,
        payload: UpdateServicePayload,
        identity: None,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        existing = await self._require_service(payload.service_id)
        patch = payload.to_patch(self._settings.default_subscription_currency)
        service = await self._write_service(patch, existing)
        return f'Updated service "{service.name}"', service.to_document()

    async def _delete_service(
        self,
        payload: DeleteServicePayload,
        identity: None,
        working_copy: BatchWorkingCopy,
    ) -> HandlerResult:
        existing = await self._require_service(payload.service_id)
        await self._services.delete(existing.id)
        return f'Deleted service "{existing.name}"', {"id": existing.id}

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _require_email(self, email_id: str) -> EmailAccount:
        account = await self._emails.get(email_id)
        if account is None:
            raise EmailNotFoundError(f"No email account with id {email_id}")
        return account

    async def _require_service(self, service_id: str) -> Service:
        service = await self._services.get(service_id)
        if service is None:
            raise ServiceNotFoundError(f"No service with id {service_id}")
        return service

    async def _write_service(self, patch: ServicePatch, existing: Optional[Service] = None) -> Service:
        """Reconcile, validate and save a service the way form saves do."""
        reconciled = reconcile(patch, existing, await self._emails.address_map())
        service = apply_patch(existing, reconciled)

        if service.is_recurring and reconciled.supplied("next_billing_date"):
            validate_future_or_today(service.next_billing_date, self._today())

        service.updated_at = datetime.utcnow()
        await self._services.save(service)
        await self._audit.log_service_saved(service.id, service.name, created=existing is None)
        return service


def _summarize_validation(error: ValidationError) -> str:
    """First few pydantic errors as 'field: message' pairs."""
    parts = []
    for item in error.errors()[:3]:
        location = ".".join(str(p) for p in item.get("loc", ())) or "payload"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)
