"""
Main Orchestrator for Identity Hub

This module ties the components together and defines the end-to-end
flows for the two write paths and the reports built on them:
1. Service forms (payload -> reconcile -> validate -> save)
2. Agent queries (question -> agent -> command batch -> results)
3. Cost reports (services + subscriptions -> rates -> aggregate)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every service write passes through the reconciler
- Historical next-bill dates are rejected on write, never corrected
- Agent output is only applied through the command executor
- Every step is audited
"""

from datetime import date, datetime
from typing import Any, Callable, Optional
from uuid import UUID

import structlog

from identity_hub.agents import IdentityAgent
from identity_hub.audit import AuditLogger, configure_logging, create_correlation_id
from identity_hub.billing import (
    DateValidationError,
    suggest_reactivation_date,
    validate_future_or_today,
    with_effective_billing_dates,
)
from identity_hub.commands import CommandExecutor
from identity_hub.config import get_settings
from identity_hub.currency import (
    ExchangeRateService,
    aggregate_costs,
    cost_lines_from_services,
    cost_lines_from_subscriptions,
    detect_base_currency,
    detect_foreign_currencies,
)
from identity_hub.models.commands import AgentCommand, AgentResponse, BatchResult
from identity_hub.models.currency import CostAggregate
from identity_hub.models.identity import (
    Service,
    ServicePatch,
    ServiceStatus,
)
from identity_hub.reconciliation import apply_patch, reconcile
from identity_hub.services.rates import FrankfurterRateProvider
from identity_hub.services.storage import (
    AuditEventRepository,
    EmailRepository,
    IdentityRepository,
    InMemoryStore,
    KeyedStore,
    ModuleDataRepository,
    RateCache,
    ServiceRepository,
    create_store,
)

logger = structlog.get_logger(__name__)


class ServiceFlow:
    """
    Orchestrates service writes and reads from the UI.

    Write flow:
    1. Load the stored version (if updating)
    2. Reconcile alias fields against it
    3. Reject a historical next-bill date on recurring services
    4. Save and audit

    Read flow returns effective next-bill dates without writing them back.
    """

    def __init__(
        self,
        services: ServiceRepository,
        emails: EmailRepository,
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], date] = date.today,
    ):
        self._services = services
        self._emails = emails
        self._audit_logger = audit_logger or AuditLogger()
        self._today = today

    async def save_service(
        self,
        patch: ServicePatch,
        service_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Service:
        """
        Create or update a service.

        Args:
            patch: Fields as submitted; unsupplied fields are kept.
            service_id: The service to update, or None to create.

        Returns:
            The saved service.

        Raises:
            NotFoundError: service_id does not exist.
            DateValidationError: nextBillingDate is before today.
        """
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._services.require(service_id) if service_id else None

        reconciled = reconcile(patch, existing, await self._emails.address_map())
        service = apply_patch(existing, reconciled)

        if service.is_recurring and reconciled.supplied("next_billing_date"):
            try:
                validate_future_or_today(service.next_billing_date, self._today())
            except DateValidationError as e:
                await self._audit_logger.log_service_rejected(service_id, str(e), correlation_id)
                raise

        service.updated_at = datetime.utcnow()
        await self._services.save(service)

        await self._audit_logger.log_service_saved(
            service.id,
            service.name,
            created=existing is None,
            correlation_id=correlation_id,
        )
        return service

    async def list_services(self, identity_id: Optional[str] = None) -> list[Service]:
        """Services (optionally of one identity) with effective next-bill dates."""
        if identity_id:
            services = await self._services.list_for_identity(identity_id)
        else:
            services = await self._services.list_all()
        return with_effective_billing_dates(services, self._today())

    def suggest_status_change(self, service: Service, new_status: ServiceStatus) -> Optional[date]:
        """Next-bill date to offer when reactivating; None if not applicable."""
        return suggest_reactivation_date(service, new_status, self._today())

    async def restore_service(
        self,
        service_id: str,
        identity_ids: list[str],
        new_status: ServiceStatus = ServiceStatus.ACTIVE,
        next_billing_date: Optional[date] = None,
    ) -> Service:
        """
        Bring an archived or cancelled service back.

        An empty `identity_ids` restores it without any owner. The stored
        next-bill date is kept unless `next_billing_date` is given; pass
        the value from suggest_status_change() once the operator accepts it.
        """
        updates: dict[str, Any] = {"profile_ids": identity_ids, "status": new_status}
        if next_billing_date is not None:
            updates["next_billing_date"] = next_billing_date
        return await self.save_service(ServicePatch(**updates), service_id)


class CostReportFlow:
    """
    Monthly recurring cost across services and subscriptions.

    Rates are fetched once per report for the detected base currency.
    Without a rate service, foreign amounts are reported as unconverted.
    """

    def __init__(
        self,
        services: ServiceRepository,
        modules: ModuleDataRepository,
        rate_service: Optional[ExchangeRateService] = None,
    ):
        self._services = services
        self._modules = modules
        self._rate_service = rate_service

    async def monthly_costs(
        self,
        identity_id: Optional[str] = None,
        include_subscriptions: bool = True,
        strict: bool = False,
        force_refresh: bool = False,
    ) -> CostAggregate:
        if identity_id:
            services = await self._services.list_for_identity(identity_id)
        else:
            services = await self._services.list_all()
        lines = cost_lines_from_services(services)

        if include_subscriptions:
            if identity_id:
                module_docs = [await self._modules.get(identity_id)]
            else:
                module_docs = await self._modules.list_all()
            for modules in module_docs:
                lines.extend(cost_lines_from_subscriptions(modules.subscriptions))

        currencies = [line.currency for line in lines]
        base = detect_base_currency(currencies)
        foreign = detect_foreign_currencies(currencies, base)

        rates = None
        if foreign and self._rate_service is not None:
            rates = await self._rate_service.fetch_rates(base, foreign, force_refresh=force_refresh)

        report = aggregate_costs(lines, base, rates, strict=strict)
        logger.info(
            "cost_report_built",
            base=report.base_currency,
            lines=report.line_count,
            unconverted=report.unconverted_currencies,
        )
        return report


class AgentCommandFlow:
    """
    Orchestrates a natural-language request.

    FLOW:
    1. Gather identity data as context
    2. Agent produces {answer, commands}
    3. Commands run as one batch through the executor

    The agent NEVER writes. Only the executor does.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        identities: IdentityRepository,
        services: ServiceRepository,
        emails: EmailRepository,
        modules: ModuleDataRepository,
        agent: Optional[IdentityAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._executor = executor
        self._identities = identities
        self._services = services
        self._emails = emails
        self._modules = modules
        self._agent = agent
        self._audit_logger = audit_logger or AuditLogger()
        self._max_records = get_settings().app.max_agent_context_records

    async def build_context(self) -> dict[str, Any]:
        """Identity data the agent may answer from, capped per collection."""
        limit = self._max_records
        identities = (await self._identities.list_all())[:limit]
        modules = {m.identity_id: m for m in await self._modules.list_all()}
        return {
            "identities": [
                {
                    **identity.to_document(),
                    "modules": modules[identity.id].to_document() if identity.id in modules else {},
                }
                for identity in identities
            ],
            "emails": [e.to_document() for e in (await self._emails.list_all())[:limit]],
            "services": [s.to_document() for s in (await self._services.list_all())[:limit]],
        }

    async def handle_query(
        self,
        query: str,
        execute: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[AgentResponse, Optional[BatchResult]]:
        """
        Answer a request and apply any commands it produced.

        Returns:
            (agent_response, batch_result). batch_result is None when
            nothing was executed.
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._audit_logger.log_agent_query(query, correlation_id)

        if self._agent is None:
            return (
                AgentResponse(
                    answer="The assistant isn't configured yet. "
                           "Please set GEMINI_API_KEY first.",
                ),
                None,
            )

        response = await self._agent.respond(
            query,
            await self.build_context(),
            today=date.today().isoformat(),
        )

        if not execute or not response.commands:
            return response, None

        batch = await self.execute_commands(response.commands, correlation_id)
        return response, batch

    async def execute_commands(
        self,
        commands: list[AgentCommand],
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """Apply commands the user reviewed (or the agent produced) as one batch."""
        return await self._executor.execute_batch(commands, correlation_id)


def create_app_components(
    store: Optional[KeyedStore] = None,
    with_agent: bool = True,
    with_rates: bool = True,
) -> tuple[ServiceFlow, CostReportFlow, AgentCommandFlow, KeyedStore]:
    """
    Factory function to create all application components.

    Args:
        store: KeyedStore to use. Built from settings if None.
        with_agent: Whether to initialize the Gemini agent.
        with_rates: Whether to fetch exchange rates over the network.

    Returns:
        (service_flow, cost_report_flow, agent_command_flow, store)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    if store is None:
        try:
            store = create_store()
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            store = InMemoryStore()

    identities = IdentityRepository(store)
    modules = ModuleDataRepository(store)
    services = ServiceRepository(store)
    emails = EmailRepository(store)
    audit_logger = AuditLogger(AuditEventRepository(store))

    rate_service = None
    if with_rates:
        rate_service = ExchangeRateService(
            provider=FrankfurterRateProvider(),
            cache=RateCache(store),
            audit_logger=audit_logger,
        )

    agent = None
    if with_agent:
        try:
            agent = IdentityAgent()
        except Exception as e:
            logger.warning("agent_not_configured", error=str(e))

    executor = CommandExecutor(identities, modules, services, emails, audit_logger=audit_logger)

    service_flow = ServiceFlow(services, emails, audit_logger=audit_logger)
    cost_flow = CostReportFlow(services, modules, rate_service=rate_service)
    agent_flow = AgentCommandFlow(
        executor,
        identities,
        services,
        emails,
        modules,
        agent=agent,
        audit_logger=audit_logger,
    )

    return service_flow, cost_flow, agent_flow, store
