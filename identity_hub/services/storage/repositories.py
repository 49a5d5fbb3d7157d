"""
Typed Repositories over the Keyed Store

Each repository owns one or two collections and converts between
stored camelCase documents and models. Business code never calls the
KeyedStore directly.

DESIGN DECISION: Identity lookup by name goes through a name index
(collection `identity_name_index`, keyed by the normalized name) that
is maintained on every identity write. Commands resolve names with one
keyed read instead of scanning every identity.
"""

import time
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from identity_hub.models.audit import AuditEvent
from identity_hub.models.currency import CachedRates
from identity_hub.models.identity import (
    EmailAccount,
    Identity,
    IdentityModules,
    Service,
    normalize_name,
)
from identity_hub.services.storage.interface import DuplicateError, KeyedStore, NotFoundError
from identity_hub.services.storage.schema import upgrade_service_document

logger = structlog.get_logger(__name__)


class Collections:
    """Collection names used in the keyed store."""
    IDENTITIES = "identities"
    IDENTITY_NAME_INDEX = "identity_name_index"
    MODULE_DATA = "module_data"
    SERVICES = "services"
    EMAILS = "emails"
    EXCHANGE_RATES = "exchange_rates"
    AUDIT_EVENTS = "audit_events"


# =============================================================================
# IDENTITIES
# =============================================================================

class IdentityRepository:
    """Identities plus the name -> id index."""

    def __init__(self, store: KeyedStore):
        self._store = store

    async def get(self, identity_id: str) -> Optional[Identity]:
        document = await self._store.get(Collections.IDENTITIES, identity_id)
        return Identity.model_validate(document) if document else None

    async def list_all(self) -> list[Identity]:
        identities = []
        for document in await self._store.list(Collections.IDENTITIES):
            try:
                identities.append(Identity.model_validate(document))
            except ValidationError as e:
                logger.warning("identity_document_skipped", error=str(e))
        return identities

    async def save(self, identity: Identity) -> Identity:
        """Insert or update an identity and keep the name index current."""
        previous = await self.get(identity.id)
        await self._store.put(Collections.IDENTITIES, identity.id, identity.to_document())

        if previous is not None and previous.name_key != identity.name_key:
            old_entry = await self._store.get(Collections.IDENTITY_NAME_INDEX, previous.name_key)
            if old_entry and old_entry.get("identityId") == identity.id:
                await self._store.delete(Collections.IDENTITY_NAME_INDEX, previous.name_key)

        current = await self._store.get(Collections.IDENTITY_NAME_INDEX, identity.name_key)
        # First identity to claim a name keeps it
        if current is None or await self.get(current.get("identityId", "")) is None:
            await self._store.put(
                Collections.IDENTITY_NAME_INDEX,
                identity.name_key,
                {"identityId": identity.id, "name": identity.name},
            )
        return identity

    async def delete(self, identity_id: str) -> bool:
        """Remove an identity and its name index entry."""
        identity = await self.get(identity_id)
        if identity is None:
            return False
        entry = await self._store.get(Collections.IDENTITY_NAME_INDEX, identity.name_key)
        if entry and entry.get("identityId") == identity_id:
            await self._store.delete(Collections.IDENTITY_NAME_INDEX, identity.name_key)
        return await self._store.delete(Collections.IDENTITIES, identity_id)

    async def find_id_by_name(self, name: str) -> Optional[str]:
        """Case-insensitive name lookup through the index."""
        entry = await self._store.get(Collections.IDENTITY_NAME_INDEX, normalize_name(name))
        if entry is not None:
            return entry.get("identityId")

        # Data written before the index existed
        for identity in await self.list_all():
            if identity.name_key == normalize_name(name):
                await self._store.put(
                    Collections.IDENTITY_NAME_INDEX,
                    identity.name_key,
                    {"identityId": identity.id, "name": identity.name},
                )
                return identity.id
        return None

    async def rebuild_name_index(self) -> int:
        """Recreate the index from the identity collection. Returns entry count."""
        for entry in await self._store.list(Collections.IDENTITY_NAME_INDEX):
            name = entry.get("name")
            if name:
                await self._store.delete(Collections.IDENTITY_NAME_INDEX, normalize_name(name))

        seen: set[str] = set()
        for identity in await self.list_all():
            if identity.name_key in seen:
                continue
            seen.add(identity.name_key)
            await self._store.put(
                Collections.IDENTITY_NAME_INDEX,
                identity.name_key,
                {"identityId": identity.id, "name": identity.name},
            )
        logger.info("identity_name_index_rebuilt", entries=len(seen))
        return len(seen)


# =============================================================================
# MODULE DATA
# =============================================================================

class ModuleDataRepository:
    """One document per identity holding all its module records."""

    def __init__(self, store: KeyedStore):
        self._store = store

    async def get(self, identity_id: str) -> IdentityModules:
        """Module records of an identity; empty if none were saved yet."""
        document = await self._store.get(Collections.MODULE_DATA, identity_id)
        if document is None:
            return IdentityModules(identity_id=identity_id)
        return IdentityModules.model_validate(document)

    async def save(self, modules: IdentityModules) -> IdentityModules:
        await self._store.put(Collections.MODULE_DATA, modules.identity_id, modules.to_document())
        return modules

    async def list_all(self) -> list[IdentityModules]:
        return [
            IdentityModules.model_validate(d)
            for d in await self._store.list(Collections.MODULE_DATA)
        ]

    async def delete(self, identity_id: str) -> bool:
        return await self._store.delete(Collections.MODULE_DATA, identity_id)


# =============================================================================
# SERVICES
# =============================================================================

class ServiceRepository:
    """Services, upgraded through the schema adapter on every load."""

    def __init__(self, store: KeyedStore):
        self._store = store

    async def get(self, service_id: str) -> Optional[Service]:
        document = await self._store.get(Collections.SERVICES, service_id)
        return upgrade_service_document(document) if document else None

    async def require(self, service_id: str) -> Service:
        service = await self.get(service_id)
        if service is None:
            raise NotFoundError(f"Service not found: {service_id}")
        return service

    async def list_all(self) -> list[Service]:
        services = []
        for document in await self._store.list(Collections.SERVICES):
            try:
                services.append(upgrade_service_document(document))
            except ValidationError as e:
                logger.warning("service_document_skipped", error=str(e))
        return services

    async def list_for_identity(self, identity_id: str) -> list[Service]:
        return [s for s in await self.list_all() if identity_id in s.owner_ids]

    async def save(self, service: Service) -> Service:
        await self._store.put(Collections.SERVICES, service.id, service.to_document())
        return service

    async def delete(self, service_id: str) -> bool:
        return await self._store.delete(Collections.SERVICES, service_id)


# =============================================================================
# EMAIL ACCOUNTS
# =============================================================================

class EmailRepository:
    """Email accounts owned by identities."""

    def __init__(self, store: KeyedStore):
        self._store = store

    async def get(self, email_id: str) -> Optional[EmailAccount]:
        document = await self._store.get(Collections.EMAILS, email_id)
        return EmailAccount.model_validate(document) if document else None

    async def list_all(self) -> list[EmailAccount]:
        return [EmailAccount.model_validate(d) for d in await self._store.list(Collections.EMAILS)]

    async def list_for_identity(self, identity_id: str) -> list[EmailAccount]:
        return [e for e in await self.list_all() if e.identity_id == identity_id]

    async def find_by_address(self, address: str) -> Optional[EmailAccount]:
        address = address.strip().lower()
        return next((e for e in await self.list_all() if e.address == address), None)

    async def save(self, account: EmailAccount) -> EmailAccount:
        """
        Insert or update an email account.

        Raises:
            DuplicateError: another account already uses the address.
        """
        existing = await self.find_by_address(account.address)
        if existing is not None and existing.id != account.id:
            raise DuplicateError(f'Email "{account.address}" is already registered')
        await self._store.put(Collections.EMAILS, account.id, account.to_document())
        return account

    async def delete(self, email_id: str) -> bool:
        return await self._store.delete(Collections.EMAILS, email_id)

    async def address_map(self) -> dict[str, str]:
        """Email account id -> address, for login-email derivation."""
        return {e.id: e.address for e in await self.list_all()}


# =============================================================================
# RATE CACHE
# =============================================================================

class RateCache:
    """
    The single persisted exchange-rate entry.

    Stored under a fixed key as `{rates, timestamp}` with an epoch-ms
    timestamp. Staleness is judged by the reader.
    """

    CACHE_KEY = "latest"

    def __init__(self, store: KeyedStore):
        self._store = store

    async def load(self) -> Optional[CachedRates]:
        document = await self._store.get(Collections.EXCHANGE_RATES, self.CACHE_KEY)
        if document is None:
            return None
        try:
            return CachedRates.model_validate(document)
        except ValidationError as e:
            logger.warning("rate_cache_unreadable", error=str(e))
            return None

    async def store(self, cached: CachedRates) -> None:
        await self._store.put(
            Collections.EXCHANGE_RATES,
            self.CACHE_KEY,
            cached.model_dump(mode="json"),
        )

    async def clear(self) -> bool:
        return await self._store.delete(Collections.EXCHANGE_RATES, self.CACHE_KEY)


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# AUDIT EVENTS
# =============================================================================

class AuditEventRepository:
    """
    Append-only audit log.

    We never update or delete events once written.
    """

    def __init__(self, store: KeyedStore):
        self._store = store

    async def append_event(self, event: AuditEvent) -> bool:
        await self._store.put(Collections.AUDIT_EVENTS, str(event.event_id), event.to_document())
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [
            AuditEvent.model_validate(d)
            for d in await self._store.list(Collections.AUDIT_EVENTS)
            if d.get("correlation_id") == str(correlation_id)
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = [AuditEvent.model_validate(d) for d in await self._store.list(Collections.AUDIT_EVENTS)]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
