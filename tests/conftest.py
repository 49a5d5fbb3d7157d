"""Pytest configuration and fixtures."""

import os
from datetime import date

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("EXCHANGE_RATES_FALLBACK_CURRENCY", "GBP")

from identity_hub.audit import AuditLogger  # noqa: E402
from identity_hub.commands import CommandExecutor  # noqa: E402
from identity_hub.services.storage import (  # noqa: E402
    AuditEventRepository,
    EmailRepository,
    IdentityRepository,
    InMemoryStore,
    ModuleDataRepository,
    ServiceRepository,
)

TODAY = date(2026, 10, 19)


@pytest.fixture
def today():
    """A fixed 'today' so date rules are deterministic."""
    return TODAY


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def identities(store):
    return IdentityRepository(store)


@pytest.fixture
def modules(store):
    return ModuleDataRepository(store)


@pytest.fixture
def services(store):
    return ServiceRepository(store)


@pytest.fixture
def emails(store):
    return EmailRepository(store)


@pytest.fixture
def audit_logger(store):
    return AuditLogger(AuditEventRepository(store))


@pytest.fixture
def executor(identities, modules, services, emails, audit_logger):
    return CommandExecutor(
        identities,
        modules,
        services,
        emails,
        audit_logger=audit_logger,
        today=lambda: TODAY,
    )
