"""
Tests for Identity Hub models

Test strategy:
1. Unit tests for individual components (models, engines)
2. Integration tests for flows (in-memory store, fake provider and agent)
3. No real API calls in tests
"""

from datetime import date
from decimal import Decimal

import pytest

from identity_hub.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from identity_hub.models.commands import (
    AgentCommand,
    BatchResult,
    CommandResult,
    CreateServicePayload,
    UpdateIdentityPayload,
    UpdateServicePayload,
)
from identity_hub.models.currency import ExchangeRates
from identity_hub.models.identity import (
    BillingCycle,
    EmailAccount,
    Identity,
    IdentityModules,
    ModuleKey,
    Service,
    ServiceCost,
    ServicePatch,
    TaskRecord,
    detect_email_provider,
    normalize_name,
)


class TestIdentityModels:
    """Tests for identity graph models."""

    def test_identity_defaults(self):
        """Test that id, type and timestamps are filled in."""
        identity = Identity(name="Studio")
        assert identity.id
        assert identity.type.value == "personal"
        assert identity.created_at is not None

    def test_identity_strips_whitespace(self):
        identity = Identity(name="  Studio  ")
        assert identity.name == "Studio"

    def test_identity_rejects_empty_name(self):
        with pytest.raises(ValueError):
            Identity(name="")

    def test_name_key_ignores_case_and_spacing(self):
        assert Identity(name="My  Studio").name_key == normalize_name("my studio")

    @pytest.mark.parametrize("raw", ["My Studio", "  my   studio ", "MY\tSTUDIO", "my\nStudio"])
    def test_normalize_name_collapses_whitespace(self, raw):
        """Runs of spaces, tabs and newlines count as one space."""
        assert normalize_name(raw) == "my studio"

    def test_inner_words_still_matter(self):
        assert normalize_name("MyStudio") != normalize_name("My Studio")

    @pytest.mark.parametrize("address,provider", [
        ("me@gmail.com", "gmail"),
        ("Me@Outlook.com", "outlook"),
        ("me@proton.me", "proton"),
        ("me@studio.dev", "other"),
    ])
    def test_email_provider_detection(self, address, provider):
        assert detect_email_provider(address) == provider

    def test_identity_document_uses_camel_case(self):
        doc = Identity(name="Studio").to_document()
        assert "createdAt" in doc
        assert "created_at" not in doc

    def test_email_address_lowercased(self):
        account = EmailAccount(address="Me@Example.COM")
        assert account.address == "me@example.com"


class TestServiceModels:
    """Tests for services and partial updates."""

    def test_cost_currency_uppercased(self):
        assert ServiceCost(amount=Decimal("5"), currency="usd").currency == "USD"

    def test_cost_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            ServiceCost(amount=Decimal("-1"), currency="GBP")

    def test_service_reads_camel_case_document(self):
        service = Service.model_validate({
            "name": "Netflix",
            "billingCycle": "yearly",
            "nextBillingDate": "2026-12-01",
            "profileIds": ["a"],
        })
        assert service.billing_cycle is BillingCycle.YEARLY
        assert service.next_billing_date == date(2026, 12, 1)
        assert service.owner_ids == ["a"]

    def test_owner_ids_falls_back_to_legacy_fields(self):
        assert Service(name="X", identity_id="legacy").owner_ids == ["legacy"]
        assert Service(name="X", owner_identity_ids=["o"]).owner_ids == ["o"]

    def test_one_time_is_not_recurring(self):
        assert not Service(name="X", billing_cycle="one-time").is_recurring
        assert Service(name="X", billing_cycle="weekly").is_recurring

    def test_patch_tracks_supplied_fields(self):
        """An explicit null is supplied; an absent key is not."""
        patch = ServicePatch.model_validate({"loginEmail": None, "name": "X"})
        assert patch.supplied("login_email")
        assert patch.supplied("name")
        assert not patch.supplied("website_url")
        assert patch.supplied_updates() == {"login_email": None, "name": "X"}


class TestModuleRecords:
    """Tests for per-identity module documents."""

    def test_admin_links_alias(self):
        modules = IdentityModules.model_validate({
            "identityId": "i1",
            "adminLinks": [{"label": "DNS", "url": "https://dns.example"}],
        })
        assert modules.records(ModuleKey.ADMIN_LINKS)[0].label == "DNS"

    def test_open_tasks_excludes_done(self):
        modules = IdentityModules(
            identity_id="i1",
            tasks=[TaskRecord(title="a"), TaskRecord(title="b", is_done=True)],
        )
        assert [t.title for t in modules.open_tasks()] == ["a"]


class TestCommandModels:
    """Tests for the agent command envelope."""

    def test_command_accepts_camel_case(self):
        command = AgentCommand.model_validate({
            "type": "add_task",
            "identityName": "Studio",
            "payload": {"title": "File taxes"},
        })
        assert command.identity_name == "Studio"
        assert command.payload == {"title": "File taxes"}

    def test_unknown_type_still_parses(self):
        command = AgentCommand.model_validate({"type": "launch_rocket"})
        assert command.type == "launch_rocket"
        assert command.payload == {}

    def test_null_payload_becomes_empty(self):
        assert AgentCommand.model_validate({"type": "add_task", "payload": None}).payload == {}

    def test_batch_counts(self):
        cmd = AgentCommand(type="add_task")
        batch = BatchResult(results=[
            CommandResult(command=cmd, success=True, message="ok"),
            CommandResult(command=cmd, success=False, message="no"),
        ])
        assert batch.succeeded == 1
        assert batch.failed == 1
        assert not batch.all_succeeded

    def test_nested_updates_are_lifted(self):
        payload = UpdateIdentityPayload.model_validate({
            "identityId": "i1",
            "name": "Old",
            "updates": {"name": "New", "description": "d"},
        })
        assert payload.identity_id == "i1"
        assert payload.name == "New"
        assert payload.description == "d"

    def test_service_shorthands_become_canonical_fields(self):
        patch = CreateServicePayload.model_validate({
            "name": "Netflix",
            "amount": "9.99",
            "url": "https://netflix.com",
            "email": "me@example.com",
        }).to_patch("GBP")

        assert patch.cost.amount == Decimal("9.99")
        assert patch.cost.currency == "GBP"
        assert patch.website_url == "https://netflix.com"
        assert patch.login_email == "me@example.com"
        assert not patch.supplied("status")

    def test_canonical_service_field_wins(self):
        patch = UpdateServicePayload.model_validate({
            "serviceId": "s1",
            "url": "https://short.example",
            "websiteUrl": "https://canonical.example",
        }).to_patch("GBP")

        assert patch.website_url == "https://canonical.example"
        assert not patch.supplied("cost")


class TestCurrencyModels:
    def test_rates_normalize_codes(self):
        rates = ExchangeRates(base="gbp", rates={"usd": Decimal("1.25")})
        assert rates.base == "GBP"
        assert rates.rates == {"USD": Decimal("1.25")}

    def test_covers_ignores_base(self):
        rates = ExchangeRates(base="GBP", rates={"USD": Decimal("1.25")})
        assert rates.covers(["GBP", "USD"])
        assert not rates.covers(["EUR"])


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.IDENTITY_CREATED,
            description="Identity created: Studio",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEventBuilder.identity_created("id-1", "Studio")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "identity_created"
        assert log_dict["entity_id"] == "id-1"

    def test_command_failed_is_warning(self):
        event = AuditEventBuilder.command_failed("add_task", "No identity named X")
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "No identity named X"

    def test_batch_with_failures_is_warning(self):
        assert AuditEventBuilder.batch_completed(3, 3).severity == AuditSeverity.INFO
        assert AuditEventBuilder.batch_completed(3, 2).severity == AuditSeverity.WARNING

    def test_document_is_json_safe(self):
        doc = AuditEventBuilder.service_saved("s1", "Netflix", created=True).to_document()
        assert isinstance(doc["event_id"], str)
        assert isinstance(doc["timestamp"], str)
