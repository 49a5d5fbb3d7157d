"""Tests for audit logging and configuration."""

import pytest

from identity_hub.audit import AuditLogger, create_correlation_id
from identity_hub.config import get_settings, validate_all_settings
from identity_hub.models.audit import AuditEventBuilder, AuditEventType
from identity_hub.services.storage import AuditEventRepository, InMemoryStore


class BrokenRepository:
    async def append_event(self, event):
        raise RuntimeError("disk full")


class TestAuditLogger:
    @pytest.mark.asyncio
    async def test_without_storage_logs_locally(self):
        assert await AuditLogger().log(AuditEventBuilder.batch_completed(1, 1)) is True

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_raised(self):
        logger = AuditLogger(BrokenRepository())
        assert await logger.log(AuditEventBuilder.batch_completed(1, 1)) is False

    @pytest.mark.asyncio
    async def test_events_grouped_by_correlation_id(self):
        repo = AuditEventRepository(InMemoryStore())
        logger = AuditLogger(repo)
        correlation_id = create_correlation_id()

        await logger.log_command_succeeded("add_task", "ok", correlation_id=correlation_id)
        await logger.log_batch_completed(1, 1, correlation_id)
        await logger.log_batch_completed(1, 1)

        events = await repo.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.COMMAND_SUCCEEDED,
            AuditEventType.BATCH_COMPLETED,
        ]


class TestSettings:
    def test_defaults_from_environment(self):
        settings = get_settings()
        assert settings.storage.backend == "memory"
        assert settings.exchange_rates.fallback_currency == "GBP"
        assert settings.exchange_rates.cache_ttl_hours == 24
        assert settings.app.default_identity_type == "personal"

    def test_validate_all_settings_reports_each_section(self):
        results = validate_all_settings()
        assert results["storage"] is True
        assert results["gemini"] is True
        assert "google_sheets" in results
