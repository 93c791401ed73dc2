"""
Unit Tests for the Ambient Stack

Tests:
- Settings loading and production validation
- JSON log formatting with pass context
- Sentry event redaction
- Link table migration

Run with: pytest backend/tests/test_infrastructure.py -v
"""

import json
import logging

import pytest
from sqlalchemy import inspect

from config import Settings, get_settings, validate_environment
from database.connection import build_engine
from logging_config import JSONFormatter, PassContextFilter
from migrations.create_sync_link_tables import create_tables
from sentry_integration import filter_sensitive_data, redact_dict


class TestSettings:
    """Test suite for Settings and get_settings."""

    def test_defaults(self):
        settings = Settings()

        assert settings.BUCKET_MAX_ITERATIONS == 1_000_000
        assert settings.DEFAULT_COUNTRY_PREFIX == "+49"
        assert settings.is_development

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "staging")
        monkeypatch.setenv("BANK_MIN_SCORE", "3")

        settings = get_settings()

        assert settings.ENVIRONMENT == "staging"
        assert settings.BANK_MIN_SCORE == 3
        assert get_settings() is settings

    def test_production_rejects_sqlite(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///./prod.db")

        with pytest.raises(ValueError):
            get_settings()

    def test_invalid_limits_reported(self, monkeypatch):
        monkeypatch.setenv("CONTACT_MIN_SCORE", "0")

        status = validate_environment()

        assert status["valid"] is False
        assert "Minimum match scores must be at least 1" in status["errors"]


class TestJSONLogging:
    """Test suite for JSONFormatter and PassContextFilter."""

    def _record(self, **extra):
        record = logging.LogRecord("reconciliation", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_pass_context_promoted(self):
        context = PassContextFilter()
        context.set_pass_context("run-1", "CONTACT")
        record = self._record(event="reconciliation.pass_started")

        context.filter(record)
        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello world"
        assert data["run_id"] == "run-1"
        assert data["entity_type"] == "CONTACT"
        assert data["extra"] == {"event": "reconciliation.pass_started"}

    def test_cleared_context(self):
        context = PassContextFilter()
        context.set_pass_context("run-1", "CONTACT")
        context.clear_pass_context()
        record = self._record()

        context.filter(record)
        data = json.loads(JSONFormatter().format(record))

        assert data["run_id"] is None
        assert "extra" not in data


class TestSentryRedaction:
    """Test suite for Sentry event filtering."""

    def test_record_contents_redacted(self):
        redacted = redact_dict({
            "run_id": "run-1",
            "fields": {"name": "Kai"},
            "nested": {"email": "kai@example.org", "left_id": 1},
        })

        assert redacted["run_id"] == "run-1"
        assert redacted["fields"] == "[REDACTED]"
        assert redacted["nested"] == {"email": "[REDACTED]", "left_id": 1}

    def test_event_extra_filtered(self):
        event = filter_sensitive_data({"extra": {"phone": "0561 1"}}, {})

        assert event["extra"]["phone"] == "[REDACTED]"


class TestMigration:
    """Test suite for the sync link table migration."""

    def test_creates_table_once(self):
        engine = build_engine("sqlite://")

        assert create_tables(engine) == ["reconciliation_sync_links"]
        assert create_tables(engine) == []
        assert "reconciliation_sync_links" in inspect(engine).get_table_names()
