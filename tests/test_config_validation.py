"""Tests for configuration validation."""

from __future__ import annotations

import os
from unittest.mock import patch

from coachbill.config import Settings, validate_settings


def _settings(**overrides) -> Settings:
    base = {
        "database_url": "sqlite:///:memory:",
        "default_currency": "EUR",
        "invoice_number_prefix": "INV",
        "first_reminder_days": 3,
        "second_reminder_days": 7,
        "final_reminder_days": 15,
        "overdue_suspension_days": 30,
    }
    base.update(overrides)
    return Settings(**base)


class TestValidateSettings:
    def test_no_warnings_when_configured(self) -> None:
        assert validate_settings(_settings()) == []

    def test_bad_currency(self) -> None:
        warnings = validate_settings(_settings(default_currency="EURO"))
        assert any("DEFAULT_CURRENCY" in w for w in warnings)

    def test_empty_prefix(self) -> None:
        warnings = validate_settings(_settings(invoice_number_prefix=""))
        assert any("INVOICE_NUMBER_PREFIX" in w for w in warnings)

    def test_reminder_offsets_not_increasing(self) -> None:
        warnings = validate_settings(_settings(second_reminder_days=3))
        assert any("strictly increasing" in w for w in warnings)

    def test_localhost_database_in_production(self) -> None:
        s = _settings(database_url="postgresql+psycopg://u:p@localhost:5432/db")
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}, clear=False):
            warnings = validate_settings(s)
        assert any("localhost" in w for w in warnings)

    def test_localhost_database_in_dev(self) -> None:
        s = _settings(database_url="postgresql+psycopg://u:p@localhost:5432/db")
        with patch.dict(os.environ, {"ENVIRONMENT": "dev"}, clear=False):
            assert validate_settings(s) == []


class TestDefaultSchedule:
    def test_default_schedule_from_settings(self) -> None:
        from coachbill.services.billing.reminders import default_schedule

        schedule = default_schedule()
        assert schedule is not None
        assert schedule.offsets() == [3, 7, 15, 30]
