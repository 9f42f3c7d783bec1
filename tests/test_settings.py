"""Tests for configuration settings."""

import pytest
from pydantic import ValidationError

from wealthflow.config.settings import NotificationConfig, WealthFlowSettings, get_settings


def test_settings_has_defaults(monkeypatch):
    """Test that settings has sensible defaults."""
    for name in ("AUTO_DESCRIPTION_SUFFIX", "INVOICE_DUE_DAYS", "NOTIFICATIONS_ENABLED"):
        monkeypatch.delenv(name, raising=False)

    settings = WealthFlowSettings(_env_file=None)

    assert settings.auto_description_suffix == " (Auto)"
    assert settings.invoice_due_days == 30
    assert settings.invoice_number_prefix == "AUTO"
    assert settings.notifications_enabled is False
    assert settings.invoice_reminder_days == 3
    assert settings.subscription_reminder_days == 1
    assert settings.loan_reminder_days == 3
    assert settings.ws_port == 8765


def test_settings_loads_from_env(monkeypatch):
    """Test that settings loads from environment variables."""
    monkeypatch.setenv("AUTO_DESCRIPTION_SUFFIX", " [recurring]")
    monkeypatch.setenv("INVOICE_DUE_DAYS", "14")
    monkeypatch.setenv("NOTIFICATIONS_ENABLED", "true")
    monkeypatch.setenv("NOTIFY_LOAN_PAYMENTS", "false")
    monkeypatch.setenv("LOG_FORMAT", "json")

    settings = get_settings()

    assert settings.auto_description_suffix == " [recurring]"
    assert settings.invoice_due_days == 14
    assert settings.notifications_enabled is True
    assert settings.notify_loan_payments is False
    assert settings.log_format == "json"


def test_settings_rejects_negative_due_days(monkeypatch):
    monkeypatch.setenv("INVOICE_DUE_DAYS", "-1")

    with pytest.raises(ValidationError):
        WealthFlowSettings(_env_file=None)


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_notification_config_from_settings(monkeypatch):
    monkeypatch.setenv("NOTIFICATIONS_ENABLED", "1")
    monkeypatch.setenv("NOTIFY_BUDGET_ALERTS", "0")
    monkeypatch.setenv("INVOICE_REMINDER_DAYS", "7")

    config = NotificationConfig.from_settings(WealthFlowSettings(_env_file=None))

    assert config.enabled is True
    assert config.budget_alerts is False
    assert config.invoice_deadlines is True
    assert config.invoice_reminder_days == 7
