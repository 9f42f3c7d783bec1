"""Configuration settings for the WealthFlow engines."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WealthFlowSettings(BaseSettings):
    """Flat settings read from environment variables (or a .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    # Recurring transactions
    auto_description_suffix: str = Field(
        default=" (Auto)", validation_alias="AUTO_DESCRIPTION_SUFFIX"
    )

    # Automation-created invoices
    invoice_due_days: int = Field(default=30, ge=0, validation_alias="INVOICE_DUE_DAYS")
    invoice_number_prefix: str = Field(
        default="AUTO", validation_alias="INVOICE_NUMBER_PREFIX"
    )

    # Notification preferences
    notifications_enabled: bool = Field(
        default=False, validation_alias="NOTIFICATIONS_ENABLED"
    )
    notify_invoice_deadlines: bool = Field(
        default=True, validation_alias="NOTIFY_INVOICE_DEADLINES"
    )
    notify_budget_alerts: bool = Field(default=True, validation_alias="NOTIFY_BUDGET_ALERTS")
    notify_subscription_renewals: bool = Field(
        default=True, validation_alias="NOTIFY_SUBSCRIPTION_RENEWALS"
    )
    notify_loan_payments: bool = Field(default=True, validation_alias="NOTIFY_LOAN_PAYMENTS")
    invoice_reminder_days: int = Field(
        default=3, ge=0, validation_alias="INVOICE_REMINDER_DAYS"
    )
    subscription_reminder_days: int = Field(
        default=1, ge=0, validation_alias="SUBSCRIPTION_REMINDER_DAYS"
    )
    loan_reminder_days: int = Field(default=3, ge=0, validation_alias="LOAN_REMINDER_DAYS")

    # Notification delivery
    notify_webhook_url: str | None = Field(default=None, validation_alias="NOTIFY_WEBHOOK_URL")
    notify_webhook_timeout: float = Field(
        default=10.0, validation_alias="NOTIFY_WEBHOOK_TIMEOUT"
    )

    # WebSocket event stream
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")


@dataclass(frozen=True)
class NotificationConfig:
    """Which reminder families are enabled, and how far ahead they look."""

    enabled: bool = False
    invoice_deadlines: bool = True
    budget_alerts: bool = True
    subscription_renewals: bool = True
    loan_payments: bool = True
    invoice_reminder_days: int = 3
    subscription_reminder_days: int = 1
    loan_reminder_days: int = 3

    @classmethod
    def from_settings(cls, settings: WealthFlowSettings) -> "NotificationConfig":
        return cls(
            enabled=settings.notifications_enabled,
            invoice_deadlines=settings.notify_invoice_deadlines,
            budget_alerts=settings.notify_budget_alerts,
            subscription_renewals=settings.notify_subscription_renewals,
            loan_payments=settings.notify_loan_payments,
            invoice_reminder_days=settings.invoice_reminder_days,
            subscription_reminder_days=settings.subscription_reminder_days,
            loan_reminder_days=settings.loan_reminder_days,
        )


@lru_cache
def get_settings() -> WealthFlowSettings:
    """Get cached settings instance."""
    return WealthFlowSettings()
