"""Configuration module for WealthFlow."""

from wealthflow.config.logging import configure_logging
from wealthflow.config.settings import NotificationConfig, WealthFlowSettings, get_settings

__all__ = [
    "NotificationConfig",
    "WealthFlowSettings",
    "get_settings",
    "configure_logging",
]
