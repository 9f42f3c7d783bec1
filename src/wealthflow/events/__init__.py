"""Ledger event stream: event types and the WebSocket publisher."""

from wealthflow.events.publisher import EventPublisher, get_publisher
from wealthflow.events.types import (
    EventType,
    LedgerEvent,
    NotificationEvent,
    RuleEvent,
    TransactionEvent,
    automation_failed,
    automation_fired,
    error_event,
    invoice_created,
    notification_sent,
    recurring_materialized,
    reminder_due,
    transaction_tagged,
)

__all__ = [
    "EventPublisher",
    "get_publisher",
    "EventType",
    "LedgerEvent",
    "NotificationEvent",
    "RuleEvent",
    "TransactionEvent",
    "automation_failed",
    "automation_fired",
    "error_event",
    "invoice_created",
    "notification_sent",
    "recurring_materialized",
    "reminder_due",
    "transaction_tagged",
]
