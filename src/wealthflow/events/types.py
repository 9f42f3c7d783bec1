"""Event type definitions for the ledger event stream.

These events are published to connected frontend clients so the shell can
show toasts and refresh views when the engines change the ledger.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events published by the engines and the shell."""

    # Recurring rules
    RECURRING_MATERIALIZED = "recurring.materialized"

    # Automations
    AUTOMATION_FIRED = "automation.fired"
    AUTOMATION_FAILED = "automation.failed"

    # Side effects of actions
    INVOICE_CREATED = "invoice.created"
    TRANSACTION_TAGGED = "transaction.tagged"
    NOTIFICATION_SENT = "notification.sent"

    # Deadline reminders
    REMINDER_DUE = "reminder.due"

    # Errors
    ERROR = "error"


@dataclass
class LedgerEvent:
    """Base event structure for all ledger events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class RuleEvent(LedgerEvent):
    """Event about a recurring or automation rule."""

    rule_id: str = ""
    rule_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["rule"] = {"id": self.rule_id, "name": self.rule_name}
        return base


@dataclass
class TransactionEvent(LedgerEvent):
    """Event about one ledger transaction."""

    transaction_id: str = ""
    account_id: str = ""
    amount: float = 0.0
    flow: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["transaction"] = {
            "id": self.transaction_id,
            "account_id": self.account_id,
            "amount": self.amount,
            "type": self.flow,
            "description": self.description,
        }
        return base


@dataclass
class NotificationEvent(LedgerEvent):
    """A user-facing message (toast, desktop notification)."""

    title: str = ""
    body: str = ""
    tag: str | None = None

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["notification"] = {"title": self.title, "body": self.body, "tag": self.tag}
        return base


# === Event Factory Functions ===


def recurring_materialized(
    rule_id: str, rule_name: str, transaction_count: int, next_run_date: datetime
) -> RuleEvent:
    """Create an event for a rule whose backlog was materialized."""
    return RuleEvent(
        event_type=EventType.RECURRING_MATERIALIZED,
        rule_id=rule_id,
        rule_name=rule_name,
        data={
            "transaction_count": transaction_count,
            "next_run_date": next_run_date.isoformat(),
        },
    )


def automation_fired(
    rule_id: str, rule_name: str, transaction_id: str, action: str
) -> RuleEvent:
    """Create an automation fired event."""
    return RuleEvent(
        event_type=EventType.AUTOMATION_FIRED,
        rule_id=rule_id,
        rule_name=rule_name,
        data={"transaction_id": transaction_id, "action": action},
    )


def automation_failed(
    rule_id: str, rule_name: str, transaction_id: str, error: str
) -> RuleEvent:
    """Create an event for an automation whose action failed."""
    return RuleEvent(
        event_type=EventType.AUTOMATION_FAILED,
        rule_id=rule_id,
        rule_name=rule_name,
        data={"transaction_id": transaction_id, "error": error[:500]},
    )


def invoice_created(
    invoice_id: str, number: str, amount: Decimal, entity_name: str
) -> LedgerEvent:
    """Create an invoice created event."""
    return LedgerEvent(
        event_type=EventType.INVOICE_CREATED,
        data={
            "invoice_id": invoice_id,
            "number": number,
            "amount": float(amount),
            "entity_name": entity_name,
        },
    )


def transaction_tagged(
    transaction_id: str, account_id: str, tag: str, description: str = ""
) -> TransactionEvent:
    """Create a transaction tagged event."""
    return TransactionEvent(
        event_type=EventType.TRANSACTION_TAGGED,
        transaction_id=transaction_id,
        account_id=account_id,
        description=description,
        data={"tag": tag},
    )


def notification_sent(title: str, body: str, tag: str | None = None) -> NotificationEvent:
    """Create a notification event."""
    return NotificationEvent(
        event_type=EventType.NOTIFICATION_SENT,
        title=title,
        body=body,
        tag=tag,
    )


def reminder_due(kind: str, title: str, body: str, tag: str) -> NotificationEvent:
    """Create a deadline reminder event."""
    return NotificationEvent(
        event_type=EventType.REMINDER_DUE,
        title=title,
        body=body,
        tag=tag,
        data={"kind": kind},
    )


def error_event(error: str, context: dict[str, Any] | None = None) -> LedgerEvent:
    """Create an error event."""
    return LedgerEvent(
        event_type=EventType.ERROR,
        data={"error": error, "context": context or {}},
    )
