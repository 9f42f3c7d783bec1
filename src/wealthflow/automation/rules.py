"""Automation rules: one trigger variant paired with one action variant.

The hosted store keeps triggers and actions as ``{"type": ..., "conditions":
{...}}`` and ``{"type": ..., "params": {...}}`` bags. Parsing turns those
into the frozen variants below, each carrying only the fields it uses; a
bag that cannot form a valid variant raises ``RuleValidationError``.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from wealthflow.errors import RuleValidationError
from wealthflow.models import new_id, to_decimal, to_utc


class TriggerType(str, Enum):
    TRANSACTION_RECEIVED = "transaction_received"
    BALANCE_BELOW = "balance_below"
    CATEGORY_EXCEEDS = "category_exceeds"


class ActionType(str, Enum):
    CREATE_INVOICE = "create_invoice"
    SEND_NOTIFICATION = "send_notification"
    ADD_TAG = "add_tag"


# === Triggers ===


@dataclass(frozen=True)
class TransactionReceived:
    """Matches a transaction; every unset condition means "don't care"."""

    kind: ClassVar[TriggerType] = TriggerType.TRANSACTION_RECEIVED

    account_id: str | None = None
    category: str | None = None
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    description_contains: str | None = None

    def __post_init__(self) -> None:
        for name in ("amount_min", "amount_max"):
            value = getattr(self, name)
            if value is None:
                continue
            value = to_decimal(value, name)
            if value < 0:
                raise RuleValidationError(f"{name} cannot be negative", field=name)
            object.__setattr__(self, name, value)
        if (
            self.amount_min is not None
            and self.amount_max is not None
            and self.amount_min > self.amount_max
        ):
            raise RuleValidationError(
                "amount_min cannot exceed amount_max", field="amount_min"
            )


@dataclass(frozen=True)
class BalanceBelow:
    """Matches while an account's current balance is under a threshold."""

    kind: ClassVar[TriggerType] = TriggerType.BALANCE_BELOW

    account_id: str
    threshold: Decimal

    def __post_init__(self) -> None:
        if not self.account_id:
            raise RuleValidationError("balance_below requires an account", field="accountId")
        object.__setattr__(self, "threshold", to_decimal(self.threshold, "balanceThreshold"))


@dataclass(frozen=True)
class CategoryExceeds:
    """Matches once this month's spending in a category passes a limit."""

    kind: ClassVar[TriggerType] = TriggerType.CATEGORY_EXCEEDS

    category: str
    limit: Decimal

    def __post_init__(self) -> None:
        if not self.category:
            raise RuleValidationError("category_exceeds requires a category", field="category")
        limit = to_decimal(self.limit, "categoryLimit")
        if limit < 0:
            raise RuleValidationError("categoryLimit cannot be negative", field="categoryLimit")
        object.__setattr__(self, "limit", limit)


Trigger = TransactionReceived | BalanceBelow | CategoryExceeds


# === Actions ===


@dataclass(frozen=True)
class CreateInvoice:
    """Issue an invoice; without an amount the action does nothing."""

    kind: ClassVar[ActionType] = ActionType.CREATE_INVOICE

    amount: Decimal | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if self.amount is None:
            return
        amount = to_decimal(self.amount, "invoiceAmount")
        if amount <= 0:
            raise RuleValidationError("invoiceAmount must be positive", field="invoiceAmount")
        object.__setattr__(self, "amount", amount)


@dataclass(frozen=True)
class SendNotification:
    kind: ClassVar[ActionType] = ActionType.SEND_NOTIFICATION

    title: str | None = None
    body: str | None = None


@dataclass(frozen=True)
class AddTag:
    kind: ClassVar[ActionType] = ActionType.ADD_TAG

    tag: str | None = None


Action = CreateInvoice | SendNotification | AddTag


# === Parsing ===


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _optional_text(bag: dict[str, Any], key: str) -> str | None:
    value = bag.get(key)
    return None if _blank(value) else str(value)


def _optional_amount(bag: dict[str, Any], key: str) -> Decimal | None:
    value = bag.get(key)
    if _blank(value):
        return None
    amount = to_decimal(value, key)
    # Stored forms write 0 for an untouched amount bound.
    return None if amount == 0 else amount


def _required(bag: dict[str, Any], key: str, trigger_type: TriggerType) -> Any:
    value = bag.get(key)
    if _blank(value):
        raise RuleValidationError(
            f"{trigger_type.value} trigger requires '{key}'", field=key
        )
    return value


def _variant_bag(record: Any, bag_key: str, what: str) -> tuple[str, dict[str, Any]]:
    if isinstance(record, list):
        raise RuleValidationError(f"A rule must have exactly one {what}", field=what)
    if not isinstance(record, dict):
        raise RuleValidationError(f"Invalid {what}: {record!r}", field=what)
    bag = record.get(bag_key) or {}
    if not isinstance(bag, dict):
        raise RuleValidationError(f"Invalid {what} {bag_key}: {bag!r}", field=bag_key)
    return str(record.get("type", "")), bag


def parse_trigger(record: dict[str, Any]) -> Trigger:
    """Build a trigger variant from a stored ``{"type", "conditions"}`` bag."""
    raw_type, conditions = _variant_bag(record, "conditions", "trigger")
    try:
        trigger_type = TriggerType(raw_type)
    except ValueError as e:
        raise RuleValidationError(f"Unknown trigger type: {raw_type!r}", field="trigger") from e

    if trigger_type == TriggerType.TRANSACTION_RECEIVED:
        return TransactionReceived(
            account_id=_optional_text(conditions, "accountId"),
            category=_optional_text(conditions, "category"),
            amount_min=_optional_amount(conditions, "amountMin"),
            amount_max=_optional_amount(conditions, "amountMax"),
            description_contains=_optional_text(conditions, "descriptionContains"),
        )
    if trigger_type == TriggerType.BALANCE_BELOW:
        return BalanceBelow(
            account_id=str(_required(conditions, "accountId", trigger_type)),
            threshold=to_decimal(
                _required(conditions, "balanceThreshold", trigger_type), "balanceThreshold"
            ),
        )
    return CategoryExceeds(
        category=str(_required(conditions, "category", trigger_type)),
        limit=to_decimal(_required(conditions, "categoryLimit", trigger_type), "categoryLimit"),
    )


def parse_action(record: dict[str, Any]) -> Action:
    """Build an action variant from a stored ``{"type", "params"}`` bag."""
    raw_type, params = _variant_bag(record, "params", "action")
    try:
        action_type = ActionType(raw_type)
    except ValueError as e:
        raise RuleValidationError(f"Unknown action type: {raw_type!r}", field="action") from e

    if action_type == ActionType.CREATE_INVOICE:
        return CreateInvoice(
            amount=_optional_amount(params, "invoiceAmount"),
            description=_optional_text(params, "invoiceDescription"),
        )
    if action_type == ActionType.SEND_NOTIFICATION:
        return SendNotification(
            title=_optional_text(params, "notificationTitle"),
            body=_optional_text(params, "notificationBody"),
        )
    return AddTag(tag=_optional_text(params, "tag"))


def _drop_none(bag: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in bag.items() if v is not None}


def _number(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def trigger_to_record(trigger: Trigger) -> dict[str, Any]:
    if isinstance(trigger, TransactionReceived):
        conditions = {
            "accountId": trigger.account_id,
            "category": trigger.category,
            "amountMin": _number(trigger.amount_min),
            "amountMax": _number(trigger.amount_max),
            "descriptionContains": trigger.description_contains,
        }
    elif isinstance(trigger, BalanceBelow):
        conditions = {
            "accountId": trigger.account_id,
            "balanceThreshold": float(trigger.threshold),
        }
    else:
        conditions = {"category": trigger.category, "categoryLimit": float(trigger.limit)}
    return {"type": trigger.kind.value, "conditions": _drop_none(conditions)}


def action_to_record(action: Action) -> dict[str, Any]:
    if isinstance(action, CreateInvoice):
        params = {
            "invoiceAmount": _number(action.amount),
            "invoiceDescription": action.description,
        }
    elif isinstance(action, SendNotification):
        params = {"notificationTitle": action.title, "notificationBody": action.body}
    else:
        params = {"tag": action.tag}
    return {"type": action.kind.value, "params": _drop_none(params)}


# === Rules ===


@dataclass(frozen=True)
class AutomationRule:
    """A user-defined trigger/action pair plus its firing statistics."""

    id: str
    name: str
    trigger: Trigger
    action: Action
    description: str = ""
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_triggered: datetime | None = None
    trigger_count: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.trigger, (TransactionReceived, BalanceBelow, CategoryExceeds)):
            raise RuleValidationError(f"Invalid trigger: {self.trigger!r}", field="trigger")
        if not isinstance(self.action, (CreateInvoice, SendNotification, AddTag)):
            raise RuleValidationError(f"Invalid action: {self.action!r}", field="action")
        if self.trigger_count < 0:
            raise RuleValidationError("triggerCount cannot be negative", field="triggerCount")
        object.__setattr__(self, "created_at", to_utc(self.created_at))
        if self.last_triggered is not None:
            object.__setattr__(self, "last_triggered", to_utc(self.last_triggered))

    @classmethod
    def create(
        cls,
        name: str,
        trigger: Trigger,
        action: Action,
        description: str = "",
        rule_id: str | None = None,
    ) -> "AutomationRule":
        if not name.strip():
            raise RuleValidationError("Rule name cannot be empty", field="name")
        return cls(
            id=rule_id or new_id(),
            name=name,
            trigger=trigger,
            action=action,
            description=description,
        )

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AutomationRule":
        if "triggers" in record or "actions" in record:
            raise RuleValidationError(
                "A rule must have exactly one trigger and one action", field="trigger"
            )
        if "trigger" not in record or "action" not in record:
            raise RuleValidationError("A rule needs a trigger and an action", field="trigger")
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            description=record.get("description") or "",
            active=bool(record.get("active", True)),
            trigger=parse_trigger(record["trigger"]),
            action=parse_action(record["action"]),
            created_at=record.get("createdAt") or datetime.now(timezone.utc),
            last_triggered=record.get("lastTriggered") or None,
            trigger_count=int(record.get("triggerCount") or 0),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "active": self.active,
            "trigger": trigger_to_record(self.trigger),
            "action": action_to_record(self.action),
            "createdAt": self.created_at.isoformat(),
            "lastTriggered": self.last_triggered.isoformat() if self.last_triggered else None,
            "triggerCount": self.trigger_count,
        }

    def record_fire(self, at: datetime, times: int = 1) -> "AutomationRule":
        """Copy of the rule with its firing statistics advanced."""
        return replace(self, last_triggered=to_utc(at), trigger_count=self.trigger_count + times)

    def with_active(self, active: bool) -> "AutomationRule":
        return replace(self, active=active)
