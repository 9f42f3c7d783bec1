"""Ledger data model shared by the recurrence and automation engines.

Records coming from the hosted table store use camelCase keys
(``accountId``, ``nextRunDate``, ``isBusiness``) and carry the flow
direction under ``type``. The ``from_record``/``to_record`` helpers are the
only place that shape is known.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import uuid4

from wealthflow.errors import RuleValidationError


class FlowDirection(str, Enum):
    """Whether money enters or leaves an account."""

    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """Recurrence period of a recurring rule."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class AccountType(str, Enum):
    BANK = "bank"
    CASH = "cash"
    CREDIT_CARD = "credit_card"


class InvoiceType(str, Enum):
    ISSUED = "issued"
    RECEIVED = "received"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"


def new_id() -> str:
    """Generate a fresh record identifier."""
    return str(uuid4())


def to_utc(value: datetime | date | str) -> datetime:
    """Coerce a date, datetime or ISO string into an aware UTC datetime.

    Naive values are interpreted as UTC.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise RuleValidationError(f"Invalid date: {value!r}") from e
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Convert a store value to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise RuleValidationError(f"Invalid {field_name}: {value!r}", field=field_name) from e


def _enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise RuleValidationError(
            f"Invalid {field_name} {value!r} (expected one of: {allowed})",
            field=field_name,
        ) from e


def _optional_instant(value: Any) -> datetime | None:
    return to_utc(value) if value else None


@dataclass(frozen=True)
class Transaction:
    """A ledger entry. The amount is a magnitude; ``flow`` carries the sign."""

    id: str
    amount: Decimal
    flow: FlowDirection
    category: str
    description: str
    date: datetime
    account_id: str
    is_business: bool = False
    origin_rule_id: str | None = None
    idempotency_key: str | None = None
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "flow", _enum(FlowDirection, self.flow, "type"))
        object.__setattr__(self, "date", to_utc(self.date))
        object.__setattr__(self, "tags", tuple(self.tags))
        if self.amount < 0:
            raise RuleValidationError(
                "Transaction amount must be non-negative; use the flow direction for sign",
                field="amount",
            )

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.flow == FlowDirection.INCOME else -self.amount

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Transaction":
        return cls(
            id=str(record["id"]),
            amount=to_decimal(record["amount"]),
            flow=record["type"],
            category=record.get("category") or "",
            description=record.get("description") or "",
            date=record["date"],
            account_id=str(record.get("accountId") or ""),
            is_business=bool(record.get("isBusiness", False)),
            origin_rule_id=record.get("originRuleId"),
            idempotency_key=record.get("idempotencyKey"),
            tags=tuple(record.get("tags") or ()),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": float(self.amount),
            "type": self.flow.value,
            "category": self.category,
            "description": self.description,
            "date": self.date.isoformat(),
            "accountId": self.account_id,
            "isBusiness": self.is_business,
            "originRuleId": self.origin_rule_id,
            "idempotencyKey": self.idempotency_key,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class RecurringRule:
    """Template that materializes one transaction per elapsed period."""

    id: str
    description: str
    amount: Decimal
    flow: FlowDirection
    category: str
    account_id: str
    frequency: Frequency
    start_date: datetime
    next_run_date: datetime
    active: bool = True
    is_business: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "flow", _enum(FlowDirection, self.flow, "type"))
        object.__setattr__(self, "frequency", _enum(Frequency, self.frequency, "frequency"))
        object.__setattr__(self, "start_date", to_utc(self.start_date))
        object.__setattr__(self, "next_run_date", to_utc(self.next_run_date))
        if self.amount <= 0:
            raise RuleValidationError("Recurring amount must be positive", field="amount")

    @classmethod
    def create(
        cls,
        description: str,
        amount: Decimal,
        flow: FlowDirection | str,
        category: str,
        account_id: str,
        frequency: Frequency | str,
        start_date: datetime | date | str,
        is_business: bool = False,
        rule_id: str | None = None,
    ) -> "RecurringRule":
        """Create a new active rule whose first run is its start date."""
        if not description.strip():
            raise RuleValidationError("Description cannot be empty", field="description")
        start = to_utc(start_date)
        return cls(
            id=rule_id or new_id(),
            description=description,
            amount=amount,
            flow=flow,
            category=category,
            account_id=account_id,
            frequency=frequency,
            start_date=start,
            next_run_date=start,
            is_business=is_business,
        )

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RecurringRule":
        start = record.get("startDate") or record["nextRunDate"]
        return cls(
            id=str(record["id"]),
            description=record.get("description") or "",
            amount=to_decimal(record["amount"]),
            flow=record["type"],
            category=record.get("category") or "",
            account_id=str(record.get("accountId") or ""),
            frequency=record["frequency"],
            start_date=start,
            next_run_date=record.get("nextRunDate") or start,
            active=bool(record.get("active", True)),
            is_business=bool(record.get("isBusiness", False)),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "amount": float(self.amount),
            "type": self.flow.value,
            "category": self.category,
            "accountId": self.account_id,
            "frequency": self.frequency.value,
            "startDate": self.start_date.isoformat(),
            "nextRunDate": self.next_run_date.isoformat(),
            "active": self.active,
            "isBusiness": self.is_business,
        }


@dataclass(frozen=True)
class Account:
    """An account; ``balance`` is a cache derived from the ledger."""

    id: str
    name: str
    type: AccountType
    initial_balance: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    payment_day: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _enum(AccountType, self.type, "type"))
        object.__setattr__(self, "initial_balance", to_decimal(self.initial_balance))
        object.__setattr__(self, "balance", to_decimal(self.balance, "balance"))
        if self.payment_day is not None and not 1 <= self.payment_day <= 31:
            raise RuleValidationError("Payment day must be between 1 and 31", field="paymentDay")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Account":
        initial = to_decimal(record.get("initialBalance", 0), "initialBalance")
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            type=record.get("type", AccountType.BANK.value),
            initial_balance=initial,
            balance=to_decimal(record.get("balance", initial), "balance"),
            payment_day=record.get("paymentDay"),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "initialBalance": float(self.initial_balance),
            "balance": float(self.balance),
            "paymentDay": self.payment_day,
        }


@dataclass(frozen=True)
class Invoice:
    id: str
    number: str
    type: InvoiceType
    amount: Decimal
    entity_name: str
    date: datetime
    due_date: datetime
    status: InvoiceStatus = InvoiceStatus.DRAFT
    linked_transaction_id: str | None = None
    category: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _enum(InvoiceType, self.type, "type"))
        object.__setattr__(self, "status", _enum(InvoiceStatus, self.status, "status"))
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "date", to_utc(self.date))
        object.__setattr__(self, "due_date", to_utc(self.due_date))

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Invoice":
        return cls(
            id=str(record["id"]),
            number=record.get("number") or "",
            type=record.get("type", InvoiceType.ISSUED.value),
            amount=to_decimal(record["amount"]),
            entity_name=record.get("entityName") or "",
            date=record["date"],
            due_date=record["dueDate"],
            status=record.get("status", InvoiceStatus.DRAFT.value),
            linked_transaction_id=record.get("linkedTransactionId"),
            category=record.get("category"),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "type": self.type.value,
            "amount": float(self.amount),
            "entityName": self.entity_name,
            "date": self.date.isoformat(),
            "dueDate": self.due_date.isoformat(),
            "status": self.status.value,
            "linkedTransactionId": self.linked_transaction_id,
            "category": self.category,
        }


@dataclass(frozen=True)
class Subscription:
    id: str
    name: str
    cost: Decimal
    frequency: Frequency
    next_payment_date: datetime
    category: str = ""
    active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "cost", to_decimal(self.cost, "cost"))
        object.__setattr__(self, "frequency", _enum(Frequency, self.frequency, "frequency"))
        object.__setattr__(self, "next_payment_date", to_utc(self.next_payment_date))

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Subscription":
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            cost=to_decimal(record["cost"], "cost"),
            frequency=record.get("frequency", Frequency.MONTHLY.value),
            next_payment_date=record["nextPaymentDate"],
            category=record.get("category") or "",
            active=bool(record.get("active", True)),
        )


@dataclass(frozen=True)
class Loan:
    id: str
    name: str
    total_amount: Decimal
    remaining_amount: Decimal
    monthly_payment: Decimal
    interest_rate: Decimal | None = None
    next_payment_date: datetime | None = None
    reminder_enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_amount", to_decimal(self.total_amount, "totalAmount"))
        object.__setattr__(
            self, "remaining_amount", to_decimal(self.remaining_amount, "remainingAmount")
        )
        object.__setattr__(
            self, "monthly_payment", to_decimal(self.monthly_payment, "monthlyPayment")
        )
        object.__setattr__(self, "next_payment_date", _optional_instant(self.next_payment_date))

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Loan":
        rate = record.get("interestRate")
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            total_amount=record["totalAmount"],
            remaining_amount=record.get("remainingAmount", record["totalAmount"]),
            monthly_payment=record["monthlyPayment"],
            interest_rate=to_decimal(rate, "interestRate") if rate is not None else None,
            next_payment_date=record.get("nextPaymentDate"),
            # Older records predate the flag; they always reminded.
            reminder_enabled=record.get("reminderEnabled") is not False,
        )


@dataclass(frozen=True)
class Budget:
    """Monthly spending limit for one expense category."""

    category: str
    limit: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "limit", to_decimal(self.limit, "limit"))

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Budget":
        return cls(category=record["category"], limit=record["limit"])

