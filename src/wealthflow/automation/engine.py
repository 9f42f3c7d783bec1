"""Rule engine that evaluates automations against observed transactions.

Evaluation is pure: it reads the transaction, account balances and the
ledger, and never changes them. Dispatch performs the rule's action through
injected collaborators. For one observed transaction, every rule is
evaluated before any action runs, so no rule sees another rule's effects
within the same batch.
"""

from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import structlog

from wealthflow.accounts import monthly_expense_total
from wealthflow.automation.rules import (
    ActionType,
    AddTag,
    AutomationRule,
    BalanceBelow,
    CategoryExceeds,
    CreateInvoice,
    SendNotification,
    TransactionReceived,
)
from wealthflow.errors import CollaboratorError
from wealthflow.models import (
    Account,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    Transaction,
    new_id,
    to_utc,
)
logger = structlog.get_logger(__name__)

DEFAULT_NOTIFICATION_TITLE = "Automation triggered"
DEFAULT_INVOICE_DUE_DAYS = 30
DEFAULT_INVOICE_PREFIX = "AUTO"

InvoiceCreator = Callable[[Invoice], Any]
Tagger = Callable[[str, str], Any]


class NotificationSink(Protocol):
    """Accepts a notification synchronously, during dispatch.

    Asynchronous channels are not called here; a caller that delivers over
    the network records the request and sends ``DispatchResult.notification``
    after the batch.
    """

    def notify(self, title: str, body: str, tag: str | None = None) -> Any: ...


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    tag: str


@dataclass
class Collaborators:
    """Side-effect channels an action may use. Missing ones make it a no-op."""

    notifier: NotificationSink | None = None
    create_invoice: InvoiceCreator | None = None
    add_tag: Tagger | None = None


@dataclass
class DispatchResult:
    """What an action did, or why it did nothing."""

    action: ActionType
    performed: bool
    skipped_reason: str | None = None
    invoice: Invoice | None = None
    tag: str | None = None
    notification: Notification | None = None


@dataclass
class RuleFiring:
    """A rule that matched a transaction, with the outcome of its action.

    A firing counts towards the rule's statistics even when the action
    failed; ``error`` carries the collaborator failure for the caller.
    """

    rule_id: str
    rule_name: str
    transaction_id: str
    fired_at: datetime
    result: DispatchResult | None = None
    error: CollaboratorError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class AutomationReport:
    """Every firing produced by one or more evaluation batches."""

    firings: list[RuleFiring] = field(default_factory=list)
    evaluated_transactions: int = 0

    @property
    def failures(self) -> list[RuleFiring]:
        return [f for f in self.firings if f.error is not None]

    @property
    def fired_rule_ids(self) -> list[str]:
        return [f.rule_id for f in self.firings]

    def extend(self, other: "AutomationReport") -> None:
        self.firings.extend(other.firings)
        self.evaluated_transactions += other.evaluated_transactions


def _matches_transaction(trigger: TransactionReceived, transaction: Transaction) -> bool:
    if trigger.account_id is not None and transaction.account_id != trigger.account_id:
        return False
    if trigger.category is not None and transaction.category != trigger.category:
        return False
    if trigger.amount_min is not None and transaction.amount < trigger.amount_min:
        return False
    if trigger.amount_max is not None and transaction.amount > trigger.amount_max:
        return False
    if trigger.description_contains is not None:
        needle = trigger.description_contains.casefold()
        if needle not in transaction.description.casefold():
            return False
    return True


def evaluate(
    rule: AutomationRule,
    transaction: Transaction,
    accounts: Sequence[Account],
    transactions: Iterable[Transaction],
    now: datetime | None = None,
) -> bool:
    """Return True if the rule's trigger matches the current state."""
    trigger = rule.trigger

    if isinstance(trigger, TransactionReceived):
        return _matches_transaction(trigger, transaction)

    if isinstance(trigger, BalanceBelow):
        account = next((a for a in accounts if a.id == trigger.account_id), None)
        if account is None:
            return False
        return account.balance < trigger.threshold

    if isinstance(trigger, CategoryExceeds):
        current = to_utc(now) if now else datetime.now(timezone.utc)
        spent = monthly_expense_total(transactions, trigger.category, current)
        return spent > trigger.limit

    return False


class AutomationEngine:
    """Evaluates automation rules and dispatches their actions."""

    def __init__(
        self,
        invoice_due_days: int = DEFAULT_INVOICE_DUE_DAYS,
        invoice_prefix: str = DEFAULT_INVOICE_PREFIX,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] = new_id,
    ):
        self._invoice_due_days = invoice_due_days
        self._invoice_prefix = invoice_prefix
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory
        self._logger = logger.bind(component="automation_engine")

    def now(self) -> datetime:
        return to_utc(self._clock())

    def evaluate(
        self,
        rule: AutomationRule,
        transaction: Transaction,
        accounts: Sequence[Account],
        transactions: Iterable[Transaction],
    ) -> bool:
        return evaluate(rule, transaction, accounts, transactions, now=self.now())

    # === Actions ===

    def dispatch(
        self,
        rule: AutomationRule,
        transaction: Transaction,
        collaborators: Collaborators,
    ) -> DispatchResult:
        """Perform the rule's action.

        Missing parameters or collaborators make the action a no-op. A
        collaborator that raises is reported as ``CollaboratorError``.
        """
        action = rule.action
        if isinstance(action, CreateInvoice):
            return self._create_invoice(action, transaction, collaborators)
        if isinstance(action, SendNotification):
            return self._send_notification(rule, action, transaction, collaborators)
        if isinstance(action, AddTag):
            return self._add_tag(action, transaction, collaborators)
        return DispatchResult(action=action.kind, performed=False, skipped_reason="unknown action")

    def build_invoice(self, action: CreateInvoice, transaction: Transaction) -> Invoice | None:
        """Invoice an action would issue for a transaction, or None without an amount."""
        if action.amount is None:
            return None
        issued = self.now()
        return Invoice(
            id=self._id_factory(),
            number=f"{self._invoice_prefix}-{issued:%Y%m%d%H%M%S}-{self._id_factory()[:6]}",
            type=InvoiceType.ISSUED,
            amount=action.amount,
            entity_name=action.description or transaction.description,
            date=issued,
            due_date=issued + timedelta(days=self._invoice_due_days),
            status=InvoiceStatus.SENT,
        )

    def _create_invoice(
        self, action: CreateInvoice, transaction: Transaction, collaborators: Collaborators
    ) -> DispatchResult:
        if collaborators.create_invoice is None:
            return DispatchResult(
                action=action.kind, performed=False, skipped_reason="no invoice creator"
            )
        invoice = self.build_invoice(action, transaction)
        if invoice is None:
            return DispatchResult(
                action=action.kind, performed=False, skipped_reason="no invoice amount"
            )
        try:
            collaborators.create_invoice(invoice)
        except Exception as e:
            raise CollaboratorError("invoice creator", str(e)) from e
        return DispatchResult(action=action.kind, performed=True, invoice=invoice)

    def _send_notification(
        self,
        rule: AutomationRule,
        action: SendNotification,
        transaction: Transaction,
        collaborators: Collaborators,
    ) -> DispatchResult:
        if collaborators.notifier is None:
            return DispatchResult(action=action.kind, performed=False, skipped_reason="no notifier")
        notification = Notification(
            title=action.title or DEFAULT_NOTIFICATION_TITLE,
            body=action.body or f'Rule "{rule.name}" ran for {transaction.description}',
            tag=f"automation-{rule.id}",
        )
        try:
            collaborators.notifier.notify(
                notification.title, notification.body, tag=notification.tag
            )
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError("notifier", str(e)) from e
        return DispatchResult(action=action.kind, performed=True, notification=notification)

    def _add_tag(
        self, action: AddTag, transaction: Transaction, collaborators: Collaborators
    ) -> DispatchResult:
        if not action.tag:
            return DispatchResult(action=action.kind, performed=False, skipped_reason="no tag")
        if collaborators.add_tag is None:
            return DispatchResult(action=action.kind, performed=False, skipped_reason="no tagger")
        try:
            collaborators.add_tag(transaction.id, action.tag)
        except Exception as e:
            raise CollaboratorError("tagger", str(e)) from e
        return DispatchResult(action=action.kind, performed=True, tag=action.tag)

    # === Orchestration ===

    def matching_rules(
        self,
        rules: Iterable[AutomationRule],
        transaction: Transaction,
        accounts: Sequence[Account],
        transactions: Sequence[Transaction],
    ) -> list[AutomationRule]:
        """Active rules whose trigger matches, in the order given."""
        matched: list[AutomationRule] = []
        for rule in rules:
            if not rule.active:
                continue
            try:
                if self.evaluate(rule, transaction, accounts, transactions):
                    matched.append(rule)
            except Exception as e:
                # A rule that cannot be evaluated never matches.
                self._logger.error(
                    "automation_evaluation_failed", rule_id=rule.id, error=str(e)
                )
        return matched

    def run_on_new_transaction(
        self,
        rules: Iterable[AutomationRule],
        transaction: Transaction,
        accounts: Sequence[Account],
        transactions: Sequence[Transaction],
        collaborators: Collaborators | None = None,
    ) -> AutomationReport:
        """Evaluate every active rule against one transaction and fire the matches.

        A failing action is recorded on its firing and the batch moves on.
        """
        collaborators = collaborators or Collaborators()
        matched = self.matching_rules(rules, transaction, accounts, transactions)
        report = AutomationReport(evaluated_transactions=1)

        for rule in matched:
            firing = RuleFiring(
                rule_id=rule.id,
                rule_name=rule.name,
                transaction_id=transaction.id,
                fired_at=self.now(),
            )
            try:
                firing.result = self.dispatch(rule, transaction, collaborators)
            except CollaboratorError as e:
                firing.error = e
                self._logger.error(
                    "automation_dispatch_failed",
                    rule_id=rule.id,
                    transaction_id=transaction.id,
                    collaborator=e.collaborator,
                    error=e.message,
                )
            else:
                self._logger.debug(
                    "automation_fired",
                    rule_id=rule.id,
                    transaction_id=transaction.id,
                    action=firing.result.action.value,
                    performed=firing.result.performed,
                )
            report.firings.append(firing)

        return report

    def run_on_new_transactions(
        self,
        rules: Iterable[AutomationRule],
        new_transactions: Iterable[Transaction],
        accounts: Sequence[Account],
        transactions: Sequence[Transaction],
        collaborators: Collaborators | None = None,
    ) -> AutomationReport:
        """Run every rule against each newly observed transaction, in order."""
        rules = list(rules)
        report = AutomationReport()
        for transaction in new_transactions:
            report.extend(
                self.run_on_new_transaction(
                    rules, transaction, accounts, transactions, collaborators
                )
            )
        if report.firings:
            self._logger.info(
                "automations_ran",
                transactions=report.evaluated_transactions,
                firings=len(report.firings),
                failures=len(report.failures),
            )
        return report


def record_firings(
    rules: Iterable[AutomationRule], report: AutomationReport
) -> list[AutomationRule]:
    """Rules with statistics advanced for every firing in ``report``.

    Only rules that fired are returned.
    """
    counts = Counter(f.rule_id for f in report.firings)
    latest: dict[str, datetime] = {}
    for firing in report.firings:
        previous = latest.get(firing.rule_id)
        if previous is None or firing.fired_at > previous:
            latest[firing.rule_id] = firing.fired_at

    return [
        rule.record_fire(latest[rule.id], times=counts[rule.id])
        for rule in rules
        if rule.id in counts
    ]
