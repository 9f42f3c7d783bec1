"""Store interfaces the shell reads from and writes to, plus an in-memory store.

The hosted table store behind the application is reached through these
async protocols. ``InMemoryStore`` implements all of them and is what the
tests and local runs use.
"""

from collections.abc import Iterable
from dataclasses import replace
from typing import Any, Protocol

import structlog

from wealthflow.accounts import refresh_balances
from wealthflow.automation.rules import AutomationRule
from wealthflow.errors import RecordNotFoundError, RuleValidationError
from wealthflow.models import (
    Account,
    Budget,
    Invoice,
    Loan,
    RecurringRule,
    Subscription,
    Transaction,
)

logger = structlog.get_logger(__name__)


class RuleStore(Protocol):
    async def list_recurring_rules(self) -> list[RecurringRule]: ...

    async def get_recurring_rule(self, rule_id: str) -> RecurringRule: ...

    async def save_recurring_rule(self, rule: RecurringRule) -> RecurringRule: ...

    async def list_automation_rules(self) -> list[AutomationRule]: ...

    async def save_automation_rule(self, rule: AutomationRule) -> AutomationRule: ...


class TransactionStore(Protocol):
    async def list_transactions(self) -> list[Transaction]: ...

    async def add_transaction(self, transaction: Transaction) -> Transaction: ...

    async def tag_transaction(self, transaction_id: str, tag: str) -> Transaction: ...


class AccountStore(Protocol):
    async def list_accounts(self) -> list[Account]: ...


class InvoiceStore(Protocol):
    async def list_invoices(self) -> list[Invoice]: ...

    async def add_invoice(self, invoice: Invoice) -> Invoice: ...


class ReminderSource(Protocol):
    async def list_subscriptions(self) -> list[Subscription]: ...

    async def list_loans(self) -> list[Loan]: ...

    async def list_budgets(self) -> list[Budget]: ...


class LedgerStore(
    RuleStore, TransactionStore, AccountStore, InvoiceStore, ReminderSource, Protocol
):
    """Everything the shell needs from persistence."""


def _parse_all(kind: str, records: Iterable[dict[str, Any]], parser: Any) -> list[Any]:
    parsed = []
    for record in records:
        try:
            parsed.append(parser(record))
        except (RuleValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "store_record_skipped",
                kind=kind,
                record_id=record.get("id") if isinstance(record, dict) else None,
                error=str(e),
            )
    return parsed


class InMemoryStore:
    """Process-local store.

    Transactions keep insertion order. Adding a transaction whose
    idempotency key is already stored returns the stored one instead of
    inserting a duplicate.
    """

    def __init__(
        self,
        accounts: Iterable[Account] = (),
        transactions: Iterable[Transaction] = (),
        recurring_rules: Iterable[RecurringRule] = (),
        automation_rules: Iterable[AutomationRule] = (),
        invoices: Iterable[Invoice] = (),
        subscriptions: Iterable[Subscription] = (),
        loans: Iterable[Loan] = (),
        budgets: Iterable[Budget] = (),
    ):
        self._accounts = {a.id: a for a in accounts}
        self._transactions: list[Transaction] = []
        self._by_key: dict[str, Transaction] = {}
        self._recurring = {r.id: r for r in recurring_rules}
        self._automations = {r.id: r for r in automation_rules}
        self._invoices = {i.id: i for i in invoices}
        self._subscriptions = list(subscriptions)
        self._loans = list(loans)
        self._budgets = list(budgets)
        for tx in transactions:
            self._insert(tx)

    @classmethod
    def from_records(cls, records: dict[str, list[dict[str, Any]]]) -> "InMemoryStore":
        """Build a store from table-shaped records.

        Records that fail validation are skipped with a warning, so one
        malformed rule cannot keep the others from loading.
        """
        return cls(
            accounts=_parse_all("account", records.get("accounts", []), Account.from_record),
            transactions=_parse_all(
                "transaction", records.get("transactions", []), Transaction.from_record
            ),
            recurring_rules=_parse_all(
                "recurring_rule", records.get("recurring_rules", []), RecurringRule.from_record
            ),
            automation_rules=_parse_all(
                "automation_rule", records.get("automations", []), AutomationRule.from_record
            ),
            invoices=_parse_all("invoice", records.get("invoices", []), Invoice.from_record),
            subscriptions=_parse_all(
                "subscription", records.get("subscriptions", []), Subscription.from_record
            ),
            loans=_parse_all("loan", records.get("loans", []), Loan.from_record),
            budgets=_parse_all("budget", records.get("budgets", []), Budget.from_record),
        )

    def _insert(self, transaction: Transaction) -> Transaction:
        key = transaction.idempotency_key
        if key is not None and key in self._by_key:
            logger.debug("duplicate_transaction_discarded", idempotency_key=key)
            return self._by_key[key]
        self._transactions.append(transaction)
        if key is not None:
            self._by_key[key] = transaction
        return transaction

    # === Rules ===

    async def list_recurring_rules(self) -> list[RecurringRule]:
        return list(self._recurring.values())

    async def get_recurring_rule(self, rule_id: str) -> RecurringRule:
        try:
            return self._recurring[rule_id]
        except KeyError:
            raise RecordNotFoundError("recurring rule", rule_id) from None

    async def save_recurring_rule(self, rule: RecurringRule) -> RecurringRule:
        self._recurring[rule.id] = rule
        return rule

    async def list_automation_rules(self) -> list[AutomationRule]:
        return list(self._automations.values())

    async def save_automation_rule(self, rule: AutomationRule) -> AutomationRule:
        self._automations[rule.id] = rule
        return rule

    # === Transactions ===

    async def list_transactions(self) -> list[Transaction]:
        return list(self._transactions)

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        return self._insert(transaction)

    async def tag_transaction(self, transaction_id: str, tag: str) -> Transaction:
        for index, tx in enumerate(self._transactions):
            if tx.id != transaction_id:
                continue
            if tag in tx.tags:
                return tx
            tagged = replace(tx, tags=(*tx.tags, tag))
            self._transactions[index] = tagged
            if tx.idempotency_key is not None:
                self._by_key[tx.idempotency_key] = tagged
            return tagged
        raise RecordNotFoundError("transaction", transaction_id)

    # === Accounts ===

    async def list_accounts(self) -> list[Account]:
        """Accounts with balances recomputed from the ledger."""
        return refresh_balances(self._accounts.values(), self._transactions)

    # === Invoices and reminders ===

    async def list_invoices(self) -> list[Invoice]:
        return list(self._invoices.values())

    async def add_invoice(self, invoice: Invoice) -> Invoice:
        self._invoices[invoice.id] = invoice
        return invoice

    async def list_subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    async def list_loans(self) -> list[Loan]:
        return list(self._loans)

    async def list_budgets(self) -> list[Budget]:
        return list(self._budgets)
