"""Deadline reminders for invoices, subscriptions, loans and budgets."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from wealthflow.accounts import monthly_expense_total
from wealthflow.config.settings import NotificationConfig
from wealthflow.models import (
    Budget,
    Invoice,
    InvoiceStatus,
    Loan,
    Subscription,
    Transaction,
    to_utc,
)
from wealthflow.notifiers import Notifier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Reminder:
    """A message to surface. ``tag`` is stable so channels can deduplicate."""

    kind: str
    title: str
    body: str
    tag: str


def _days_left(due: datetime, now: datetime) -> int:
    return math.ceil((due - now).total_seconds() / 86400)


def _within(due: datetime | None, now: datetime, days: int) -> bool:
    return due is not None and now < due <= now + timedelta(days=days)


def invoice_reminders(
    invoices: Iterable[Invoice], now: datetime, days: int
) -> list[Reminder]:
    return [
        Reminder(
            kind="invoice",
            title="Invoice due soon",
            body=(
                f"Invoice {inv.number} is due in {_days_left(inv.due_date, now)} days "
                f"({inv.amount})"
            ),
            tag=f"invoice-{inv.id}",
        )
        for inv in invoices
        if inv.status != InvoiceStatus.PAID and _within(inv.due_date, now, days)
    ]


def subscription_reminders(
    subscriptions: Iterable[Subscription], now: datetime, days: int
) -> list[Reminder]:
    return [
        Reminder(
            kind="subscription",
            title="Subscription renewal",
            body=f"{sub.name} renews on {sub.next_payment_date:%Y-%m-%d} ({sub.cost})",
            tag=f"subscription-{sub.id}",
        )
        for sub in subscriptions
        if sub.active and _within(sub.next_payment_date, now, days)
    ]


def loan_reminders(loans: Iterable[Loan], now: datetime, days: int) -> list[Reminder]:
    reminders = []
    for loan in loans:
        due = loan.next_payment_date
        if not loan.reminder_enabled or due is None or not _within(due, now, days):
            continue
        reminders.append(
            Reminder(
                kind="loan",
                title="Loan payment due",
                body=(
                    f"{loan.name}: payment of {loan.monthly_payment} due in "
                    f"{_days_left(due, now)} days"
                ),
                tag=f"loan-{loan.id}",
            )
        )
    return reminders


def budget_reminders(
    budgets: Iterable[Budget], transactions: Iterable[Transaction], now: datetime
) -> list[Reminder]:
    ledger = list(transactions)
    reminders = []
    for budget in budgets:
        spent = monthly_expense_total(ledger, budget.category, now)
        if spent > budget.limit:
            reminders.append(
                Reminder(
                    kind="budget",
                    title="Budget exceeded",
                    body=f'Budget "{budget.category}" exceeded by {spent - budget.limit}',
                    tag=f"budget-{budget.category}",
                )
            )
    return reminders


def scan_reminders(
    config: NotificationConfig,
    now: datetime,
    invoices: Iterable[Invoice] = (),
    subscriptions: Iterable[Subscription] = (),
    loans: Iterable[Loan] = (),
    budgets: Iterable[Budget] = (),
    transactions: Iterable[Transaction] = (),
) -> list[Reminder]:
    """Collect every reminder the configuration enables."""
    if not config.enabled:
        return []

    now = to_utc(now)
    reminders: list[Reminder] = []
    if config.invoice_deadlines:
        reminders.extend(invoice_reminders(invoices, now, config.invoice_reminder_days))
    if config.subscription_renewals:
        reminders.extend(
            subscription_reminders(subscriptions, now, config.subscription_reminder_days)
        )
    if config.loan_payments:
        reminders.extend(loan_reminders(loans, now, config.loan_reminder_days))
    if config.budget_alerts:
        reminders.extend(budget_reminders(budgets, transactions, now))
    return reminders


async def deliver_reminders(
    reminders: Iterable[Reminder], notifier: Notifier
) -> dict[str, str]:
    """Send each reminder; return ``{tag: error}`` for the ones that failed."""
    failures: dict[str, str] = {}
    sent = 0
    for reminder in reminders:
        try:
            await notifier.notify(reminder.title, reminder.body, tag=reminder.tag)
            sent += 1
        except Exception as e:
            failures[reminder.tag] = str(e)
            logger.error("reminder_delivery_failed", tag=reminder.tag, error=str(e))
    if sent or failures:
        logger.info("reminders_delivered", sent=sent, failed=len(failures))
    return failures
