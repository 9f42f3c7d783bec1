"""Account balance derivation and credit card payment helpers.

An account's stored ``balance`` is only a cache: the ledger (initial balance
plus the signed sum of its transactions) is the source of truth.
"""

import calendar
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

from wealthflow.models import Account, AccountType, FlowDirection, Transaction


def account_balance(account: Account, transactions: Iterable[Transaction]) -> Decimal:
    """Initial balance plus income minus expense over the account's transactions."""
    flow = sum(
        (tx.signed_amount for tx in transactions if tx.account_id == account.id),
        Decimal("0"),
    )
    return account.initial_balance + flow


def refresh_balances(
    accounts: Iterable[Account], transactions: Iterable[Transaction]
) -> list[Account]:
    """Return copies of ``accounts`` with their cached balance recomputed."""
    ledger = list(transactions)
    return [replace(acc, balance=account_balance(acc, ledger)) for acc in accounts]


def monthly_expense_total(
    transactions: Iterable[Transaction], category: str, now: datetime
) -> Decimal:
    """Sum expenses in ``category`` dated in the calendar month of ``now``."""
    return sum(
        (
            tx.amount
            for tx in transactions
            if tx.flow == FlowDirection.EXPENSE
            and tx.category == category
            and tx.date.year == now.year
            and tx.date.month == now.month
        ),
        Decimal("0"),
    )


def _previous_month(today: date) -> tuple[date, date]:
    first_of_this_month = today.replace(day=1)
    last_of_previous = first_of_this_month - timedelta(days=1)
    return last_of_previous.replace(day=1), last_of_previous


def card_balance_due(
    card: Account, transactions: Iterable[Transaction], today: date
) -> Decimal:
    """Amount due on a credit card: its expenses during the previous month."""
    if card.type != AccountType.CREDIT_CARD:
        return Decimal("0")
    start, end = _previous_month(today)
    return sum(
        (
            tx.amount
            for tx in transactions
            if tx.account_id == card.id
            and tx.flow == FlowDirection.EXPENSE
            and start <= tx.date.date() <= end
        ),
        Decimal("0"),
    )


def next_payment_date(payment_day: int, today: date) -> date:
    """Next card payment date on or after ``today``.

    Payment days past the end of a month fall on its last day.
    """
    last_day = calendar.monthrange(today.year, today.month)[1]
    candidate = today.replace(day=min(payment_day, last_day))
    if candidate >= today:
        return candidate
    year = today.year + (1 if today.month == 12 else 0)
    month = today.month % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(payment_day, last_day))


def days_until_payment(payment_day: int, today: date) -> int:
    return (next_payment_date(payment_day, today) - today).days
