"""Catch-up materializer for recurring transaction rules.

Each active rule owns a ``next_run_date`` cursor. Materializing walks that
cursor forward one calendar period at a time until it passes ``as_of``,
emitting one transaction per step, so a backlog of N missed periods yields
exactly N transactions and the cursor resumes where it stopped.
"""

import calendar
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime

import structlog

from wealthflow.models import Frequency, RecurringRule, Transaction, new_id, to_utc

logger = structlog.get_logger(__name__)

DEFAULT_DESCRIPTION_SUFFIX = " (Auto)"


def _clamp_day(year: int, month: int, day: int) -> int:
    last_day = calendar.monthrange(year, month)[1]
    return min(max(1, day), last_day)


def anchor_day(rule: RecurringRule) -> int:
    """Day of month the rule is anchored to.

    The start date's day wins while the cursor still sits on it (after
    month-end clamping), so a rule started on the 31st returns to the 31st
    after a short month. A cursor moved elsewhere keeps its own day.
    """
    cursor = rule.next_run_date
    start_day = rule.start_date.day
    if cursor.day == _clamp_day(cursor.year, cursor.month, start_day):
        return start_day
    return cursor.day


def add_period(instant: datetime, frequency: Frequency, day: int | None = None) -> datetime:
    """Advance ``instant`` by one calendar month or year.

    ``day`` is the anchor day of month; the result is clamped to the length
    of the target month and keeps the time of day.
    """
    target_day = day or instant.day
    if frequency == Frequency.MONTHLY:
        month = instant.month % 12 + 1
        year = instant.year + (1 if instant.month == 12 else 0)
    else:
        month = instant.month
        year = instant.year + 1
    return instant.replace(year=year, month=month, day=_clamp_day(year, month, target_day))


def idempotency_key(rule_id: str, occurrence: datetime) -> str:
    """Key identifying one occurrence of one rule, stable across retries."""
    return f"{rule_id}:{to_utc(occurrence).isoformat()}"


@dataclass
class RuleBatch:
    """One rule's advance and the transactions it produced.

    The caller persists a batch as a unit: if any transaction fails to
    persist, the advanced rule must not be persisted either.
    """

    rule: RecurringRule
    transactions: list[Transaction] = field(default_factory=list)
    previous_run_date: datetime | None = None


@dataclass
class RecurrenceResult:
    """Everything a single materialization pass produced."""

    as_of: datetime
    batches: list[RuleBatch] = field(default_factory=list)

    @property
    def transactions(self) -> list[Transaction]:
        return [tx for batch in self.batches for tx in batch.transactions]

    @property
    def updated_rules(self) -> list[RecurringRule]:
        return [batch.rule for batch in self.batches]

    @property
    def is_empty(self) -> bool:
        return not self.batches


class RecurrenceEngine:
    """Turns the passage of time into concrete ledger entries."""

    def __init__(
        self,
        description_suffix: str = DEFAULT_DESCRIPTION_SUFFIX,
        id_factory: Callable[[], str] = new_id,
    ):
        self._suffix = description_suffix
        self._id_factory = id_factory
        self._logger = logger.bind(component="recurrence_engine")

    def occurrences(self, rule: RecurringRule, as_of: datetime) -> list[datetime]:
        """Return every due occurrence of ``rule`` up to and including ``as_of``."""
        if not rule.active:
            return []
        limit = to_utc(as_of)
        day = anchor_day(rule)
        cursor = rule.next_run_date
        due: list[datetime] = []
        while cursor <= limit:
            due.append(cursor)
            cursor = add_period(cursor, rule.frequency, day)
        return due

    def materialize_rule(self, rule: RecurringRule, as_of: datetime) -> RuleBatch | None:
        """Materialize one rule's backlog, or return None if nothing is due."""
        due = self.occurrences(rule, as_of)
        if not due:
            return None

        transactions = [self._build_transaction(rule, occurrence) for occurrence in due]
        advanced = replace(
            rule, next_run_date=add_period(due[-1], rule.frequency, anchor_day(rule))
        )
        self._logger.debug(
            "recurring_rule_materialized",
            rule_id=rule.id,
            occurrences=len(due),
            first=due[0].isoformat(),
            next_run=advanced.next_run_date.isoformat(),
        )
        return RuleBatch(
            rule=advanced,
            transactions=transactions,
            previous_run_date=rule.next_run_date,
        )

    def materialize_due(
        self, rules: Iterable[RecurringRule], as_of: datetime
    ) -> RecurrenceResult:
        """Materialize every due occurrence of every active rule.

        Inactive rules and rules whose next run lies after ``as_of`` are left
        untouched and do not appear in the result.
        """
        limit = to_utc(as_of)
        result = RecurrenceResult(as_of=limit)
        skipped = 0
        for rule in rules:
            if not rule.active:
                skipped += 1
                continue
            batch = self.materialize_rule(rule, limit)
            if batch is not None:
                result.batches.append(batch)

        if not result.is_empty:
            self._logger.info(
                "recurring_transactions_materialized",
                rules=len(result.batches),
                transactions=len(result.transactions),
                inactive_skipped=skipped,
            )
        return result

    def _build_transaction(self, rule: RecurringRule, occurrence: datetime) -> Transaction:
        return Transaction(
            id=self._id_factory(),
            amount=rule.amount,
            flow=rule.flow,
            category=rule.category,
            description=f"{rule.description}{self._suffix}",
            date=occurrence,
            account_id=rule.account_id,
            is_business=rule.is_business,
            origin_rule_id=rule.id,
            idempotency_key=idempotency_key(rule.id, occurrence),
        )
