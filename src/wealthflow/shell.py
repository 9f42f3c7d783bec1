"""Application shell that drives the engines against the store.

The shell owns the control flow around the two pure engines:

1. Materialize recurring rules that came due, persisting each rule's
   transactions and its advanced ``next_run_date`` as one unit under a
   per-rule lock.
2. Run automations over every transaction added since the previous run,
   then apply their deferred effects and persist the rules' firing stats.
3. Optionally scan and deliver deadline reminders.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from wealthflow.automation.engine import (
    AutomationEngine,
    AutomationReport,
    Collaborators,
    RuleFiring,
    record_firings,
)
from wealthflow.automation.rules import ActionType
from wealthflow.config import NotificationConfig, WealthFlowSettings, get_settings
from wealthflow.errors import CollaboratorError
from wealthflow.events import (
    EventPublisher,
    LedgerEvent,
    automation_failed,
    automation_fired,
    invoice_created,
    recurring_materialized,
    reminder_due,
    transaction_tagged,
)
from wealthflow.models import to_utc
from wealthflow.notifiers import LogNotifier, Notifier
from wealthflow.recurrence import RecurrenceEngine, RuleBatch
from wealthflow.reminders import deliver_reminders, scan_reminders
from wealthflow.store import LedgerStore

logger = structlog.get_logger(__name__)


def _queued(*_args: Any) -> None:
    """Store writes requested by actions are applied after the batch."""


_EFFECT_COLLABORATORS = {
    ActionType.SEND_NOTIFICATION: "notifier",
    ActionType.CREATE_INVOICE: "invoice store",
    ActionType.ADD_TAG: "tag store",
}


class _DeferredNotifications:
    """Notifications are delivered after the batch, through the async notifier."""

    def notify(self, title: str, body: str, tag: str | None = None) -> None:
        pass


@dataclass
class MaterializationOutcome:
    """Result of one recurring-rule pass."""

    as_of: datetime
    persisted: list[RuleBatch] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def transaction_count(self) -> int:
        return sum(len(batch.transactions) for batch in self.persisted)


@dataclass
class TickResult:
    materialization: MaterializationOutcome
    automations: AutomationReport
    reminder_failures: dict[str, str] = field(default_factory=dict)


class LedgerShell:
    """Runs the recurrence and automation engines against a ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        notifier: Notifier | None = None,
        settings: WealthFlowSettings | None = None,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] | None = None,
        seen_transaction_ids: set[str] | None = None,
    ):
        self._settings = settings or get_settings()
        self._store = store
        self._notifier = notifier or LogNotifier()
        self._publisher = publisher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._notification_config = NotificationConfig.from_settings(self._settings)

        self._recurrence = RecurrenceEngine(
            description_suffix=self._settings.auto_description_suffix
        )
        self._automation = AutomationEngine(
            invoice_due_days=self._settings.invoice_due_days,
            invoice_prefix=self._settings.invoice_number_prefix,
            clock=self._clock,
        )

        self._rule_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._automation_lock = asyncio.Lock()
        self._seen: set[str] | None = (
            set(seen_transaction_ids) if seen_transaction_ids is not None else None
        )

        self._logger = logger.bind(component="ledger_shell")

    @property
    def notification_config(self) -> NotificationConfig:
        return self._notification_config

    def _now(self) -> datetime:
        return to_utc(self._clock())

    def _publish(self, event: LedgerEvent) -> None:
        if self._publisher is not None:
            self._publisher.publish(event)

    async def _ensure_baseline(self) -> set[str]:
        """Treat the ledger as already seen the first time the shell looks at it.

        Automations only react to transactions that arrive after startup.
        """
        if self._seen is None:
            self._seen = {tx.id for tx in await self._store.list_transactions()}
            self._logger.debug("automation_baseline_captured", transactions=len(self._seen))
        return self._seen

    # === Recurring rules ===

    async def materialize_recurring(self, as_of: datetime | None = None) -> MaterializationOutcome:
        """Materialize and persist every due recurring occurrence."""
        await self._ensure_baseline()
        limit = to_utc(as_of) if as_of else self._now()
        outcome = MaterializationOutcome(as_of=limit)

        for rule in await self._store.list_recurring_rules():
            if not rule.active:
                continue
            try:
                batch = await self._materialize_one(rule.id, limit)
            except Exception as e:
                outcome.failures[rule.id] = str(e)
                self._logger.error("recurring_rule_persist_failed", rule_id=rule.id, error=str(e))
                continue
            if batch is not None:
                outcome.persisted.append(batch)
                self._publish(
                    recurring_materialized(
                        batch.rule.id,
                        batch.rule.description,
                        len(batch.transactions),
                        batch.rule.next_run_date,
                    )
                )

        if outcome.persisted or outcome.failures:
            self._logger.info(
                "recurring_pass_completed",
                rules=len(outcome.persisted),
                transactions=outcome.transaction_count,
                failures=len(outcome.failures),
            )
        return outcome

    async def _materialize_one(self, rule_id: str, as_of: datetime) -> RuleBatch | None:
        """Materialize one rule inside its critical section.

        The rule is re-read under the lock so a concurrent pass that already
        advanced it produces nothing. Transactions are written before the
        advanced rule; their idempotency keys let a retry after a partial
        write land on the same records instead of duplicating them.
        """
        async with self._rule_locks[rule_id]:
            rule = await self._store.get_recurring_rule(rule_id)
            batch = self._recurrence.materialize_rule(rule, as_of)
            if batch is None:
                return None
            stored = [await self._store.add_transaction(tx) for tx in batch.transactions]
            await self._store.save_recurring_rule(batch.rule)
            batch.transactions = stored
            return batch

    # === Automations ===

    async def run_automations(self) -> AutomationReport:
        """Run automations over every transaction not seen by a previous run."""
        seen = await self._ensure_baseline()

        async with self._automation_lock:
            transactions = await self._store.list_transactions()
            new = [tx for tx in transactions if tx.id not in seen]
            if not new:
                return AutomationReport()

            rules = await self._store.list_automation_rules()
            accounts = await self._store.list_accounts()
            collaborators = Collaborators(
                notifier=_DeferredNotifications(),
                create_invoice=_queued,
                add_tag=_queued,
            )
            report = self._automation.run_on_new_transactions(
                rules, new, accounts, transactions, collaborators
            )

            for firing in report.firings:
                await self._apply_effects(firing)
                self._publish_firing(firing)

            for rule in record_firings(rules, report):
                try:
                    await self._store.save_automation_rule(rule)
                except Exception as e:
                    self._logger.error(
                        "automation_stats_persist_failed", rule_id=rule.id, error=str(e)
                    )

            seen.update(tx.id for tx in new)
            return report

    async def _apply_effects(self, firing: RuleFiring) -> None:
        """Deliver a firing's notification or persist its store write."""
        result = firing.result
        if result is None or not result.performed:
            return
        try:
            if result.action == ActionType.SEND_NOTIFICATION and result.notification is not None:
                notification = result.notification
                await self._notifier.notify(
                    notification.title, notification.body, tag=notification.tag
                )
            elif result.action == ActionType.CREATE_INVOICE and result.invoice is not None:
                await self._store.add_invoice(result.invoice)
                self._publish(
                    invoice_created(
                        result.invoice.id,
                        result.invoice.number,
                        result.invoice.amount,
                        result.invoice.entity_name,
                    )
                )
            elif result.action == ActionType.ADD_TAG and result.tag:
                tagged = await self._store.tag_transaction(firing.transaction_id, result.tag)
                self._publish(
                    transaction_tagged(tagged.id, tagged.account_id, result.tag, tagged.description)
                )
        except CollaboratorError as e:
            firing.error = e
        except Exception as e:
            firing.error = CollaboratorError(_EFFECT_COLLABORATORS[result.action], str(e))

        if firing.error is not None:
            self._logger.error(
                "automation_effect_failed",
                rule_id=firing.rule_id,
                transaction_id=firing.transaction_id,
                error=firing.error.message,
            )

    def _publish_firing(self, firing: RuleFiring) -> None:
        if firing.error is not None:
            self._publish(
                automation_failed(
                    firing.rule_id, firing.rule_name, firing.transaction_id, firing.error.message
                )
            )
        elif firing.result is not None:
            self._publish(
                automation_fired(
                    firing.rule_id,
                    firing.rule_name,
                    firing.transaction_id,
                    firing.result.action.value,
                )
            )

    # === Reminders ===

    async def send_reminders(self, now: datetime | None = None) -> dict[str, str]:
        """Scan deadlines and deliver reminders; returns failures by tag."""
        if not self._notification_config.enabled:
            return {}
        reminders = scan_reminders(
            self._notification_config,
            to_utc(now) if now else self._now(),
            invoices=await self._store.list_invoices(),
            subscriptions=await self._store.list_subscriptions(),
            loans=await self._store.list_loans(),
            budgets=await self._store.list_budgets(),
            transactions=await self._store.list_transactions(),
        )
        for reminder in reminders:
            self._publish(reminder_due(reminder.kind, reminder.title, reminder.body, reminder.tag))
        return await deliver_reminders(reminders, self._notifier)

    # === Driver ===

    async def tick(self, as_of: datetime | None = None) -> TickResult:
        """One pass of the shell: recurring rules, then automations, then reminders."""
        limit = to_utc(as_of) if as_of else self._now()
        materialization = await self.materialize_recurring(limit)
        automations = await self.run_automations()
        reminder_failures = await self.send_reminders(limit)
        return TickResult(
            materialization=materialization,
            automations=automations,
            reminder_failures=reminder_failures,
        )

    async def run_forever(self, interval_seconds: float = 3600.0) -> None:
        """Tick on a fixed interval until cancelled."""
        self._logger.info("shell_started", interval_seconds=interval_seconds)
        try:
            while True:
                await self.tick()
                await asyncio.sleep(interval_seconds)
        finally:
            self._logger.info("shell_stopped")
