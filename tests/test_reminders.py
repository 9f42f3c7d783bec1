"""Tests for deadline reminders."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_transaction, utc
from wealthflow.config.settings import NotificationConfig
from wealthflow.models import (
    Budget,
    Frequency,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    Loan,
    Subscription,
)
from wealthflow.reminders import (
    deliver_reminders,
    invoice_reminders,
    loan_reminders,
    scan_reminders,
    subscription_reminders,
)

NOW = utc(2024, 3, 15, 12)


def make_invoice(inv_id="inv-1", due_in_days=2, status=InvoiceStatus.SENT):
    return Invoice(
        id=inv_id,
        number=f"INV-{inv_id}",
        type=InvoiceType.ISSUED,
        amount=Decimal("300"),
        entity_name="Acme",
        date=NOW - timedelta(days=28),
        due_date=NOW + timedelta(days=due_in_days),
        status=status,
    )


def make_loan(reminder_enabled=True, due_in_days=2):
    return Loan(
        id="loan-1",
        name="Car loan",
        total_amount=Decimal("10000"),
        remaining_amount=Decimal("8000"),
        monthly_payment=Decimal("300"),
        next_payment_date=NOW + timedelta(days=due_in_days) if due_in_days is not None else None,
        reminder_enabled=reminder_enabled,
    )


@pytest.fixture
def enabled_config():
    return NotificationConfig(enabled=True)


class TestInvoiceReminders:
    """Tests for invoice deadline reminders."""

    def test_due_within_window(self):
        [reminder] = invoice_reminders([make_invoice()], NOW, days=3)

        assert reminder.kind == "invoice"
        assert reminder.tag == "invoice-inv-1"
        assert "due in 2 days" in reminder.body

    def test_paid_invoice_skipped(self):
        assert invoice_reminders([make_invoice(status=InvoiceStatus.PAID)], NOW, days=3) == []

    @pytest.mark.parametrize("due_in_days", [-1, 4])
    def test_outside_window_skipped(self, due_in_days):
        assert invoice_reminders([make_invoice(due_in_days=due_in_days)], NOW, days=3) == []


class TestOtherReminders:
    def test_subscription_renewal(self):
        active = Subscription(
            "sub-1", "Streaming", Decimal("12.99"), Frequency.MONTHLY, NOW + timedelta(hours=20)
        )
        cancelled = Subscription(
            "sub-2",
            "Gym",
            Decimal("40"),
            Frequency.MONTHLY,
            NOW + timedelta(hours=20),
            active=False,
        )

        reminders = subscription_reminders([active, cancelled], NOW, days=1)

        assert [r.tag for r in reminders] == ["subscription-sub-1"]

    def test_loan_payment(self):
        [reminder] = loan_reminders([make_loan()], NOW, days=3)

        assert reminder.tag == "loan-loan-1"
        assert "300" in reminder.body

    def test_loan_opted_out_or_undated(self):
        loans = [make_loan(reminder_enabled=False), make_loan(due_in_days=None)]

        assert loan_reminders(loans, NOW, days=3) == []


class TestScanReminders:
    """Tests for the reminder scan."""

    def test_disabled_config_yields_nothing(self):
        config = NotificationConfig(enabled=False)

        assert scan_reminders(config, NOW, invoices=[make_invoice()]) == []

    def test_families_can_be_switched_off(self):
        config = NotificationConfig(enabled=True, invoice_deadlines=False)

        reminders = scan_reminders(config, NOW, invoices=[make_invoice()], loans=[make_loan()])

        assert [r.kind for r in reminders] == ["loan"]

    def test_budget_exceeded(self, enabled_config):
        ledger = [
            make_transaction("t1", amount="180", category="Food", date=utc(2024, 3, 3)),
            make_transaction("t2", amount="40", category="Food", date=utc(2024, 3, 9)),
        ]

        [reminder] = scan_reminders(
            enabled_config,
            NOW,
            budgets=[Budget(category="Food", limit=Decimal("200"))],
            transactions=ledger,
        )

        assert reminder.kind == "budget"
        assert "exceeded by 20" in reminder.body


class TestDeliverReminders:
    @pytest.mark.asyncio
    async def test_failures_are_collected_per_tag(self):
        notifier = MagicMock()
        notifier.notify = AsyncMock(side_effect=[None, RuntimeError("offline")])
        reminders = invoice_reminders(
            [make_invoice("a"), make_invoice("b")], NOW, days=3
        )

        failures = await deliver_reminders(reminders, notifier)

        assert failures == {"invoice-b": "offline"}
        assert notifier.notify.await_count == 2
