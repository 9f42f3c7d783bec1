"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("NOTIFY_WEBHOOK_URL", "")

from wealthflow.models import Account, AccountType, FlowDirection, Transaction  # noqa: E402


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class SequentialIds:
    """Deterministic id factory: id-1, id-2, ..."""

    def __init__(self, prefix: str = "id"):
        self._prefix = prefix
        self._count = 0

    def __call__(self) -> str:
        self._count += 1
        return f"{self._prefix}-{self._count}"


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_transaction(
    tx_id: str = "tx-1",
    amount: str = "100",
    flow: FlowDirection = FlowDirection.EXPENSE,
    category: str = "Groceries",
    description: str = "Weekly shop",
    date: datetime | None = None,
    account_id: str = "acc-bank",
) -> Transaction:
    return Transaction(
        id=tx_id,
        amount=Decimal(amount),
        flow=flow,
        category=category,
        description=description,
        date=date or utc(2024, 3, 15, 12),
        account_id=account_id,
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that patch env need a fresh read."""
    from wealthflow.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FixedClock(utc(2024, 3, 15, 12))


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def bank_account():
    return Account(
        id="acc-bank",
        name="Checking",
        type=AccountType.BANK,
        initial_balance=Decimal("1000"),
        balance=Decimal("1000"),
    )


@pytest.fixture
def card_account():
    return Account(
        id="acc-card",
        name="Visa",
        type=AccountType.CREDIT_CARD,
        payment_day=10,
    )


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def notification_sink():
    sink = MagicMock()
    sink.notify = MagicMock(return_value=None)
    return sink
