"""WealthFlow engines: recurring transactions and rule-based automations."""

from wealthflow.automation import AutomationEngine, AutomationRule
from wealthflow.models import Account, RecurringRule, Transaction
from wealthflow.recurrence import RecurrenceEngine
from wealthflow.shell import LedgerShell
from wealthflow.store import InMemoryStore

__version__ = "0.1.0"

__all__ = [
    "Account",
    "AutomationEngine",
    "AutomationRule",
    "InMemoryStore",
    "LedgerShell",
    "RecurrenceEngine",
    "RecurringRule",
    "Transaction",
    "__version__",
]
