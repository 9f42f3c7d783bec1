"""Tests for the in-memory ledger store."""

from dataclasses import replace
from decimal import Decimal

import pytest

from conftest import make_transaction
from wealthflow.errors import RecordNotFoundError
from wealthflow.store import InMemoryStore


def table_records():
    return {
        "accounts": [
            {"id": "acc-1", "name": "Checking", "type": "bank", "initialBalance": 1000},
        ],
        "transactions": [
            {
                "id": "t1",
                "amount": 200,
                "type": "expense",
                "category": "Food",
                "description": "Groceries",
                "date": "2024-03-01T00:00:00Z",
                "accountId": "acc-1",
            },
        ],
        "recurring_rules": [
            {
                "id": "r1",
                "description": "Rent",
                "amount": 900,
                "type": "expense",
                "category": "Housing",
                "accountId": "acc-1",
                "frequency": "monthly",
                "startDate": "2024-01-01T00:00:00Z",
                "nextRunDate": "2024-04-01T00:00:00Z",
            },
            {
                "id": "r-bad",
                "description": "Broken",
                "amount": -1,
                "type": "expense",
                "frequency": "monthly",
                "nextRunDate": "2024-04-01T00:00:00Z",
            },
        ],
        "automations": [
            {
                "id": "a1",
                "name": "Tag food",
                "trigger": {"type": "transaction_received", "conditions": {"category": "Food"}},
                "action": {"type": "add_tag", "params": {"tag": "food"}},
            },
            {
                "id": "a-bad",
                "name": "Two triggers",
                "triggers": [],
                "action": {"type": "add_tag", "params": {"tag": "x"}},
            },
        ],
        "budgets": [{"category": "Food", "limit": 300}],
    }


class TestFromRecords:
    """Tests for loading table-shaped records."""

    @pytest.mark.asyncio
    async def test_malformed_records_are_skipped(self):
        store = InMemoryStore.from_records(table_records())

        assert [r.id for r in await store.list_recurring_rules()] == ["r1"]
        assert [r.id for r in await store.list_automation_rules()] == ["a1"]
        assert len(await store.list_transactions()) == 1
        assert len(await store.list_budgets()) == 1

    @pytest.mark.asyncio
    async def test_balances_derived_from_ledger(self):
        store = InMemoryStore.from_records(table_records())

        [account] = await store.list_accounts()

        assert account.balance == Decimal("800")


class TestTransactions:
    """Tests for transaction writes."""

    @pytest.mark.asyncio
    async def test_duplicate_idempotency_key_is_discarded(self):
        store = InMemoryStore()
        first = replace(make_transaction("t1"), idempotency_key="r1:2024-03-01")
        retry = replace(make_transaction("t2"), idempotency_key="r1:2024-03-01")

        stored_first = await store.add_transaction(first)
        stored_retry = await store.add_transaction(retry)

        assert stored_first is first
        assert stored_retry is first
        assert [tx.id for tx in await store.list_transactions()] == ["t1"]

    @pytest.mark.asyncio
    async def test_transactions_without_key_are_all_kept(self):
        store = InMemoryStore()

        await store.add_transaction(make_transaction("t1"))
        await store.add_transaction(make_transaction("t2"))

        assert len(await store.list_transactions()) == 2

    @pytest.mark.asyncio
    async def test_tag_transaction_is_idempotent(self):
        store = InMemoryStore(transactions=[make_transaction("t1")])

        await store.tag_transaction("t1", "food")
        tagged = await store.tag_transaction("t1", "food")

        assert tagged.tags == ("food",)
        [stored] = await store.list_transactions()
        assert stored.tags == ("food",)

    @pytest.mark.asyncio
    async def test_tag_unknown_transaction_raises(self):
        store = InMemoryStore()

        with pytest.raises(RecordNotFoundError):
            await store.tag_transaction("missing", "food")


class TestRules:
    @pytest.mark.asyncio
    async def test_get_unknown_rule_raises(self):
        store = InMemoryStore()

        with pytest.raises(RecordNotFoundError) as exc_info:
            await store.get_recurring_rule("nope")

        assert exc_info.value.record_id == "nope"
