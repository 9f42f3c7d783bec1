"""Tests for automation rule parsing and validation."""

from decimal import Decimal

import pytest

from conftest import utc
from wealthflow.automation.rules import (
    ActionType,
    AddTag,
    AutomationRule,
    BalanceBelow,
    CategoryExceeds,
    CreateInvoice,
    SendNotification,
    TransactionReceived,
    TriggerType,
    action_to_record,
    parse_action,
    parse_trigger,
    trigger_to_record,
)
from wealthflow.errors import RuleValidationError


def rule_record(**overrides):
    record = {
        "id": "auto-1",
        "name": "Tag big groceries",
        "description": "",
        "active": True,
        "trigger": {
            "type": "transaction_received",
            "conditions": {"category": "Groceries", "amountMin": 50},
        },
        "action": {"type": "add_tag", "params": {"tag": "big-shop"}},
        "createdAt": "2024-01-01T00:00:00Z",
        "lastTriggered": None,
        "triggerCount": 0,
    }
    record.update(overrides)
    return record


class TestParseTrigger:
    """Tests for trigger parsing."""

    def test_transaction_received_with_all_conditions(self):
        trigger = parse_trigger(
            {
                "type": "transaction_received",
                "conditions": {
                    "accountId": "acc-1",
                    "category": "Groceries",
                    "amountMin": 50,
                    "amountMax": "100",
                    "descriptionContains": "market",
                },
            }
        )

        assert isinstance(trigger, TransactionReceived)
        assert trigger.kind == TriggerType.TRANSACTION_RECEIVED
        assert trigger.amount_min == Decimal("50")
        assert trigger.amount_max == Decimal("100")
        assert trigger.description_contains == "market"

    def test_unset_conditions_mean_no_constraint(self):
        trigger = parse_trigger({"type": "transaction_received"})

        assert trigger == TransactionReceived()

    def test_zero_amount_bounds_are_unset(self):
        trigger = parse_trigger(
            {"type": "transaction_received", "conditions": {"amountMin": 0, "amountMax": 0}}
        )

        assert trigger.amount_min is None
        assert trigger.amount_max is None

    def test_blank_strings_are_unset(self):
        trigger = parse_trigger(
            {"type": "transaction_received", "conditions": {"category": " ", "accountId": ""}}
        )

        assert trigger.category is None
        assert trigger.account_id is None

    def test_inverted_amount_range_rejected(self):
        with pytest.raises(RuleValidationError):
            parse_trigger(
                {"type": "transaction_received", "conditions": {"amountMin": 100, "amountMax": 50}}
            )

    def test_negative_bound_rejected(self):
        with pytest.raises(RuleValidationError):
            TransactionReceived(amount_min=Decimal("-1"))

    def test_balance_below(self):
        trigger = parse_trigger(
            {"type": "balance_below", "conditions": {"accountId": "acc-1", "balanceThreshold": 500}}
        )

        assert trigger == BalanceBelow(account_id="acc-1", threshold=Decimal("500"))

    def test_balance_below_zero_threshold_is_kept(self):
        trigger = parse_trigger(
            {"type": "balance_below", "conditions": {"accountId": "acc-1", "balanceThreshold": 0}}
        )

        assert trigger.threshold == Decimal("0")

    def test_balance_below_requires_account(self):
        with pytest.raises(RuleValidationError) as exc_info:
            parse_trigger({"type": "balance_below", "conditions": {"balanceThreshold": 500}})

        assert exc_info.value.field == "accountId"

    def test_balance_below_requires_threshold(self):
        with pytest.raises(RuleValidationError):
            parse_trigger({"type": "balance_below", "conditions": {"accountId": "acc-1"}})

    def test_category_exceeds(self):
        trigger = parse_trigger(
            {"type": "category_exceeds", "conditions": {"category": "Cibo", "categoryLimit": 300}}
        )

        assert trigger == CategoryExceeds(category="Cibo", limit=Decimal("300"))

    def test_category_exceeds_negative_limit_rejected(self):
        with pytest.raises(RuleValidationError):
            CategoryExceeds(category="Cibo", limit=Decimal("-1"))

    def test_unknown_type_rejected(self):
        with pytest.raises(RuleValidationError):
            parse_trigger({"type": "date_reached", "conditions": {}})

    def test_list_of_triggers_rejected(self):
        with pytest.raises(RuleValidationError, match="exactly one"):
            parse_trigger([{"type": "transaction_received"}, {"type": "balance_below"}])


class TestParseAction:
    """Tests for action parsing."""

    def test_create_invoice(self):
        action = parse_action(
            {
                "type": "create_invoice",
                "params": {"invoiceAmount": 250, "invoiceDescription": "Retainer"},
            }
        )

        assert action == CreateInvoice(amount=Decimal("250"), description="Retainer")
        assert action.kind == ActionType.CREATE_INVOICE

    def test_create_invoice_without_amount(self):
        action = parse_action({"type": "create_invoice", "params": {"invoiceAmount": 0}})

        assert action.amount is None

    def test_negative_invoice_amount_rejected(self):
        with pytest.raises(RuleValidationError):
            parse_action({"type": "create_invoice", "params": {"invoiceAmount": -5}})

    def test_send_notification(self):
        action = parse_action(
            {
                "type": "send_notification",
                "params": {"notificationTitle": "Heads up", "notificationBody": "Low funds"},
            }
        )

        assert action == SendNotification(title="Heads up", body="Low funds")

    def test_add_tag_without_tag(self):
        assert parse_action({"type": "add_tag", "params": {}}) == AddTag(tag=None)

    def test_unknown_action_rejected(self):
        with pytest.raises(RuleValidationError):
            parse_action({"type": "send_email", "params": {}})


class TestRecordShape:
    def test_trigger_record_omits_unset_conditions(self):
        record = trigger_to_record(TransactionReceived(category="Groceries"))

        assert record == {"type": "transaction_received", "conditions": {"category": "Groceries"}}

    def test_action_record(self):
        record = action_to_record(CreateInvoice(amount=Decimal("99.5")))

        assert record == {"type": "create_invoice", "params": {"invoiceAmount": 99.5}}


class TestAutomationRule:
    """Tests for AutomationRule."""

    def test_from_record(self):
        rule = AutomationRule.from_record(rule_record())

        assert rule.id == "auto-1"
        assert rule.trigger == TransactionReceived(category="Groceries", amount_min=Decimal("50"))
        assert rule.action == AddTag(tag="big-shop")
        assert rule.trigger_count == 0
        assert rule.last_triggered is None
        assert rule.created_at == utc(2024, 1, 1)

    def test_record_survives_a_round_trip(self):
        rule = AutomationRule.from_record(rule_record(triggerCount=3))

        assert AutomationRule.from_record(rule.to_record()) == rule

    def test_multiple_triggers_rejected(self):
        record = rule_record()
        record["triggers"] = [record.pop("trigger")]

        with pytest.raises(RuleValidationError, match="exactly one"):
            AutomationRule.from_record(record)

    def test_missing_action_rejected(self):
        record = rule_record()
        del record["action"]

        with pytest.raises(RuleValidationError):
            AutomationRule.from_record(record)

    def test_negative_trigger_count_rejected(self):
        with pytest.raises(RuleValidationError):
            AutomationRule.from_record(rule_record(triggerCount=-1))

    def test_create_rejects_blank_name(self):
        with pytest.raises(RuleValidationError):
            AutomationRule.create(" ", TransactionReceived(), AddTag(tag="x"))

    def test_create_starts_with_zero_stats(self):
        rule = AutomationRule.create(
            "Low funds", BalanceBelow("acc-1", Decimal("100")), SendNotification()
        )

        assert rule.active is True
        assert rule.trigger_count == 0
        assert rule.last_triggered is None

    def test_record_fire(self):
        rule = AutomationRule.from_record(rule_record(triggerCount=2))

        fired = rule.record_fire(utc(2024, 3, 15, 12), times=3)

        assert fired.trigger_count == 5
        assert fired.last_triggered == utc(2024, 3, 15, 12)
        assert rule.trigger_count == 2

    def test_with_active(self):
        rule = AutomationRule.from_record(rule_record())

        assert rule.with_active(False).active is False
        assert rule.active is True
