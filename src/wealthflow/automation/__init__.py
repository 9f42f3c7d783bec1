"""Rule-based automations: trigger/action variants and the rule engine."""

from wealthflow.automation.engine import (
    AutomationEngine,
    AutomationReport,
    Collaborators,
    DispatchResult,
    Notification,
    NotificationSink,
    RuleFiring,
    evaluate,
    record_firings,
)
from wealthflow.automation.rules import (
    Action,
    ActionType,
    AddTag,
    AutomationRule,
    BalanceBelow,
    CategoryExceeds,
    CreateInvoice,
    SendNotification,
    TransactionReceived,
    Trigger,
    TriggerType,
    action_to_record,
    parse_action,
    parse_trigger,
    trigger_to_record,
)

__all__ = [
    # Engine
    "AutomationEngine",
    "AutomationReport",
    "Collaborators",
    "DispatchResult",
    "Notification",
    "NotificationSink",
    "RuleFiring",
    "evaluate",
    "record_firings",
    # Rules
    "AutomationRule",
    "Trigger",
    "TriggerType",
    "TransactionReceived",
    "BalanceBelow",
    "CategoryExceeds",
    "Action",
    "ActionType",
    "CreateInvoice",
    "SendNotification",
    "AddTag",
    "parse_trigger",
    "parse_action",
    "trigger_to_record",
    "action_to_record",
]
