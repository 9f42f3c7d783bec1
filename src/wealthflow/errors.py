"""Exception types shared across the engines and the shell."""

from typing import Any


class WealthFlowError(Exception):
    """Base exception for WealthFlow errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class RuleValidationError(WealthFlowError):
    """A rule or ledger record failed validation where it was created or parsed."""

    def __init__(self, message: str, field: str | None = None, details: Any = None):
        super().__init__(message, details)
        self.field = field


class CollaboratorError(WealthFlowError):
    """An injected collaborator (notifier, invoice creator, tagger, store) failed."""

    def __init__(self, collaborator: str, message: str, details: Any = None):
        super().__init__(f"{collaborator} failed: {message}", details)
        self.collaborator = collaborator


class NotificationDeliveryError(CollaboratorError):
    """A notification could not be delivered to its channel."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__("notifier", message, details)
        self.status_code = status_code


class RecordNotFoundError(WealthFlowError):
    """A store lookup referenced a record that does not exist."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id!r} not found")
        self.kind = kind
        self.record_id = record_id
