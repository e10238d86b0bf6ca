"""
Error taxonomy shared by the CI action, the HTTP service and the CLI.
"""
from typing import Any, Optional


class GmudError(RuntimeError):
    """Base gmudgate error."""


class ConfigurationError(GmudError):
    """Raised when a required input is missing or invalid."""


class NotificationError(GmudError):
    """Raised inside the notifier; never escapes it."""


class ApprovalRejectedError(GmudError):
    def __init__(self, decision: Any):
        self.decision = decision
        super().__init__(f"GMUD {decision.task_id} rejected (status: {decision.status})")


class ApprovalTimeoutError(GmudError):
    def __init__(self, decision: Any, timeout_minutes: Optional[float] = None):
        self.decision = decision
        self.timeout_minutes = timeout_minutes
        suffix = f" ({timeout_minutes:g} minutes)" if timeout_minutes is not None else ""
        super().__init__(f"Timed out waiting for GMUD {decision.task_id} approval{suffix}")
