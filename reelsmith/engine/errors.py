"""Error taxonomy for the orchestration engine."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReelsmithError(Exception):
    """Base class for engine errors."""


class ToolExecutionError(ReelsmithError):
    """A single tool or provider call failed.

    Recoverable: the runner feeds it back to the model as a tool response and
    the batch executor records it as a failed segment.
    """

    def __init__(self, tool_name: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message
        self.details = details or {}


class ApprovalNotFoundError(ReelsmithError):
    """Decision submitted for an unknown or already-consumed approval id."""

    def __init__(self, approval_id: str) -> None:
        super().__init__(f"Approval request '{approval_id}' not found")
        self.approval_id = approval_id


class RunFatalError(ReelsmithError):
    """Unrecoverable failure inside the orchestration loop."""


class InsufficientCreditsError(RunFatalError):
    """The ledger refused a gated action because the balance is too low."""

    def __init__(self, required: float, balance: float) -> None:
        super().__init__(f"Insufficient credits: required {required}, available {balance}")
        self.required = required
        self.balance = balance


class ChannelClosedError(ReelsmithError):
    """Raised when publishing to a run channel after its terminal message."""
