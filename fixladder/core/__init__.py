"""Core escalation and task-blocking components."""

from fixladder.core.config import EscalationConfig, LadderSettings
from fixladder.core.escalation import (
    EscalationAttempt,
    EscalationClosedError,
    EscalationState,
    HumanEscalationTicket,
)
from fixladder.core.models import (
    AutoFixResult,
    DetectedError,
    ErrorCategory,
    ErrorSeverity,
    EscalationLevel,
    EscalationStatus,
    Fixability,
)
from fixladder.core.task_blocking import BlockingReason, TaskBlock, TaskBlockingRegistry

__all__ = [
    "EscalationConfig",
    "LadderSettings",
    "EscalationAttempt",
    "EscalationClosedError",
    "EscalationState",
    "HumanEscalationTicket",
    "AutoFixResult",
    "DetectedError",
    "ErrorCategory",
    "ErrorSeverity",
    "EscalationLevel",
    "EscalationStatus",
    "Fixability",
    "BlockingReason",
    "TaskBlock",
    "TaskBlockingRegistry",
]
