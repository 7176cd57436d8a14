"""
fixladder: escalation ladder and task blocking for automated coding agents

Decides how hard to keep retrying an error automation could not fix, when to
hand it to a more capable responder, and when to give it to a human, while
tracking which tasks stay paused until the fix lands.
"""

__version__ = "0.1.0"

from fixladder.core.escalation import EscalationState, create_escalation, record_attempt
from fixladder.core.task_blocking import TaskBlockingRegistry

__all__ = ["EscalationState", "create_escalation", "record_attempt", "TaskBlockingRegistry"]
