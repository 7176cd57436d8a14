"""Escalation ladder for errors that automation could not fix.

Decides how hard to keep trying on an unresolved error and when to hand it
to a more capable responder:

1. retry - same task, cheap, up to ``max_retries`` attempts
2. agent_fix - send the error back to a coding agent with context
3. specialist - a trusted reviewer / different agent
4. human - a ticket with the full history for manual intervention

Escalation states are immutable values. ``record_attempt`` returns a new
state and never touches the one it was given.

This module is headless - no CLI or I/O dependencies.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from fixladder.core.config import ConfigLike, resolve_config
from fixladder.core.ids import EscalationIdGenerator, get_default_generator
from fixladder.core.models import (
    TERMINAL_STATUSES,
    AutoFixResult,
    DetectedError,
    ErrorCategory,
    ErrorSeverity,
    EscalationLevel,
    EscalationStatus,
    Fixability,
    Urgency,
    parse_datetime,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


URGENCY_BY_SEVERITY: dict[ErrorSeverity, Urgency] = {
    ErrorSeverity.CRITICAL: Urgency.IMMEDIATE,
    ErrorSeverity.HIGH: Urgency.IMMEDIATE,
    ErrorSeverity.MEDIUM: Urgency.NORMAL,
    ErrorSeverity.LOW: Urgency.LOW,
}

CATEGORY_SUGGESTIONS: dict[ErrorCategory, str] = {
    ErrorCategory.COMPILE: (
        "Review the compilation error - check types, imports, and module resolution"
    ),
    ErrorCategory.TEST_FAILURE: (
        "Debug the failing test - check assertions, mocks, and test setup"
    ),
    ErrorCategory.SECURITY: (
        "Security review required - evaluate the security implications "
        "and apply appropriate mitigation"
    ),
    ErrorCategory.LOGIC: (
        "Logic error - trace through the code flow and verify business logic"
    ),
    ErrorCategory.RUNTIME: (
        "Runtime error - check for null references, async timing, and resource management"
    ),
    ErrorCategory.PERFORMANCE: (
        "Performance optimization - profile the code and identify bottlenecks"
    ),
}
DEFAULT_SUGGESTION = "Review the error and apply appropriate fix"


class EscalationClosedError(ValueError):
    """Raised when an attempt is recorded against a terminal escalation."""

    def __init__(self, escalation_id: str, status: EscalationStatus):
        self.escalation_id = escalation_id
        self.status = status
        super().__init__(
            f"Escalation {escalation_id} is {status.value}; no further attempts can be recorded"
        )


@dataclass(frozen=True)
class EscalationAttempt:
    """Record of a single attempt to resolve an escalated error.

    Attributes:
        attempt_number: 1-based, strictly increasing within an escalation
        level: Ladder level active when the attempt was made
        action: What was tried
        resolved: Whether this attempt resolved the error
        result: Outcome description
        duration_ms: How long the attempt took
        agent_id: Agent that performed the action (if applicable)
        timestamp: When the attempt was recorded
    """

    attempt_number: int
    level: EscalationLevel
    action: str
    resolved: bool
    result: str
    duration_ms: int
    agent_id: Optional[str] = None
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "level": self.level.value,
            "action": self.action,
            "agent_id": self.agent_id,
            "resolved": self.resolved,
            "result": self.result,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EscalationAttempt":
        return cls(
            attempt_number=int(data["attempt_number"]),
            level=EscalationLevel(data["level"]),
            action=data["action"],
            agent_id=data.get("agent_id"),
            resolved=bool(data["resolved"]),
            result=data.get("result", ""),
            duration_ms=int(data.get("duration_ms", 0)),
            timestamp=parse_datetime(data.get("timestamp")),
        )


@dataclass(frozen=True)
class HumanEscalationTicket:
    """Hand-off artifact created when automated attempts are exhausted.

    Attributes:
        id: Ticket ID (``HUM-nnn``)
        task_id: Task the error belongs to
        error: The original error
        attempts: Snapshot of every attempt made
        what_was_tried: One line per attempt
        why_auto_failed: Failure pattern analysis
        suggested_approach: What a human should try
        urgency: Derived from the error severity
        status: Always ``human_required`` at creation
        created_at: When the ticket was created
        context: Full error context, empty unless ``include_full_context``
    """

    id: str
    task_id: str
    error: DetectedError
    attempts: tuple[EscalationAttempt, ...]
    what_was_tried: str
    why_auto_failed: str
    suggested_approach: str
    urgency: Urgency
    status: EscalationStatus = EscalationStatus.HUMAN_REQUIRED
    created_at: datetime = field(default_factory=_utc_now)
    context: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "error": self.error.to_dict(),
            "attempts": [a.to_dict() for a in self.attempts],
            "what_was_tried": self.what_was_tried,
            "why_auto_failed": self.why_auto_failed,
            "suggested_approach": self.suggested_approach,
            "urgency": self.urgency.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HumanEscalationTicket":
        return cls(
            id=data["id"],
            task_id=data["task_id"],
            error=DetectedError.from_dict(data["error"]),
            attempts=tuple(EscalationAttempt.from_dict(a) for a in data.get("attempts", [])),
            what_was_tried=data.get("what_was_tried", ""),
            why_auto_failed=data.get("why_auto_failed", ""),
            suggested_approach=data.get("suggested_approach", ""),
            urgency=Urgency(data["urgency"]),
            status=EscalationStatus(data.get("status", EscalationStatus.HUMAN_REQUIRED.value)),
            created_at=parse_datetime(data.get("created_at")),
            context=data.get("context", ""),
        )


@dataclass(frozen=True)
class EscalationState:
    """Complete escalation history for one error.

    Attributes:
        id: Escalation ID (``ESC-{task_id}-nnn``)
        error: The error being escalated
        task_id: Task the error belongs to
        current_level: Ladder level the next attempt will be made at
        status: Current status
        attempts: Every attempt so far, oldest first
        human_ticket: Set once the escalation reaches a human
        created_at: When tracking started
        updated_at: When the last attempt was recorded
    """

    id: str
    error: DetectedError
    task_id: str
    current_level: EscalationLevel
    status: EscalationStatus = EscalationStatus.PENDING
    attempts: tuple[EscalationAttempt, ...] = ()
    human_ticket: Optional[HumanEscalationTicket] = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def total_attempts(self) -> int:
        """Number of attempts recorded."""
        return len(self.attempts)

    @property
    def is_terminal(self) -> bool:
        """True once resolved, handed to a human, or abandoned."""
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "error": self.error.to_dict(),
            "task_id": self.task_id,
            "current_level": self.current_level.value,
            "status": self.status.value,
            "attempts": [a.to_dict() for a in self.attempts],
            "total_attempts": self.total_attempts,
            "human_ticket": self.human_ticket.to_dict() if self.human_ticket else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EscalationState":
        ticket = data.get("human_ticket")
        return cls(
            id=data["id"],
            error=DetectedError.from_dict(data["error"]),
            task_id=data["task_id"],
            current_level=EscalationLevel(data["current_level"]),
            status=EscalationStatus(data["status"]),
            attempts=tuple(EscalationAttempt.from_dict(a) for a in data.get("attempts", [])),
            human_ticket=HumanEscalationTicket.from_dict(ticket) if ticket else None,
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


# =============================================================================
# Level policy
# =============================================================================


def is_simple_error(error: DetectedError) -> bool:
    """An auto-fixable, low-severity error."""
    return (
        error.fixability == Fixability.AUTO_FIXABLE
        and error.severity == ErrorSeverity.LOW
    )


def get_initial_level(error: DetectedError, config: ConfigLike = None) -> EscalationLevel:
    """Determine which ladder level an error starts at.

    First match wins:
    1. Critical severity with auto-escalation on -> agent_fix
    2. Security category -> specialist
    3. auto_fixable -> retry
    4. agent_fixable -> agent_fix
    5. human_required -> human
    6. Otherwise -> retry

    Args:
        error: The error to classify
        config: Ladder configuration (defaults if omitted)

    Returns:
        The starting EscalationLevel
    """
    cfg = resolve_config(config)

    if cfg.auto_escalate_critical and error.severity == ErrorSeverity.CRITICAL:
        return EscalationLevel.AGENT_FIX

    if error.category == ErrorCategory.SECURITY:
        return EscalationLevel.SPECIALIST

    if error.fixability == Fixability.AUTO_FIXABLE:
        return EscalationLevel.RETRY

    if error.fixability == Fixability.AGENT_FIXABLE:
        return EscalationLevel.AGENT_FIX

    if error.fixability == Fixability.HUMAN_REQUIRED:
        return EscalationLevel.HUMAN

    return EscalationLevel.RETRY


def get_next_level(
    current: EscalationLevel,
    retry_count: int,
    config: ConfigLike = None,
    error: Optional[DetectedError] = None,
) -> EscalationLevel:
    """Determine the level to try after a failed attempt.

    Args:
        current: Level the failed attempt was made at
        retry_count: Attempts made so far at ``current``, including the last
        config: Ladder configuration (defaults if omitted)
        error: The error being escalated; needed for ``skip_agent_for_simple``

    Returns:
        The next EscalationLevel (never lower than ``current``)
    """
    cfg = resolve_config(config)

    if current == EscalationLevel.RETRY:
        if retry_count < cfg.max_retries:
            return EscalationLevel.RETRY
        if cfg.skip_agent_for_simple and error is not None and is_simple_error(error):
            return EscalationLevel.SPECIALIST
        return EscalationLevel.AGENT_FIX

    if current == EscalationLevel.AGENT_FIX:
        return EscalationLevel.SPECIALIST

    # specialist -> human, and human is the ceiling
    return EscalationLevel.HUMAN


def should_immediately_escalate(error: DetectedError, config: ConfigLike = None) -> bool:
    """Check whether an error should skip the ladder and go to a human.

    Callers use this before creating an escalation at all.

    Args:
        error: The error to check
        config: Ladder configuration (defaults if omitted)

    Returns:
        True for human_required errors, and for critical security errors
        when ``auto_escalate_critical`` is on
    """
    cfg = resolve_config(config)

    if error.fixability == Fixability.HUMAN_REQUIRED:
        return True

    return (
        cfg.auto_escalate_critical
        and error.severity == ErrorSeverity.CRITICAL
        and error.category == ErrorCategory.SECURITY
    )


# =============================================================================
# State transitions
# =============================================================================


def create_escalation(
    error: DetectedError,
    task_id: str,
    config: ConfigLike = None,
    *,
    ids: Optional[EscalationIdGenerator] = None,
) -> EscalationState:
    """Start tracking escalation for one error.

    Args:
        error: The unresolved error
        task_id: Task the error belongs to
        config: Ladder configuration (defaults if omitted)
        ids: ID generator (process-wide default if omitted)

    Returns:
        A pending EscalationState at the error's initial level
    """
    cfg = resolve_config(config)
    ids = ids or get_default_generator()
    level = get_initial_level(error, cfg)
    now = _utc_now()

    state = EscalationState(
        id=ids.next_escalation_id(task_id),
        error=error,
        task_id=task_id,
        current_level=level,
        status=EscalationStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    logger.debug(f"Created escalation {state.id} for error {error.id} at level {level.value}")
    return state


def record_attempt(
    state: EscalationState,
    action: str,
    resolved: bool,
    result: str,
    duration_ms: int,
    agent_id: Optional[str] = None,
    config: ConfigLike = None,
    *,
    ids: Optional[EscalationIdGenerator] = None,
) -> EscalationState:
    """Record an attempt and work out what to do next.

    A resolving attempt closes the escalation. A failing attempt either
    keeps the escalation in progress at the next ladder level or, once the
    ladder or the total attempt budget is exhausted, hands it to a human
    with a ticket.

    Args:
        state: Current escalation state (not modified)
        action: What was tried
        resolved: Whether the attempt fixed the error
        result: Outcome description
        duration_ms: How long the attempt took
        agent_id: Agent that performed the action (if applicable)
        config: Ladder configuration (defaults if omitted)
        ids: ID generator for the human ticket (process-wide default if omitted)

    Returns:
        The new EscalationState

    Raises:
        EscalationClosedError: If ``state`` is already terminal
    """
    if state.is_terminal:
        raise EscalationClosedError(state.id, state.status)

    cfg = resolve_config(config)
    now = _utc_now()

    attempt = EscalationAttempt(
        attempt_number=state.total_attempts + 1,
        level=state.current_level,
        action=action,
        agent_id=agent_id,
        resolved=resolved,
        result=result,
        duration_ms=duration_ms,
        timestamp=now,
    )
    attempts = state.attempts + (attempt,)

    if resolved:
        logger.info(f"Escalation {state.id} resolved after {len(attempts)} attempt(s)")
        return replace(
            state,
            attempts=attempts,
            status=EscalationStatus.RESOLVED,
            updated_at=now,
        )

    # Total budget overrides the per-level policy, even mid-level
    if len(attempts) >= cfg.max_total_attempts:
        next_level = EscalationLevel.HUMAN
    else:
        retry_count = sum(1 for a in attempts if a.level == state.current_level)
        next_level = get_next_level(state.current_level, retry_count, cfg, state.error)

    if next_level != EscalationLevel.HUMAN:
        return replace(
            state,
            attempts=attempts,
            current_level=next_level,
            status=EscalationStatus.IN_PROGRESS,
            updated_at=now,
        )

    ticket = create_human_ticket(state, attempts, cfg, ids=ids)
    logger.info(
        f"Escalation {state.id} handed to a human after {len(attempts)} attempt(s): "
        f"ticket {ticket.id} ({ticket.urgency.value})"
    )
    return replace(
        state,
        attempts=attempts,
        current_level=EscalationLevel.HUMAN,
        status=EscalationStatus.HUMAN_REQUIRED,
        human_ticket=ticket,
        updated_at=now,
    )


def abandon_escalation(state: EscalationState, reason: str = "") -> EscalationState:
    """Stop escalating an error without resolving it.

    Used when the owning task is cancelled or superseded.

    Raises:
        EscalationClosedError: If ``state`` is already terminal
    """
    if state.is_terminal:
        raise EscalationClosedError(state.id, state.status)

    suffix = f": {reason}" if reason else ""
    logger.info(f"Escalation {state.id} abandoned{suffix}")
    return replace(state, status=EscalationStatus.ABANDONED, updated_at=_utc_now())


def create_escalations_from_fix_result(
    auto_fix_result: AutoFixResult,
    task_id: str,
    remaining_errors: Iterable[DetectedError],
    config: ConfigLike = None,
    *,
    ids: Optional[EscalationIdGenerator] = None,
) -> list[EscalationState]:
    """Create escalation tracking for every error the auto-fixer left behind.

    Args:
        auto_fix_result: The auto-fix session summary
        task_id: Task the errors belong to
        remaining_errors: Errors still unresolved after auto-fix
        config: Ladder configuration (defaults if omitted)
        ids: ID generator (process-wide default if omitted)

    Returns:
        One pending EscalationState per remaining error, in order
    """
    cfg = resolve_config(config)
    escalations = [
        create_escalation(error, task_id, cfg, ids=ids) for error in remaining_errors
    ]
    logger.debug(
        f"Auto-fix for task {task_id} applied {auto_fix_result.applied_count} fix(es); "
        f"{len(escalations)} error(s) escalated"
    )
    return escalations


# =============================================================================
# Human tickets
# =============================================================================


def generate_failure_analysis(attempts: Sequence[EscalationAttempt]) -> str:
    """Describe the pattern of failed attempts.

    Args:
        attempts: All attempts made

    Returns:
        A short analysis sentence sequence
    """
    if not attempts:
        return "No attempts were made."

    failed = [a for a in attempts if not a.resolved]
    if not failed:
        return "All attempts succeeded (unexpected escalation)."

    levels: list[str] = []
    for a in failed:
        if a.level.value not in levels:
            levels.append(a.level.value)

    return ". ".join(
        [
            f"{len(failed)} of {len(attempts)} attempts failed",
            f"Levels tried: {', '.join(levels)}",
            f"Last failure: {failed[-1].result}",
        ]
    )


def generate_human_suggestion(error: DetectedError, attempts: Sequence[EscalationAttempt]) -> str:
    """Suggest an approach for the human picking up the ticket."""
    parts = [CATEGORY_SUGGESTIONS.get(error.category, DEFAULT_SUGGESTION)]

    if error.suggested_fix:
        parts.append(f"Original suggestion: {error.suggested_fix}")

    if attempts:
        parts.append(f"Last attempt result: {attempts[-1].result}")

    return ". ".join(parts)


def _format_attempt(attempt: EscalationAttempt) -> str:
    outcome = "RESOLVED" if attempt.resolved else "FAILED"
    return (
        f"{attempt.attempt_number}. [{attempt.level.value}] {attempt.action} "
        f"→ {outcome}: {attempt.result}"
    )


def _format_context(error: DetectedError) -> str:
    lines = [f"Source: {error.source}"]
    if error.location:
        lines.append(f"Location: {error.location}")
    if error.code:
        lines.append(f"Code: {error.code}")
    lines.append(f"Message: {error.message}")
    if error.raw_text:
        lines.append("Raw output:")
        lines.append(error.raw_text)
    return "\n".join(lines)


def create_human_ticket(
    state: EscalationState,
    attempts: Sequence[EscalationAttempt],
    config: ConfigLike = None,
    *,
    ids: Optional[EscalationIdGenerator] = None,
) -> HumanEscalationTicket:
    """Create the hand-off ticket for a human.

    Args:
        state: Escalation the ticket is for
        attempts: Every attempt made, including the latest
        config: Ladder configuration (defaults if omitted)
        ids: ID generator (process-wide default if omitted)

    Returns:
        A HumanEscalationTicket with the full history
    """
    cfg = resolve_config(config)
    ids = ids or get_default_generator()

    return HumanEscalationTicket(
        id=ids.next_ticket_id(),
        task_id=state.task_id,
        error=state.error,
        attempts=tuple(attempts),
        what_was_tried="\n".join(_format_attempt(a) for a in attempts),
        why_auto_failed=generate_failure_analysis(attempts),
        suggested_approach=generate_human_suggestion(state.error, attempts),
        urgency=URGENCY_BY_SEVERITY[state.error.severity],
        status=EscalationStatus.HUMAN_REQUIRED,
        created_at=_utc_now(),
        context=_format_context(state.error) if cfg.include_full_context else "",
    )
