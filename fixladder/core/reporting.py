"""Plain-text summaries of escalation states.

Pure functions; nothing here mutates or stores state.
"""

from collections import Counter
from typing import Sequence

from fixladder.core.escalation import EscalationState
from fixladder.core.models import EscalationStatus

_OPEN_STATUSES = (EscalationStatus.PENDING, EscalationStatus.IN_PROGRESS)


def count_by_status(escalations: Sequence[EscalationState]) -> dict[str, int]:
    """Count escalations by status.

    Returns:
        Dict mapping status string to count (only statuses that occur)
    """
    return dict(Counter(e.status.value for e in escalations))


def generate_escalation_summary(escalations: Sequence[EscalationState]) -> str:
    """One-line overview: how many resolved, pending, with a human, abandoned."""
    if not escalations:
        return "No escalations needed"

    resolved = sum(1 for e in escalations if e.status == EscalationStatus.RESOLVED)
    pending = sum(1 for e in escalations if e.status in _OPEN_STATUSES)
    human = sum(1 for e in escalations if e.status == EscalationStatus.HUMAN_REQUIRED)
    abandoned = sum(1 for e in escalations if e.status == EscalationStatus.ABANDONED)

    parts = [f"{len(escalations)} escalation(s)"]
    if resolved:
        parts.append(f"{resolved} resolved")
    if pending:
        parts.append(f"{pending} pending")
    if human:
        parts.append(f"{human} need human review")
    if abandoned:
        parts.append(f"{abandoned} abandoned")

    return ", ".join(parts)


def get_escalation_report(escalations: Sequence[EscalationState]) -> str:
    """Markdown report grouped by what needs attention first.

    Sections (each omitted when empty): human intervention, in progress,
    resolved.
    """
    if not escalations:
        return "No escalations to report."

    lines = [
        "## Escalation Report",
        "",
        f"**Summary**: {generate_escalation_summary(escalations)}",
        "",
    ]

    human_required = [e for e in escalations if e.status == EscalationStatus.HUMAN_REQUIRED]
    if human_required:
        lines.append("### 🔴 Requires Human Intervention")
        for esc in human_required:
            lines.append(f"- **{esc.error.title}** ({esc.id})")
            lines.append(f"  {esc.error.message}")
            if esc.human_ticket:
                lines.append(f"  Ticket: {esc.human_ticket.id}")
                lines.append(f"  Attempts: {esc.total_attempts}")
        lines.append("")

    in_progress = [e for e in escalations if e.status in _OPEN_STATUSES]
    if in_progress:
        lines.append("### 🟡 In Progress")
        for esc in in_progress:
            lines.append(
                f"- **{esc.error.title}** at level: {esc.current_level.value} "
                f"(attempt {esc.total_attempts})"
            )
        lines.append("")

    resolved = [e for e in escalations if e.status == EscalationStatus.RESOLVED]
    if resolved:
        lines.append("### 🟢 Resolved")
        for esc in resolved:
            lines.append(f"- **{esc.error.title}** after {esc.total_attempts} attempt(s)")
        lines.append("")

    return "\n".join(lines)


def are_all_escalations_terminal(escalations: Sequence[EscalationState]) -> bool:
    """True when nothing is still being escalated (vacuously true if empty)."""
    return all(e.is_terminal for e in escalations)
