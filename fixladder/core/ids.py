"""ID generation for escalations and human tickets.

IDs are short, human-friendly sequence numbers (``ESC-task-1-001``,
``HUM-001``). The engine accepts an injected generator so tests and
independent orchestrators do not share counters; a process-wide default is
used otherwise.
"""

import threading


class EscalationIdGenerator:
    """Monotonic counters for escalation and ticket IDs.

    Safe to share between threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._escalation_counter = 0
        self._ticket_counter = 0

    def next_escalation_id(self, task_id: str) -> str:
        """Return the next ``ESC-{task_id}-{nnn}`` ID."""
        with self._lock:
            self._escalation_counter += 1
            seq = self._escalation_counter
        return f"ESC-{task_id}-{seq:03d}"

    def next_ticket_id(self) -> str:
        """Return the next ``HUM-{nnn}`` ID."""
        with self._lock:
            self._ticket_counter += 1
            seq = self._ticket_counter
        return f"HUM-{seq:03d}"

    def reset(self) -> None:
        """Reset both counters to zero."""
        with self._lock:
            self._escalation_counter = 0
            self._ticket_counter = 0


_default_generator = EscalationIdGenerator()


def get_default_generator() -> EscalationIdGenerator:
    """Get the process-wide generator used when none is injected."""
    return _default_generator


def reset_escalation_counters() -> None:
    """Reset the process-wide counters (for testing)."""
    _default_generator.reset()
