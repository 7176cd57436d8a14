"""Shared pytest fixtures for fixladder tests."""

from typing import Callable

import pytest

from fixladder.core.ids import EscalationIdGenerator, reset_escalation_counters
from fixladder.core.models import DetectedError
from fixladder.core.task_blocking import reset_task_blocking_registry


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset process-wide counters and the default registry around each test."""
    reset_escalation_counters()
    reset_task_blocking_registry()
    yield
    reset_escalation_counters()
    reset_task_blocking_registry()


@pytest.fixture
def ids() -> EscalationIdGenerator:
    """Provide an isolated ID generator."""
    return EscalationIdGenerator()


@pytest.fixture
def make_error() -> Callable[..., DetectedError]:
    """Factory for DetectedError values with sensible defaults."""

    def _make(
        category: str = "compile",
        severity: str = "medium",
        fixability: str = "auto_fixable",
        **overrides,
    ) -> DetectedError:
        fields = {
            "id": "err-1",
            "category": category,
            "severity": severity,
            "fixability": fixability,
            "title": "Cannot find name 'foo'",
            "message": "src/app.py:12: name 'foo' is not defined",
            "source": "compiler",
            "raw_text": "NameError: name 'foo' is not defined",
        }
        fields.update(overrides)
        return DetectedError(**fields)

    return _make
