"""Domain models shared by the escalation ladder and the blocking registry.

Defines the error classification enums, the read-only ``DetectedError``
handed in by the error detector, and the ``AutoFixResult`` summary reported
by the auto-fixer.

This module is headless - no CLI or I/O dependencies.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime)."""
    if isinstance(value, datetime):
        return value
    if not value:
        return _utc_now()
    # fromisoformat() on older interpreters rejects the trailing "Z"
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ErrorCategory(str, Enum):
    """What kind of problem the detector found.

    Uses str mixin for easy JSON serialization.
    """

    COMPILE = "compile"
    TEST_FAILURE = "test_failure"
    LINT = "lint"
    RUNTIME = "runtime"
    LOGIC = "logic"
    PERFORMANCE = "performance"
    STYLE = "style"
    SECURITY = "security"
    DEPENDENCY = "dependency"


class ErrorSeverity(str, Enum):
    """How bad the error is."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Fixability(str, Enum):
    """How automatable a fix is."""

    AUTO_FIXABLE = "auto_fixable"
    AGENT_FIXABLE = "agent_fixable"
    HUMAN_REQUIRED = "human_required"


class EscalationLevel(str, Enum):
    """Rungs of the escalation ladder, cheapest first."""

    RETRY = "retry"
    AGENT_FIX = "agent_fix"
    SPECIALIST = "specialist"
    HUMAN = "human"


class EscalationStatus(str, Enum):
    """Status of a single escalation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    HUMAN_REQUIRED = "human_required"
    ABANDONED = "abandoned"


class Urgency(str, Enum):
    """Urgency of a human escalation ticket."""

    IMMEDIATE = "immediate"
    NORMAL = "normal"
    LOW = "low"


# Ladder order; levels only ever move towards the end of this tuple
LEVEL_ORDER: tuple[EscalationLevel, ...] = (
    EscalationLevel.RETRY,
    EscalationLevel.AGENT_FIX,
    EscalationLevel.SPECIALIST,
    EscalationLevel.HUMAN,
)

TERMINAL_STATUSES: frozenset[EscalationStatus] = frozenset(
    {
        EscalationStatus.RESOLVED,
        EscalationStatus.HUMAN_REQUIRED,
        EscalationStatus.ABANDONED,
    }
)


def _parse_enum(enum_cls: type[Enum], value: str, label: str) -> Any:
    normalized = value.strip().lower().replace("-", "_")
    try:
        return enum_cls(normalized)
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {label} '{value}'. Valid values: {valid}")


def parse_level(value: str) -> EscalationLevel:
    """Parse a string into an EscalationLevel.

    Accepts upper/lower case and dashes (e.g., "AGENT-FIX").

    Raises:
        ValueError: If the string doesn't match any level
    """
    return _parse_enum(EscalationLevel, value, "escalation level")


def parse_status(value: str) -> EscalationStatus:
    """Parse a string into an EscalationStatus.

    Raises:
        ValueError: If the string doesn't match any status
    """
    return _parse_enum(EscalationStatus, value, "escalation status")


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, so snake_case and camelCase both load."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class DetectedError:
    """A classified error, as produced by the error detector.

    Consumed read-only by the escalation engine.

    Attributes:
        id: Unique error ID
        category: What kind of problem it is
        severity: Impact of the error
        fixability: How automatable a fix is
        title: Short error title
        message: Detailed error message
        source: Where the error came from (compiler, test runner, linter...)
        raw_text: Raw error output
        detected_at: When the error was detected
        suggested_fix: Detector's suggested fix, if any
        file_path: File where the error occurred
        line: Line number (1-based)
        column: Column number (1-based)
        code: Tool-specific error code (e.g., E501)
    """

    id: str
    category: ErrorCategory
    severity: ErrorSeverity
    fixability: Fixability
    title: str
    message: str
    source: str
    raw_text: str = ""
    detected_at: Optional[datetime] = None
    suggested_fix: Optional[str] = None
    file_path: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    code: Optional[str] = None

    def __post_init__(self) -> None:
        # Coerce plain strings so callers can pass detector output verbatim
        object.__setattr__(self, "category", ErrorCategory(self.category))
        object.__setattr__(self, "severity", ErrorSeverity(self.severity))
        object.__setattr__(self, "fixability", Fixability(self.fixability))
        if self.detected_at is None:
            object.__setattr__(self, "detected_at", _utc_now())

    @property
    def location(self) -> Optional[str]:
        """``path:line:column`` when a file path is known."""
        if not self.file_path:
            return None
        parts = [self.file_path]
        if self.line is not None:
            parts.append(str(self.line))
            if self.column is not None:
                parts.append(str(self.column))
        return ":".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dictionary."""
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "fixability": self.fixability.value,
            "title": self.title,
            "message": self.message,
            "source": self.source,
            "raw_text": self.raw_text,
            "detected_at": self.detected_at.isoformat(),
            "suggested_fix": self.suggested_fix,
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
            "code": self.code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DetectedError":
        """Build from a dictionary using snake_case or camelCase keys.

        Raises:
            KeyError: If a required field is missing
            ValueError: If an enum field has an unknown value
        """
        return cls(
            id=data["id"],
            category=ErrorCategory(data["category"]),
            severity=ErrorSeverity(data["severity"]),
            fixability=Fixability(data["fixability"]),
            title=data["title"],
            message=data.get("message", ""),
            source=data.get("source", ""),
            raw_text=_pick(data, "raw_text", "rawText", default=""),
            detected_at=parse_datetime(_pick(data, "detected_at", "detectedAt")),
            suggested_fix=_pick(data, "suggested_fix", "suggestedFix"),
            file_path=_pick(data, "file_path", "filePath"),
            line=data.get("line"),
            column=data.get("column"),
            code=data.get("code"),
        )


@dataclass(frozen=True)
class AutoFixResult:
    """Summary of an auto-fix session, reported by the auto-fixer.

    Attributes:
        applied_count: Fixes that were applied successfully
        skipped_count: Fixes that were skipped
        failed_count: Fixes that failed
        ticket_count: Fix tickets raised for unfixable errors
        summary: Human-readable summary
        requires_retest: Whether tests should be re-run after fixes
        completed_at: When the session finished
    """

    applied_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    ticket_count: int = 0
    summary: str = ""
    requires_retest: bool = False
    completed_at: Optional[datetime] = None
