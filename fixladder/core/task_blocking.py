"""Task blocking while fixes and investigations are in flight.

When a fix task is dispatched for a failing task, the original task must not
be picked up again until the fix lands. The registry records these blocks
and releases them when the blocking work completes.

Two indices are kept in step: blocks per blocked task, and blocked tasks per
blocking task. Both are private; every change goes through the registry's
methods.

Listeners can subscribe to block/unblock/fix notifications. The registry is
a single-writer object; callers on multiple OS threads must serialize access.

This module is headless - no CLI or I/O dependencies.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class BlockingReason(str, Enum):
    """Why a task is blocked."""

    FIX_IN_PROGRESS = "fix_in_progress"
    INVESTIGATION_PENDING = "investigation_pending"
    DEPENDENCY_FAILED = "dependency_failed"
    MANUAL_HOLD = "manual_hold"
    VERIFICATION_FAILED = "verification_failed"


# Reasons that a completing blocking task clears automatically
_AUTO_RELEASE_REASONS = frozenset(
    {BlockingReason.FIX_IN_PROGRESS, BlockingReason.INVESTIGATION_PENDING}
)


class BlockingEventType:
    """Notifications emitted by the registry."""

    TASK_BLOCKED = "task:blocked"
    TASK_UNBLOCKED = "task:unblocked"
    FIX_STARTED = "fix:started"
    FIX_COMPLETED = "fix:completed"
    FIX_FAILED = "fix:failed"


@dataclass(frozen=True)
class TaskBlock:
    """One reason a task is paused.

    Attributes:
        task_id: The paused task
        blocking_task_id: Task whose completion releases the block
        reason: Why the task is blocked
        auto_unblock: Released automatically when the blocking task completes
        notes: Optional free text
        created_at: When the block was created
    """

    task_id: str
    blocking_task_id: str
    reason: BlockingReason
    auto_unblock: bool
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "blocking_task_id": self.blocking_task_id,
            "reason": self.reason.value,
            "auto_unblock": self.auto_unblock,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class BlockStatus:
    """Blocking status of one task.

    Attributes:
        task_id: Task queried
        is_blocked: Whether the task holds at least one block
        blocked_by: Blocking task IDs, in block creation order
        blocks: The blocks themselves
        blocking: Tasks that this task is itself blocking
    """

    task_id: str
    is_blocked: bool
    blocked_by: list[str]
    blocks: list[TaskBlock]
    blocking: list[str]


@dataclass(frozen=True)
class BlockingEvent:
    """A notification delivered to registry listeners."""

    event_type: str
    payload: dict[str, Any]
    created_at: datetime = field(default_factory=_utc_now)


BlockingListener = Callable[[BlockingEvent], None]


class TaskBlockingRegistry:
    """Tracks which tasks are paused, and by what.

    Usage:
        registry = TaskBlockingRegistry()

        # A fix task was dispatched for task-1
        registry.block_for_fix("task-1", "fix-1")
        registry.is_blocked("task-1")  # True

        # The fix landed
        registry.fix_task_completed("fix-1")
        registry.is_blocked("task-1")  # False
    """

    def __init__(self) -> None:
        self._blocks: dict[str, list[TaskBlock]] = {}  # task_id -> blocks
        self._blocking: dict[str, list[str]] = {}  # blocking_task_id -> task_ids
        self._listeners: list[BlockingListener] = []

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: BlockingListener) -> Callable[[], None]:
        """Register a listener for registry notifications.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        event = BlockingEvent(event_type=event_type, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Blocking listener failed on {event_type}: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Index maintenance
    # -------------------------------------------------------------------------

    def _add(self, block: TaskBlock) -> TaskBlock:
        self._blocks.setdefault(block.task_id, []).append(block)
        blocked = self._blocking.setdefault(block.blocking_task_id, [])
        if block.task_id not in blocked:
            blocked.append(block.task_id)
        self._emit(BlockingEventType.TASK_BLOCKED, {"block": block.to_dict()})
        return block

    def _remove(self, task_id: str, predicate: Callable[[TaskBlock], bool]) -> list[TaskBlock]:
        """Remove matching blocks from a task and keep the reverse index in step."""
        blocks = self._blocks.get(task_id)
        if not blocks:
            return []

        removed = [b for b in blocks if predicate(b)]
        if not removed:
            return []

        remaining = [b for b in blocks if not predicate(b)]
        if remaining:
            self._blocks[task_id] = remaining
        else:
            del self._blocks[task_id]

        still_blocking = {b.blocking_task_id for b in remaining}
        for blocking_task_id in {b.blocking_task_id for b in removed} - still_blocking:
            blocked = self._blocking.get(blocking_task_id, [])
            if task_id in blocked:
                blocked.remove(task_id)
            if not blocked:
                self._blocking.pop(blocking_task_id, None)

        return removed

    # -------------------------------------------------------------------------
    # Blocking
    # -------------------------------------------------------------------------

    def block_for_fix(self, task_id: str, fix_task_id: str, notes: Optional[str] = None) -> TaskBlock:
        """Block a task while a fix task works on its failure.

        Args:
            task_id: Task that failed
            fix_task_id: Fix task being dispatched
            notes: Optional notes

        Returns:
            The created TaskBlock
        """
        block = self._add(
            TaskBlock(
                task_id=task_id,
                blocking_task_id=fix_task_id,
                reason=BlockingReason.FIX_IN_PROGRESS,
                auto_unblock=True,
                notes=notes,
            )
        )
        logger.info(f"Task {task_id} blocked by fix task {fix_task_id}")
        self._emit(
            BlockingEventType.FIX_STARTED,
            {"task_id": task_id, "fix_task_id": fix_task_id},
        )
        return block

    def block_for_investigation(self, task_id: str, investigation_task_id: str) -> TaskBlock:
        """Block a task until an investigation completes."""
        block = self._add(
            TaskBlock(
                task_id=task_id,
                blocking_task_id=investigation_task_id,
                reason=BlockingReason.INVESTIGATION_PENDING,
                auto_unblock=True,
            )
        )
        logger.info(f"Task {task_id} blocked for investigation {investigation_task_id}")
        return block

    def block_task(
        self,
        task_id: str,
        reason: BlockingReason = BlockingReason.MANUAL_HOLD,
        notes: Optional[str] = None,
    ) -> TaskBlock:
        """Manually block a task.

        Manual blocks are never released automatically; clear them with
        ``unblock`` (using the returned block's ``blocking_task_id``) or
        ``unblock_all``.
        """
        block = self._add(
            TaskBlock(
                task_id=task_id,
                blocking_task_id=f"manual-{uuid.uuid4().hex[:8]}",
                reason=BlockingReason(reason),
                auto_unblock=False,
                notes=notes,
            )
        )
        logger.info(f"Task {task_id} manually blocked: {block.reason.value}")
        return block

    # -------------------------------------------------------------------------
    # Unblocking
    # -------------------------------------------------------------------------

    def unblock(self, task_id: str, blocking_task_id: str) -> bool:
        """Remove the block(s) a specific blocking task holds on a task.

        Other blocks on the task are left alone.

        Returns:
            True if anything was removed
        """
        removed = self._remove(task_id, lambda b: b.blocking_task_id == blocking_task_id)
        if not removed:
            return False

        logger.info(f"Task {task_id} unblocked (was blocked by {blocking_task_id})")
        self._emit(
            BlockingEventType.TASK_UNBLOCKED,
            {"task_id": task_id, "blocking_task_id": blocking_task_id, "count": len(removed)},
        )
        return True

    def unblock_all(self, task_id: str) -> int:
        """Remove every block on a task.

        Returns:
            Number of blocks removed (0 if the task was not blocked)
        """
        removed = self._remove(task_id, lambda b: True)
        if not removed:
            return 0

        logger.info(f"All {len(removed)} blocks removed from task {task_id}")
        self._emit(BlockingEventType.TASK_UNBLOCKED, {"task_id": task_id, "count": len(removed)})
        return len(removed)

    def fix_task_completed(self, fix_task_id: str) -> list[str]:
        """Release the tasks a completed fix (or investigation) was blocking.

        Only auto-unblock blocks that are still pending on this task are
        removed; manual holds and failed fixes stay in place.

        Returns:
            Task IDs that lost a block (empty if the fix task was not tracked)
        """
        released = []
        for task_id in list(self._blocking.get(fix_task_id, [])):
            removed = self._remove(
                task_id,
                lambda b: (
                    b.blocking_task_id == fix_task_id
                    and b.auto_unblock
                    and b.reason in _AUTO_RELEASE_REASONS
                ),
            )
            if removed:
                released.append(task_id)

        if not released:
            logger.warning(f"Fix task {fix_task_id} not tracked")
            return []

        for task_id in released:
            self._emit(
                BlockingEventType.TASK_UNBLOCKED,
                {"task_id": task_id, "blocking_task_id": fix_task_id},
            )
            self._emit(
                BlockingEventType.FIX_COMPLETED,
                {"fix_task_id": fix_task_id, "task_id": task_id},
            )
            logger.info(f"Fix task {fix_task_id} completed, task {task_id} unblocked")

        return released

    def fix_task_failed(self, fix_task_id: str) -> list[str]:
        """Mark a fix as failed, keeping the original task blocked.

        The block is relabelled ``VERIFICATION_FAILED`` so the caller knows
        to try the next ladder level.

        Returns:
            Task IDs whose block was relabelled (empty if nothing was pending)
        """
        failed = []
        for task_id in self._blocking.get(fix_task_id, []):
            blocks = self._blocks.get(task_id, [])
            changed = False
            for i, block in enumerate(blocks):
                if (
                    block.blocking_task_id == fix_task_id
                    and block.reason == BlockingReason.FIX_IN_PROGRESS
                ):
                    blocks[i] = replace(
                        block,
                        reason=BlockingReason.VERIFICATION_FAILED,
                        notes=f"Fix task {fix_task_id} failed",
                    )
                    changed = True
            if changed:
                failed.append(task_id)

        for task_id in failed:
            logger.warning(f"Fix task {fix_task_id} failed, task {task_id} remains blocked")
            self._emit(
                BlockingEventType.FIX_FAILED,
                {"fix_task_id": fix_task_id, "task_id": task_id},
            )

        return failed

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_blocked(self, task_id: str) -> bool:
        """Check if a task holds at least one block."""
        return bool(self._blocks.get(task_id))

    def get_block_status(self, task_id: str) -> BlockStatus:
        """Get the full blocking status of a task."""
        blocks = list(self._blocks.get(task_id, []))
        return BlockStatus(
            task_id=task_id,
            is_blocked=bool(blocks),
            blocked_by=[b.blocking_task_id for b in blocks],
            blocks=blocks,
            blocking=list(self._blocking.get(task_id, [])),
        )

    def get_blocked_tasks(self) -> list[str]:
        """IDs of every blocked task."""
        return list(self._blocks.keys())

    def get_tasks_blocked_by(self, blocking_task_id: str) -> list[str]:
        """IDs of the tasks a given task is blocking."""
        return list(self._blocking.get(blocking_task_id, []))

    def get_active_fix_tasks(self) -> dict[str, str]:
        """Snapshot of in-flight fixes, mapping fix task ID -> blocked task ID.

        One entry per fix task. When a fix task blocks several tasks, the
        most recently blocked one is reported; use ``get_tasks_blocked_by``
        for the full list.
        """
        active: dict[str, str] = {}
        for fix_task_id, task_ids in self._blocking.items():
            for task_id in task_ids:
                if any(
                    b.blocking_task_id == fix_task_id
                    and b.reason == BlockingReason.FIX_IN_PROGRESS
                    and b.auto_unblock
                    for b in self._blocks.get(task_id, [])
                ):
                    active[fix_task_id] = task_id
        return active

    def get_summary(self) -> str:
        """Text summary of blocked tasks and in-flight fixes."""
        lines = [
            "Task Blocking Summary:",
            f"  📛 Blocked tasks: {len(self._blocks)}",
            f"  🔧 Active fix tasks: {len(self.get_active_fix_tasks())}",
        ]

        if self._blocks:
            lines.append("  Blocked:")
            for task_id, blocks in self._blocks.items():
                reasons = ", ".join(b.reason.value for b in blocks)
                lines.append(f"    • {task_id}: {reasons}")

        return "\n".join(lines)

    def clear(self) -> None:
        """Remove every block. Listeners stay subscribed."""
        self._blocks.clear()
        self._blocking.clear()


# =============================================================================
# Process-wide registry
# =============================================================================

_registry: Optional[TaskBlockingRegistry] = None


def get_task_blocking_registry() -> TaskBlockingRegistry:
    """Get or create the process-wide registry."""
    global _registry
    if _registry is None:
        _registry = TaskBlockingRegistry()
    return _registry


def reset_task_blocking_registry() -> None:
    """Drop the process-wide registry (for testing)."""
    global _registry
    _registry = None


def is_task_blocked(task_id: str) -> bool:
    """Quick check against the process-wide registry."""
    return get_task_blocking_registry().is_blocked(task_id)


def block_task_for_fix(task_id: str, fix_task_id: str) -> TaskBlock:
    """Quick block-for-fix on the process-wide registry."""
    return get_task_blocking_registry().block_for_fix(task_id, fix_task_id)
