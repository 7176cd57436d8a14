"""Tests for the task blocking registry."""

import pytest

from fixladder.core.task_blocking import (
    BlockingEventType,
    BlockingReason,
    TaskBlockingRegistry,
    block_task_for_fix,
    get_task_blocking_registry,
    is_task_blocked,
    reset_task_blocking_registry,
)


@pytest.fixture
def registry() -> TaskBlockingRegistry:
    return TaskBlockingRegistry()


@pytest.fixture
def events(registry):
    """Collect every notification the registry emits."""
    received = []
    registry.subscribe(received.append)
    return received


def _assert_indices_agree(registry: TaskBlockingRegistry) -> None:
    """Every block appears in the reverse index and vice versa."""
    forward = {
        (block.blocking_task_id, task_id)
        for task_id in registry.get_blocked_tasks()
        for block in registry.get_block_status(task_id).blocks
    }
    reverse = {
        (blocking_id, task_id)
        for blocking_id, _ in forward
        for task_id in registry.get_tasks_blocked_by(blocking_id)
    }
    assert forward == reverse


class TestBlocking:
    """Tests for creating blocks."""

    def test_block_for_fix(self, registry):
        block = registry.block_for_fix("task-1", "fix-1", notes="tests red")

        assert registry.is_blocked("task-1") is True
        assert block.reason == BlockingReason.FIX_IN_PROGRESS
        assert block.auto_unblock is True
        assert block.notes == "tests red"

    def test_block_for_investigation(self, registry):
        block = registry.block_for_investigation("task-1", "inv-1")

        assert registry.is_blocked("task-1") is True
        assert block.reason == BlockingReason.INVESTIGATION_PENDING
        assert block.auto_unblock is True

    def test_manual_block(self, registry):
        block = registry.block_task("task-1", notes="waiting on design")

        assert registry.is_blocked("task-1") is True
        assert block.reason == BlockingReason.MANUAL_HOLD
        assert block.auto_unblock is False
        assert block.blocking_task_id.startswith("manual-")

    def test_unknown_task_not_blocked(self, registry):
        assert registry.is_blocked("nope") is False

    def test_multiple_blocks_on_one_task(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_investigation("task-1", "inv-1")

        status = registry.get_block_status("task-1")

        assert status.is_blocked is True
        assert status.blocked_by == ["fix-1", "inv-1"]
        assert len(status.blocks) == 2
        _assert_indices_agree(registry)


class TestUnblocking:
    """Tests for removing blocks."""

    def test_unblock_specific_pair(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_fix("task-1", "fix-2")

        assert registry.unblock("task-1", "fix-1") is True
        assert registry.is_blocked("task-1") is True
        assert registry.get_block_status("task-1").blocked_by == ["fix-2"]
        assert registry.get_tasks_blocked_by("fix-1") == []
        _assert_indices_agree(registry)

    def test_unblock_all_returns_count(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_fix("task-1", "fix-2")
        registry.unblock("task-1", "fix-1")

        assert registry.unblock_all("task-1") == 1
        assert registry.is_blocked("task-1") is False
        assert registry.get_tasks_blocked_by("fix-2") == []

    def test_unblock_unmatched_pair_is_noop(self, registry):
        registry.block_for_fix("task-1", "fix-1")

        assert registry.unblock("task-1", "fix-9") is False
        assert registry.unblock("task-9", "fix-1") is False
        assert registry.is_blocked("task-1") is True

    def test_unblock_all_unknown_task(self, registry):
        assert registry.unblock_all("task-1") == 0

    def test_unblock_manual_block(self, registry):
        block = registry.block_task("task-1")
        assert registry.unblock("task-1", block.blocking_task_id) is True
        assert registry.is_blocked("task-1") is False


class TestFixOutcomes:
    """Tests for fix_task_completed / fix_task_failed."""

    def test_fix_completed_unblocks(self, registry):
        registry.block_for_fix("task-1", "fix-1")

        assert registry.fix_task_completed("fix-1") == ["task-1"]
        assert registry.is_blocked("task-1") is False
        assert registry.get_active_fix_tasks() == {}
        _assert_indices_agree(registry)

    def test_fix_completed_leaves_other_blocks(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_task("task-1", notes="hold")

        registry.fix_task_completed("fix-1")

        assert registry.is_blocked("task-1") is True
        assert registry.get_block_status("task-1").blocks[0].reason == BlockingReason.MANUAL_HOLD

    def test_investigation_completed_unblocks(self, registry):
        registry.block_for_investigation("task-1", "inv-1")
        registry.fix_task_completed("inv-1")
        assert registry.is_blocked("task-1") is False

    def test_fix_completed_untracked_is_noop(self, registry):
        assert registry.fix_task_completed("fix-404") == []

    def test_fix_completed_twice_is_noop(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.fix_task_completed("fix-1")
        assert registry.fix_task_completed("fix-1") == []

    def test_fix_failed_keeps_task_blocked(self, registry):
        registry.block_for_fix("task-1", "fix-1")

        assert registry.fix_task_failed("fix-1") == ["task-1"]

        status = registry.get_block_status("task-1")
        assert status.is_blocked is True
        assert status.blocks[0].reason == BlockingReason.VERIFICATION_FAILED
        assert status.blocks[0].notes == "Fix task fix-1 failed"
        assert registry.get_active_fix_tasks() == {}

    def test_fix_failed_then_completed_keeps_block(self, registry):
        """A failed fix is not released by a late completion."""
        registry.block_for_fix("task-1", "fix-1")
        registry.fix_task_failed("fix-1")

        registry.fix_task_completed("fix-1")

        assert registry.is_blocked("task-1") is True

    def test_fix_failed_after_unblock_is_noop(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.unblock("task-1", "fix-1")

        assert registry.fix_task_failed("fix-1") == []
        assert registry.is_blocked("task-1") is False

    def test_fix_failed_twice_is_noop(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.fix_task_failed("fix-1")
        assert registry.fix_task_failed("fix-1") == []

    def test_next_ladder_level_cycle(self, registry):
        """Failed fix, new fix dispatched, old block cleared, new fix lands."""
        registry.block_for_fix("task-1", "fix-1")
        registry.fix_task_failed("fix-1")
        registry.block_for_fix("task-1", "fix-2")
        registry.unblock("task-1", "fix-1")

        assert registry.get_active_fix_tasks() == {"fix-2": "task-1"}

        registry.fix_task_completed("fix-2")
        assert registry.is_blocked("task-1") is False
        _assert_indices_agree(registry)


class TestQueries:
    """Tests for status queries and summaries."""

    def test_active_fix_tasks(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_fix("task-2", "fix-2")
        registry.block_for_investigation("task-3", "inv-1")

        assert registry.get_active_fix_tasks() == {"fix-1": "task-1", "fix-2": "task-2"}

    def test_active_fix_tasks_one_entry_per_fix(self, registry):
        """A fix blocking two tasks reports the most recently blocked one."""
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_fix("task-2", "fix-1")

        assert registry.get_active_fix_tasks() == {"fix-1": "task-2"}
        assert registry.get_tasks_blocked_by("fix-1") == ["task-1", "task-2"]

    def test_active_fix_tasks_skips_failed_block(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_fix("task-2", "fix-1")
        registry.fix_task_failed("fix-1")
        registry.block_for_fix("task-1", "fix-2")

        assert registry.get_active_fix_tasks() == {"fix-2": "task-1"}

    def test_active_fix_tasks_is_snapshot(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        snapshot = registry.get_active_fix_tasks()
        snapshot.clear()
        assert registry.get_active_fix_tasks() == {"fix-1": "task-1"}

    def test_block_status_lists_blocking(self, registry):
        """A fix task that is itself blocked reports what it is blocking."""
        registry.block_for_fix("task-1", "fix-1")
        registry.block_for_investigation("fix-1", "inv-1")

        status = registry.get_block_status("fix-1")

        assert status.blocking == ["task-1"]
        assert status.blocked_by == ["inv-1"]

    def test_block_status_for_unblocked_task(self, registry):
        status = registry.get_block_status("task-1")

        assert status.is_blocked is False
        assert status.blocked_by == []
        assert status.blocks == []

    def test_get_blocked_tasks(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_task("task-2")
        assert registry.get_blocked_tasks() == ["task-1", "task-2"]

    def test_summary(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.block_task("task-1")

        summary = registry.get_summary()

        assert summary.splitlines() == [
            "Task Blocking Summary:",
            "  📛 Blocked tasks: 1",
            "  🔧 Active fix tasks: 1",
            "  Blocked:",
            "    • task-1: fix_in_progress, manual_hold",
        ]

    def test_summary_empty(self, registry):
        assert "Blocked:" not in registry.get_summary()

    def test_clear(self, registry):
        registry.block_for_fix("task-1", "fix-1")
        registry.clear()

        assert registry.is_blocked("task-1") is False
        assert registry.get_tasks_blocked_by("fix-1") == []


class TestNotifications:
    """Tests for registry listeners."""

    def test_block_for_fix_events(self, registry, events):
        registry.block_for_fix("task-1", "fix-1")

        assert [e.event_type for e in events] == [
            BlockingEventType.TASK_BLOCKED,
            BlockingEventType.FIX_STARTED,
        ]
        assert events[1].payload == {"task_id": "task-1", "fix_task_id": "fix-1"}

    def test_fix_completed_event(self, registry, events):
        registry.block_for_fix("task-1", "fix-1")
        events.clear()

        registry.fix_task_completed("fix-1")

        assert [e.event_type for e in events] == [
            BlockingEventType.TASK_UNBLOCKED,
            BlockingEventType.FIX_COMPLETED,
        ]
        assert events[1].payload == {"fix_task_id": "fix-1", "task_id": "task-1"}

    def test_fix_failed_event(self, registry, events):
        registry.block_for_fix("task-1", "fix-1")
        events.clear()

        registry.fix_task_failed("fix-1")

        assert [e.event_type for e in events] == [BlockingEventType.FIX_FAILED]

    def test_noop_emits_nothing(self, registry, events):
        registry.fix_task_completed("fix-404")
        registry.fix_task_failed("fix-404")
        registry.unblock("task-1", "fix-1")
        assert events == []

    def test_unsubscribe(self, registry):
        received = []
        unsubscribe = registry.subscribe(received.append)
        unsubscribe()

        registry.block_task("task-1")

        assert received == []

    def test_listener_error_does_not_propagate(self, registry):
        def broken(event):
            raise RuntimeError("listener bug")

        received = []
        registry.subscribe(broken)
        registry.subscribe(received.append)

        registry.block_for_fix("task-1", "fix-1")

        assert registry.is_blocked("task-1") is True
        assert len(received) == 2


class TestDefaultRegistry:
    """Tests for the process-wide registry helpers."""

    def test_singleton(self):
        assert get_task_blocking_registry() is get_task_blocking_registry()

    def test_quick_helpers(self):
        block_task_for_fix("task-1", "fix-1")
        assert is_task_blocked("task-1") is True

    def test_reset(self):
        block_task_for_fix("task-1", "fix-1")
        reset_task_blocking_registry()
        assert is_task_blocked("task-1") is False
