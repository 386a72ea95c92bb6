"""Tests for the execution tracker."""

from datetime import datetime, timedelta, timezone

import pytest

from uniauto_engine.errors import CancellationRequestedError, ExecutionNotFoundError
from uniauto_engine.testing.factories import ExecutionRecordFactory
from uniauto_engine.tracker import ExecutionTracker


@pytest.fixture
def tracker() -> ExecutionTracker:
    """Create tracker with a one minute retention."""
    return ExecutionTracker(retention_s=60)


async def test_register_returns_fresh_token(tracker: ExecutionTracker) -> None:
    """A registered execution is pending and not cancelled."""
    token = await tracker.register("exec-1")

    status = await tracker.status("exec-1")
    assert status.status == "pending"
    assert not token.cancelled
    assert tracker.token("exec-1") is token


async def test_register_rejects_duplicates(tracker: ExecutionTracker) -> None:
    """An identifier can only be registered once."""
    await tracker.register("exec-1")

    with pytest.raises(ValueError, match="already registered"):
        await tracker.register("exec-1")


async def test_unknown_execution(tracker: ExecutionTracker) -> None:
    """Unknown identifiers raise on lookup and cannot be cancelled."""
    with pytest.raises(ExecutionNotFoundError):
        await tracker.status("missing")

    assert await tracker.cancel("missing") is False


async def test_lifecycle_to_completed(tracker: ExecutionTracker) -> None:
    """pending -> running -> completed, with the record attached."""
    await tracker.register("exec-1")
    await tracker.mark_running("exec-1")
    assert (await tracker.status("exec-1")).status == "running"

    record = ExecutionRecordFactory.build(execution_id="exec-1", status="partial")
    await tracker.mark_completed("exec-1", record)

    status = await tracker.status("exec-1")
    assert status.status == "completed"
    assert status.record is record
    assert status.updated_at >= status.created_at


async def test_cancel_sets_token(tracker: ExecutionTracker) -> None:
    """Cancelling a running execution flips its token."""
    token = await tracker.register("exec-1")
    await tracker.mark_running("exec-1")

    assert await tracker.cancel("exec-1") is True
    assert token.cancelled


async def test_cancelled_record_marks_cancelled(tracker: ExecutionTracker) -> None:
    """A record flagged as cancelled ends in the cancelled state."""
    await tracker.register("exec-1")
    record = ExecutionRecordFactory.build(cancelled=True)

    await tracker.mark_completed("exec-1", record)

    assert (await tracker.status("exec-1")).status == "cancelled"


async def test_error_record_marks_error(tracker: ExecutionTracker) -> None:
    """A record with status error ends in the error state."""
    await tracker.register("exec-1")
    record = ExecutionRecordFactory.build(status="error", error="surface gone")

    await tracker.mark_completed("exec-1", record)

    status = await tracker.status("exec-1")
    assert status.status == "error"
    assert status.error == "surface gone"


async def test_mark_error(tracker: ExecutionTracker) -> None:
    """Unexpected failures are tracked with their message."""
    await tracker.register("exec-1")

    await tracker.mark_error("exec-1", RuntimeError("boom"))

    status = await tracker.status("exec-1")
    assert status.status == "error"
    assert status.error == "boom"


async def test_cannot_cancel_finished_execution(tracker: ExecutionTracker) -> None:
    """Terminal executions ignore cancellation."""
    token = await tracker.register("exec-1")
    await tracker.mark_completed("exec-1", ExecutionRecordFactory.build())

    assert await tracker.cancel("exec-1") is False
    assert not token.cancelled


async def test_mark_running_does_not_revive_finished_execution(
    tracker: ExecutionTracker,
) -> None:
    """Only pending executions move to running."""
    await tracker.register("exec-1")
    await tracker.mark_error("exec-1", "boom")

    await tracker.mark_running("exec-1")

    assert (await tracker.status("exec-1")).status == "error"


async def test_acknowledge_drops_finished_execution(tracker: ExecutionTracker) -> None:
    """Acknowledged executions are forgotten; running ones are kept."""
    await tracker.register("done")
    await tracker.register("busy")
    await tracker.mark_completed("done", ExecutionRecordFactory.build())

    assert await tracker.acknowledge("done") is True
    assert await tracker.acknowledge("busy") is False

    with pytest.raises(ExecutionNotFoundError):
        await tracker.status("done")
    assert (await tracker.status("busy")).status == "pending"


async def test_reap_drops_old_finished_executions(tracker: ExecutionTracker) -> None:
    """Finished executions older than the retention window are reaped."""
    await tracker.register("old")
    await tracker.register("running")
    await tracker.mark_completed("old", ExecutionRecordFactory.build())
    later = datetime.now(timezone.utc) + timedelta(minutes=5)

    reaped = await tracker.reap(later)

    assert reaped == ["old"]
    assert (await tracker.status("running")).status == "pending"


async def test_reap_keeps_recent_executions(tracker: ExecutionTracker) -> None:
    """Executions finished within the retention window are kept."""
    await tracker.register("recent")
    await tracker.mark_completed("recent", ExecutionRecordFactory.build())

    assert await tracker.reap() == []


async def test_token_raises_once_cancelled(tracker: ExecutionTracker) -> None:
    """A cancelled token raises CancellationRequestedError when checked."""
    token = await tracker.register("exec-1")
    token.raise_if_cancelled()

    await tracker.cancel("exec-1")

    with pytest.raises(CancellationRequestedError):
        token.raise_if_cancelled()
