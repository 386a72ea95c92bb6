"""Tests for the engine facade."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from uniauto_engine.config import EngineConfig
from uniauto_engine.engine import AutomationEngine
from uniauto_engine.errors import ExecutionNotFoundError, TestCaseNotFoundError
from uniauto_engine.models.test_case import TestCase
from uniauto_engine.orchestrator import RunOrchestrator
from uniauto_engine.stores.memory import InMemoryExecutionStore
from uniauto_engine.surfaces.mock import MockSurface
from uniauto_engine.tracker import TERMINAL_STATES, ExecutionStatus, ExecutionTracker


@pytest.fixture
def store() -> InMemoryExecutionStore:
    """Create in-memory execution store."""
    return InMemoryExecutionStore()


@pytest.fixture
def engine(store: InMemoryExecutionStore) -> AutomationEngine:
    """Create engine without retries."""
    return AutomationEngine.create(EngineConfig(retry_attempts=0), store=store)


def waiting_test_case(steps: int, milliseconds: int = 0) -> TestCase:
    return TestCase.model_validate(
        {
            "id": "waits",
            "name": "Waits",
            "steps": [
                {"command": "wait", "parameters": {"milliseconds": milliseconds}}
            ]
            * steps,
        }
    )


async def wait_until_finished(
    engine: AutomationEngine, execution_id: str
) -> ExecutionStatus:
    """Poll an execution until it reaches a terminal state."""
    async with asyncio.timeout(5):
        while True:
            status = await engine.get_execution_status(execution_id)
            if status.status in TERMINAL_STATES:
                return status
            await asyncio.sleep(0.01)


async def test_run_test_case_tracks_completion(
    engine: AutomationEngine, surface: MockSurface
) -> None:
    """A synchronous run returns its record and leaves it tracked."""
    record = await engine.run_test_case(
        waiting_test_case(2), surface, execution_id="exec-1"
    )

    assert record.status == "success"
    status = await engine.get_execution_status("exec-1")
    assert status.status == "completed"
    assert status.record == record


async def test_start_test_case_runs_in_background(
    engine: AutomationEngine,
    store: InMemoryExecutionStore,
    surface: MockSurface,
) -> None:
    """A started run can be polled until its record is available."""
    execution_id = await engine.start_test_case(waiting_test_case(3, 10), surface)

    status = await wait_until_finished(engine, execution_id)

    assert status.status == "completed"
    assert status.record is not None
    assert len(status.record.step_results) == 3
    assert store.history("waits") == (status.record,)


async def test_cancel_execution(engine: AutomationEngine, surface: MockSurface) -> None:
    """A cancelled run stops before its next step."""
    execution_id = await engine.start_test_case(waiting_test_case(50, 20), surface)
    await asyncio.sleep(0.05)

    assert await engine.cancel_execution(execution_id) is True
    status = await wait_until_finished(engine, execution_id)

    assert status.status == "cancelled"
    assert status.record is not None
    assert status.record.cancelled
    assert 0 < len(status.record.step_results) < 50


async def test_cancel_unknown_execution(engine: AutomationEngine) -> None:
    """Unknown executions cannot be cancelled."""
    assert await engine.cancel_execution("missing") is False


async def test_status_of_unknown_execution(engine: AutomationEngine) -> None:
    """Polling an unknown execution raises."""
    with pytest.raises(ExecutionNotFoundError):
        await engine.get_execution_status("missing")


async def test_unexpected_error_becomes_error_record(surface: MockSurface) -> None:
    """Exceptions from a run are tracked, not raised."""
    orchestrator = Mock(spec=RunOrchestrator)
    orchestrator.run = AsyncMock(side_effect=RuntimeError("boom"))
    engine = AutomationEngine(orchestrator=orchestrator, tracker=ExecutionTracker())

    record = await engine.run_test_case(
        waiting_test_case(1), surface, execution_id="exec-1"
    )

    assert record.status == "error"
    assert record.error == "boom"
    status = await engine.get_execution_status("exec-1")
    assert status.status == "error"
    assert status.error == "boom"


async def test_error_record_measures_duration(surface: MockSurface) -> None:
    """The error record covers the time spent before the run failed."""

    async def fail_late(*args: object, **kwargs: object) -> None:
        await asyncio.sleep(0.05)
        raise RuntimeError("boom")

    orchestrator = Mock(spec=RunOrchestrator)
    orchestrator.run = AsyncMock(side_effect=fail_late)
    engine = AutomationEngine(orchestrator=orchestrator, tracker=ExecutionTracker())

    record = await engine.run_test_case(waiting_test_case(1), surface)

    assert record.status == "error"
    assert record.duration >= 0.05


async def test_run_stored_test_case(
    engine: AutomationEngine,
    store: InMemoryExecutionStore,
    surface: MockSurface,
) -> None:
    """Test cases can be loaded from the store by identifier."""
    store.add_test_case(waiting_test_case(1))

    record = await engine.run_stored_test_case("waits", surface)

    assert record.test_case_id == "waits"
    assert record.status == "success"


async def test_run_stored_test_case_not_found(
    engine: AutomationEngine, surface: MockSurface
) -> None:
    """Missing test cases surface as TestCaseNotFoundError."""
    with pytest.raises(TestCaseNotFoundError, match="Test case not found: nope"):
        await engine.run_stored_test_case("nope", surface)


async def test_run_stored_test_case_requires_store(surface: MockSurface) -> None:
    """An engine without store cannot load test cases."""
    engine = AutomationEngine.create()

    with pytest.raises(RuntimeError, match="no execution store"):
        await engine.run_stored_test_case("waits", surface)
