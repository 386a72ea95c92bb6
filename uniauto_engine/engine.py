"""Engine facade exposing run, status and cancellation operations."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from uniauto_engine.config import EngineConfig
from uniauto_engine.executor import StepExecutor
from uniauto_engine.locators.repository import (
    InMemoryLocatorRepository,
    LocatorRepository,
)
from uniauto_engine.locators.resolver import LocatorResolver
from uniauto_engine.models.result import ExecutionRecord
from uniauto_engine.models.test_case import TestCase
from uniauto_engine.orchestrator import RunOrchestrator
from uniauto_engine.stores.base import ExecutionStore
from uniauto_engine.surfaces.base import AutomationSurface
from uniauto_engine.tracker import CancellationToken, ExecutionStatus, ExecutionTracker

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class AutomationEngine:
    """Entry point for protocol layers.

    Callers always get an execution record back, or an execution whose
    tracked state is ``error``; exceptions from a run are not propagated.
    """

    orchestrator: RunOrchestrator
    tracker: ExecutionTracker
    _tasks: set[asyncio.Task[ExecutionRecord]] = field(
        default_factory=set, repr=False
    )

    @classmethod
    def create(
        cls,
        config: EngineConfig | None = None,
        *,
        repository: LocatorRepository | None = None,
        store: ExecutionStore | None = None,
    ) -> "AutomationEngine":
        """Wire resolver, executor, orchestrator and tracker from one config."""
        config = config or EngineConfig()
        resolver = LocatorResolver.from_config(
            config, repository or InMemoryLocatorRepository()
        )
        executor = StepExecutor.from_config(config, resolver)
        return cls(
            orchestrator=RunOrchestrator(executor=executor, store=store),
            tracker=ExecutionTracker(retention_s=config.tracker_retention_s),
        )

    @property
    def store(self) -> ExecutionStore | None:
        return self.orchestrator.store

    async def run_test_case(
        self,
        test_case: TestCase,
        surface: AutomationSurface,
        *,
        execution_id: str | None = None,
    ) -> ExecutionRecord:
        """Run a test case to completion and return its record."""
        execution_id = execution_id or uuid.uuid4().hex
        token = await self.tracker.register(execution_id)
        return await self._execute(execution_id, token, test_case, surface)

    async def start_test_case(
        self, test_case: TestCase, surface: AutomationSurface
    ) -> str:
        """Start a run in the background and return its execution identifier."""
        execution_id = uuid.uuid4().hex
        token = await self.tracker.register(execution_id)
        task = asyncio.create_task(
            self._execute(execution_id, token, test_case, surface),
            name=f"execution-{execution_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return execution_id

    async def run_stored_test_case(
        self, test_case_id: str, surface: AutomationSurface
    ) -> ExecutionRecord:
        """Load a test case from the store and run it.

        Raises:
            RuntimeError: If the engine has no store
            TestCaseNotFoundError: If the store has no such test case

        """
        if self.store is None:
            raise RuntimeError("Engine has no execution store configured")
        test_case = await self.store.load_test_case(test_case_id)
        return await self.run_test_case(test_case, surface)

    async def get_execution_status(self, execution_id: str) -> ExecutionStatus:
        """Return the tracked state of an execution.

        Raises:
            ExecutionNotFoundError: If the execution is unknown or was reaped

        """
        return await self.tracker.status(execution_id)

    async def cancel_execution(self, execution_id: str) -> bool:
        """Ask a running execution to stop before its next step."""
        return await self.tracker.cancel(execution_id)

    async def _execute(
        self,
        execution_id: str,
        token: CancellationToken,
        test_case: TestCase,
        surface: AutomationSurface,
    ) -> ExecutionRecord:
        await self.tracker.mark_running(execution_id)
        executed_at = datetime.now(timezone.utc)
        started = time.monotonic()
        try:
            record = await self.orchestrator.run(
                test_case, surface, execution_id=execution_id, token=token
            )
        except Exception as e:
            log.error("Execution %s failed: %s", execution_id, e, exc_info=e)
            await self.tracker.mark_error(execution_id, e)
            return ExecutionRecord(
                execution_id=execution_id,
                test_case_id=test_case.id,
                executed_at=executed_at,
                status="error",
                step_results=(),
                duration=time.monotonic() - started,
                error=str(e),
            )

        await self.tracker.mark_completed(execution_id, record)
        return record
