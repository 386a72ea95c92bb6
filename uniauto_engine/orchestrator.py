"""Run orchestrator sequencing a test case's steps on one surface."""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from uniauto_engine.errors import CancellationRequestedError, SurfaceUnavailableError
from uniauto_engine.executor import StepExecutor
from uniauto_engine.models.result import ExecutionRecord, StepResult, compute_status
from uniauto_engine.models.test_case import TestCase
from uniauto_engine.stores.base import ExecutionStore
from uniauto_engine.surfaces.base import AutomationSurface
from uniauto_engine.tracker import CancellationToken

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class RunOrchestrator:
    """Runs every step of a test case, in order, and records the outcome."""

    executor: StepExecutor
    store: ExecutionStore | None = None

    async def run(
        self,
        test_case: TestCase,
        surface: AutomationSurface,
        *,
        execution_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> ExecutionRecord:
        """Run all steps of the test case against the surface.

        A failed step does not stop the run. The run stops early only when
        ``token`` is cancelled (checked between steps) or when the surface
        itself becomes unavailable.

        Args:
            test_case: Test case to run; the run works on a snapshot of it
            surface: Surface exclusively owned by this run
            execution_id: Identifier for the record (generated if omitted)
            token: Cancellation token polled between steps

        Returns:
            The execution record, also appended to the store if one is set

        """
        snapshot = test_case.snapshot()
        execution_id = execution_id or uuid.uuid4().hex
        token = token or CancellationToken()
        executed_at = datetime.now(timezone.utc)
        started = time.monotonic()

        log.info(
            "Running test case %s (%d step(s)) as execution %s",
            snapshot.id,
            len(snapshot.steps),
            execution_id,
        )

        results: list[StepResult] = []
        cancelled = False
        error: str | None = None

        for index, step in enumerate(snapshot.steps):
            try:
                token.raise_if_cancelled()
            except CancellationRequestedError:
                log.info("Execution %s cancelled before step %d", execution_id, index)
                cancelled = True
                break

            step_started = time.monotonic()
            selector = step.locator.selector if step.locator else None
            try:
                result = await self.executor.execute(step, index, surface)
            except SurfaceUnavailableError as e:
                log.error("Surface lost during step %d: %s", index, e)
                error = str(e)
                results.append(
                    StepResult(
                        step_index=index,
                        command=step.command,
                        status="failure",
                        duration=time.monotonic() - step_started,
                        original_selector=selector,
                        error=error,
                        error_kind=e.kind,
                    )
                )
                break

            log.info(
                "Step %d %s: %s (%.2fs)",
                index,
                step.command,
                result.status,
                result.duration,
            )
            results.append(result)

        record = ExecutionRecord(
            execution_id=execution_id,
            test_case_id=snapshot.id,
            executed_at=executed_at,
            status="error" if error is not None else compute_status(results),
            step_results=tuple(results),
            duration=time.monotonic() - started,
            cancelled=cancelled,
            error=error,
        )
        log.info(
            "Execution %s completed: status=%s duration=%.1fs",
            execution_id,
            record.status,
            record.duration,
        )

        await self._persist(record)
        return record

    async def _persist(self, record: ExecutionRecord) -> None:
        if self.store is None:
            return
        try:
            await self.store.append_execution_record(record.test_case_id, record)
        except Exception as e:
            log.error(
                "Failed to store execution %s: %s", record.execution_id, e, exc_info=e
            )
