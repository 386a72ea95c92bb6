"""Process-wide registry of in-flight executions."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

from uniauto_engine.errors import CancellationRequestedError, ExecutionNotFoundError
from uniauto_engine.models.result import ExecutionRecord

log = logging.getLogger(__name__)

ExecutionState = Literal["pending", "running", "completed", "cancelled", "error"]

TERMINAL_STATES: frozenset[ExecutionState] = frozenset(
    {"completed", "cancelled", "error"}
)


class CancellationToken:
    """Cooperative cancellation flag, polled by the run between steps."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ``CancellationRequestedError`` once cancellation was requested."""
        if self.cancelled:
            raise CancellationRequestedError("Cancellation requested")


@dataclass(frozen=True, kw_only=True)
class ExecutionStatus:
    """Snapshot of an execution as seen by pollers."""

    execution_id: str
    status: ExecutionState
    created_at: datetime
    updated_at: datetime
    record: ExecutionRecord | None = None
    error: str | None = None


@dataclass(kw_only=True)
class _TrackedExecution:
    status: ExecutionState
    token: CancellationToken
    created_at: datetime
    updated_at: datetime
    record: ExecutionRecord | None = None
    error: str | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(kw_only=True)
class ExecutionTracker:
    """Maps execution identifiers to live run state.

    Every transition of one execution happens under that execution's lock.
    Terminal entries stay around until acknowledged or reaped after
    ``retention_s``.
    """

    retention_s: float = 3600
    _executions: dict[str, _TrackedExecution] = field(default_factory=dict)
    _registry_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def register(self, execution_id: str) -> CancellationToken:
        """Create a pending entry and return its cancellation token.

        Raises:
            ValueError: If the identifier is already tracked

        """
        async with self._registry_lock:
            if execution_id in self._executions:
                raise ValueError(f"Execution {execution_id!r} is already registered")
            now = _now()
            token = CancellationToken()
            self._executions[execution_id] = _TrackedExecution(
                status="pending", token=token, created_at=now, updated_at=now
            )
        log.debug("Registered execution %s", execution_id)
        return token

    async def mark_running(self, execution_id: str) -> None:
        execution = self._get(execution_id)
        async with execution.lock:
            if execution.status == "pending":
                execution.status = "running"
                execution.updated_at = _now()

    async def mark_completed(self, execution_id: str, record: ExecutionRecord) -> None:
        """Store the final record; its flags decide the terminal state."""
        execution = self._get(execution_id)
        async with execution.lock:
            if record.cancelled:
                execution.status = "cancelled"
            elif record.status == "error":
                execution.status = "error"
                execution.error = record.error
            else:
                execution.status = "completed"
            execution.record = record
            execution.updated_at = _now()
        log.info("Execution %s finished: %s", execution_id, execution.status)

    async def mark_error(self, execution_id: str, error: BaseException | str) -> None:
        execution = self._get(execution_id)
        async with execution.lock:
            execution.status = "error"
            execution.error = str(error)
            execution.updated_at = _now()
        log.info("Execution %s errored: %s", execution_id, error)

    async def cancel(self, execution_id: str) -> bool:
        """Request cancellation; False if unknown or already finished."""
        execution = self._executions.get(execution_id)
        if execution is None:
            return False
        async with execution.lock:
            if execution.status in TERMINAL_STATES:
                return False
            execution.token.cancel()
            execution.updated_at = _now()
        log.info("Cancellation requested for execution %s", execution_id)
        return True

    async def status(self, execution_id: str) -> ExecutionStatus:
        execution = self._get(execution_id)
        async with execution.lock:
            return ExecutionStatus(
                execution_id=execution_id,
                status=execution.status,
                created_at=execution.created_at,
                updated_at=execution.updated_at,
                record=execution.record,
                error=execution.error,
            )

    def token(self, execution_id: str) -> CancellationToken:
        return self._get(execution_id).token

    async def acknowledge(self, execution_id: str) -> bool:
        """Drop a finished execution once the caller has read its result."""
        async with self._registry_lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status not in TERMINAL_STATES:
                return False
            del self._executions[execution_id]
            return True

    async def reap(self, now: datetime | None = None) -> Sequence[str]:
        """Drop finished executions older than the retention window."""
        cutoff = (now or _now()) - timedelta(seconds=self.retention_s)
        async with self._registry_lock:
            expired = [
                execution_id
                for execution_id, execution in self._executions.items()
                if execution.status in TERMINAL_STATES and execution.updated_at < cutoff
            ]
            for execution_id in expired:
                del self._executions[execution_id]
        if expired:
            log.debug("Reaped %d finished execution(s)", len(expired))
        return expired

    def _get(self, execution_id: str) -> _TrackedExecution:
        try:
            return self._executions[execution_id]
        except KeyError:
            raise ExecutionNotFoundError(
                f"Execution {execution_id!r} is not tracked"
            ) from None
