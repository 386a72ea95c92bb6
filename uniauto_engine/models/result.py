"""Models for step and run execution results."""

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Literal

StepStatus = Literal["success", "failure", "skipped"]
RunStatus = Literal["success", "failure", "partial", "error"]


@dataclass(frozen=True, kw_only=True)
class StepResult:
    """Outcome of a single step, including how its locator was healed."""

    step_index: int
    command: str
    status: StepStatus
    duration: float
    original_selector: str | None = None
    healed_selector: str | None = None
    strategy: str | None = None
    error: str | None = None
    error_kind: str | None = None
    attempts: int = 1
    screenshot: str | None = None
    output: Any = None

    @property
    def healed(self) -> bool:
        """Whether a selector other than the declared one was used."""
        return self.healed_selector is not None


@dataclass(frozen=True, kw_only=True)
class ExecutionRecord:
    """Immutable outcome of one run of a test case.

    ``cancelled`` is the trailing marker for runs stopped by the caller;
    ``error`` is set when the surface itself went away mid-run.
    """

    execution_id: str
    test_case_id: str
    executed_at: datetime
    status: RunStatus
    step_results: Sequence[StepResult]
    duration: float
    cancelled: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        data = asdict(self)
        data["executed_at"] = self.executed_at.isoformat()
        data["step_results"] = [asdict(result) for result in self.step_results]
        return data


def compute_status(step_results: Sequence[StepResult]) -> RunStatus:
    """Derive the overall run status from its step results.

    success when every step succeeded, failure when none did, partial otherwise.
    """
    successes = sum(1 for result in step_results if result.status == "success")
    if successes == len(step_results):
        return "success"
    if successes == 0:
        return "failure"
    return "partial"
