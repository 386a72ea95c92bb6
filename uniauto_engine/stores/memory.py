"""In-memory persistence collaborator."""

from collections.abc import Sequence
from dataclasses import dataclass, field

from uniauto_engine.errors import TestCaseNotFoundError
from uniauto_engine.models.result import ExecutionRecord
from uniauto_engine.models.test_case import TestCase
from uniauto_engine.stores.base import ExecutionStore


@dataclass(kw_only=True)
class InMemoryExecutionStore(ExecutionStore):
    """Keeps test cases and their execution history in process memory."""

    test_cases: dict[str, TestCase] = field(default_factory=dict)
    executions: dict[str, list[ExecutionRecord]] = field(default_factory=dict)

    def add_test_case(self, test_case: TestCase) -> None:
        self.test_cases[test_case.id] = test_case

    def history(self, test_case_id: str) -> Sequence[ExecutionRecord]:
        return tuple(self.executions.get(test_case_id, ()))

    async def append_execution_record(
        self, test_case_id: str, record: ExecutionRecord
    ) -> None:
        self.executions.setdefault(test_case_id, []).append(record)

    async def load_test_case(self, test_case_id: str) -> TestCase:
        try:
            return self.test_cases[test_case_id]
        except KeyError:
            raise TestCaseNotFoundError(
                f"Test case not found: {test_case_id}"
            ) from None
