"""Abstract base class for persistence collaborators."""

from abc import ABC, abstractmethod

from uniauto_engine.models.result import ExecutionRecord
from uniauto_engine.models.test_case import TestCase


class ExecutionStore(ABC):
    """Where test cases come from and where execution history goes."""

    @abstractmethod
    async def append_execution_record(
        self, test_case_id: str, record: ExecutionRecord
    ) -> None:
        """Append ``record`` to the test case's execution history."""

    @abstractmethod
    async def load_test_case(self, test_case_id: str) -> TestCase:
        """Load a test case.

        Raises:
            TestCaseNotFoundError: If no test case has this identifier

        """
