"""Persistence collaborator backed by a test-case REST API."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from uniauto_engine.errors import TestCaseNotFoundError
from uniauto_engine.models.result import ExecutionRecord
from uniauto_engine.models.test_case import TestCase
from uniauto_engine.stores.base import ExecutionStore
from uniauto_engine.stores.config import HttpStoreConfig

log = logging.getLogger(__name__)

# Fields the test case API manages itself; not part of a test case definition
SERVER_FIELDS = frozenset({"createdAt", "updatedAt", "executionHistory", "__v"})


@dataclass(frozen=True, kw_only=True)
class HttpExecutionStore(ExecutionStore):
    """Reads test cases from and appends executions to a REST API."""

    config: HttpStoreConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: HttpStoreConfig
    ) -> AsyncGenerator["HttpExecutionStore", None]:
        """Create store with managed session lifecycle."""
        headers = {"Accept": "application/json"}
        if config.token is not None:
            headers["Authorization"] = f"Bearer {config.token.get_secret_value()}"
        async with aiohttp.ClientSession(
            base_url=config.base_url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=config.timeout_s),
        ) as session:
            yield cls(config=config, session=session)

    async def load_test_case(self, test_case_id: str) -> TestCase:
        """Fetch a test case by identifier."""
        async with self.session.get(f"test-cases/{test_case_id}") as response:
            if response.status == 404:
                raise TestCaseNotFoundError(f"Test case not found: {test_case_id}")
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to load test case: {response.status} {text}"
                )
            data = await response.json()

        return TestCase.model_validate(_strip_server_fields(data))

    async def append_execution_record(
        self, test_case_id: str, record: ExecutionRecord
    ) -> None:
        """Post the record to the test case's execution history."""
        url = f"test-cases/{test_case_id}/executions"
        async with self.session.post(url, json=record.to_dict()) as response:
            if response.status == 404:
                raise TestCaseNotFoundError(f"Test case not found: {test_case_id}")
            if response.status not in {200, 201}:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to store execution record: {response.status} {text}"
                )

        log.info(
            "Stored execution %s for test case %s", record.execution_id, test_case_id
        )


def _strip_server_fields(document: dict[str, Any]) -> dict[str, Any]:
    data = {k: v for k, v in document.items() if k not in SERVER_FIELDS}
    data["steps"] = [
        {k: v for k, v in step.items() if k != "_id"}
        for step in data.get("steps", [])
    ]
    return data
