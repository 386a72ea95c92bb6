"""Fixtures for unit tests."""

from collections.abc import AsyncGenerator

import pytest

from uniauto_engine.locators.repository import InMemoryLocatorRepository
from uniauto_engine.locators.resolver import LocatorResolver
from uniauto_engine.surfaces.mock import MockSurface
from uniauto_engine.testing.pages import CHECKOUT_URL, surface_config


@pytest.fixture
def repository() -> InMemoryLocatorRepository:
    """Create an empty learned-locator repository."""
    return InMemoryLocatorRepository()


@pytest.fixture
def resolver(repository: InMemoryLocatorRepository) -> LocatorResolver:
    """Create resolver with the default strategy chain."""
    return LocatorResolver(repository=repository, strategy_timeout_ms=500)


@pytest.fixture
async def surface() -> AsyncGenerator[MockSurface, None]:
    """Create mock surface positioned on the checkout page."""
    async with MockSurface.from_config(surface_config(start_url=CHECKOUT_URL)) as impl:
        yield impl
