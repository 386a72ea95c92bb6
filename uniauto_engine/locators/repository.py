"""Learned-locator repository shared across runs."""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from uniauto_engine.models.locator import VisualFingerprint
from uniauto_engine.surfaces.base import ElementDescription

RepositoryKey = tuple[str, str]
"""(page signature, primary selector)."""


@dataclass(frozen=True, kw_only=True)
class LocatorRepositoryEntry:
    """What was learned about one primary selector on one page."""

    page_signature: str
    primary_selector: str
    updated_at: datetime
    healed_selector: str | None = None
    strategy: str | None = None
    success_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    fingerprint: VisualFingerprint | None = None
    role: str | None = None
    name: str | None = None
    text: str | None = None
    alternative_selectors: tuple[str, ...] = ()

    @property
    def key(self) -> RepositoryKey:
        return (self.page_signature, self.primary_selector)

    def is_evicted(self, threshold: int) -> bool:
        """Whether the healed selector failed too often to be offered again."""
        return self.consecutive_failures >= threshold

    def with_heal(
        self, selector: str, strategy: str, now: datetime
    ) -> "LocatorRepositoryEntry":
        """Store a freshly healed selector and reset the failure streak."""
        return replace(
            self,
            healed_selector=selector,
            strategy=strategy,
            success_count=self.success_count + 1,
            consecutive_failures=0,
            updated_at=now,
        )

    def with_hit(self, selector: str, now: datetime) -> "LocatorRepositoryEntry":
        """Count a successful reuse of the stored healed selector.

        A hit through one of the alternative selectors only adds to the
        success count; the healed selector's failure streak is its own.
        """
        if selector in self.alternative_selectors and selector != self.healed_selector:
            return replace(self, success_count=self.success_count + 1, updated_at=now)
        if selector != self.healed_selector:
            return self
        return replace(
            self,
            success_count=self.success_count + 1,
            consecutive_failures=0,
            updated_at=now,
        )

    def with_failure(self, selector: str, now: datetime) -> "LocatorRepositoryEntry":
        """Count a failed reuse; ignored if the stored selector changed meanwhile."""
        if selector != self.healed_selector:
            return self
        return replace(
            self,
            failure_count=self.failure_count + 1,
            consecutive_failures=self.consecutive_failures + 1,
            updated_at=now,
        )

    def with_fingerprint(
        self, fingerprint: VisualFingerprint, now: datetime
    ) -> "LocatorRepositoryEntry":
        return replace(self, fingerprint=fingerprint, updated_at=now)

    def with_description(
        self, description: ElementDescription, now: datetime
    ) -> "LocatorRepositoryEntry":
        """Remember how the element looked when its primary selector worked."""
        return replace(
            self,
            role=description.role,
            name=description.name,
            text=description.text,
            alternative_selectors=tuple(
                s for s in description.selectors if s != self.primary_selector
            ),
            updated_at=now,
        )

    @property
    def has_description(self) -> bool:
        return bool(self.role or self.text or self.alternative_selectors)


Mutator = Callable[[LocatorRepositoryEntry | None], LocatorRepositoryEntry | None]


class LocatorRepository(ABC):
    """Keyed store of learned locators with atomic per-key updates."""

    @abstractmethod
    async def get(self, key: RepositoryKey) -> LocatorRepositoryEntry | None:
        """Return the entry stored under ``key``, if any."""

    @abstractmethod
    async def update(
        self, key: RepositoryKey, mutate: Mutator
    ) -> LocatorRepositoryEntry | None:
        """Atomically replace the entry under ``key`` with ``mutate(current)``.

        Concurrent updates of the same key are applied one after another, so
        every mutation sees the result of the previous one. Returning None
        from ``mutate`` leaves the stored entry unchanged; entries are never
        removed.

        Returns:
            The entry stored under ``key`` after the update

        """

    @abstractmethod
    async def entries(self) -> Sequence[LocatorRepositoryEntry]:
        """Return every stored entry."""


@dataclass(kw_only=True)
class InMemoryLocatorRepository(LocatorRepository):
    """Process-local repository guarded by one lock per key."""

    _entries: dict[RepositoryKey, LocatorRepositoryEntry] = field(default_factory=dict)
    _locks: defaultdict[RepositoryKey, asyncio.Lock] = field(
        default_factory=lambda: defaultdict(asyncio.Lock)
    )

    async def get(self, key: RepositoryKey) -> LocatorRepositoryEntry | None:
        return self._entries.get(key)

    async def update(
        self, key: RepositoryKey, mutate: Mutator
    ) -> LocatorRepositoryEntry | None:
        async with self._locks[key]:
            updated = mutate(self._entries.get(key))
            if updated is not None:
                self._entries[key] = updated
            return self._entries.get(key)

    async def entries(self) -> Sequence[LocatorRepositoryEntry]:
        return list(self._entries.values())
