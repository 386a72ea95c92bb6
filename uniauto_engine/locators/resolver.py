"""Locator resolution through the self-healing strategy chain."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeVar

from uniauto_engine.config import EngineConfig
from uniauto_engine.errors import (
    CommandUnsupportedError,
    ElementNotFoundError,
    EngineError,
    LocatorAmbiguousError,
    LocatorNotFoundError,
    SurfaceUnavailableError,
)
from uniauto_engine.locators.repository import (
    LocatorRepository,
    LocatorRepositoryEntry,
    Mutator,
    RepositoryKey,
)
from uniauto_engine.locators.strategies import (
    DEFAULT_STRATEGIES,
    ResolutionContext,
    ResolutionStrategy,
    StrategyOutcome,
)
from uniauto_engine.models.locator import LocatorDescriptor
from uniauto_engine.surfaces.base import AutomationSurface, ElementHandle

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ResolvedLocator:
    """A locator bound to a live element for one step attempt."""

    strategy: str
    selector: str
    primary_selector: str
    handle: ElementHandle = field(repr=False)
    match_count: int = 1

    @property
    def healed(self) -> bool:
        """Whether something other than the declared selector found the element."""
        return self.strategy != "primary"


@dataclass(frozen=True, kw_only=True)
class StrategyAttempt:
    """A strategy that was tried and why it did not resolve."""

    strategy: str
    reason: str


@dataclass(frozen=True, kw_only=True)
class ResolutionFailure:
    """Every strategy failed; ``attempts`` lists them in chain order."""

    primary_selector: str
    attempts: Sequence[StrategyAttempt]

    def describe(self) -> str:
        tried = "; ".join(f"{a.strategy}: {a.reason}" for a in self.attempts)
        return f"Unable to resolve {self.primary_selector!r} ({tried})"

    def to_error(self) -> EngineError:
        """Return the error kind that best describes this failure."""
        if any(a.reason.startswith("ambiguous") for a in self.attempts):
            return LocatorAmbiguousError(self.describe())
        return LocatorNotFoundError(self.describe())


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class LocatorResolver:
    """Resolves locators, healing them through ranked fallback strategies.

    Strategies run in order and the first match wins. Heals are written to
    the injected repository so later runs on the same page go straight to
    the learned selector.
    """

    repository: LocatorRepository
    strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES
    strategy_timeout_ms: int = 2000
    stale_after_n_failures: int = 2
    fail_on_ambiguous: bool = False
    capture_fingerprints: bool = True
    capture_descriptions: bool = True

    @classmethod
    def from_config(
        cls, config: EngineConfig, repository: LocatorRepository
    ) -> "LocatorResolver":
        return cls(
            repository=repository,
            strategy_timeout_ms=config.strategy_timeout_ms,
            stale_after_n_failures=config.stale_after_n_failures,
            fail_on_ambiguous=config.fail_on_ambiguous,
            capture_fingerprints=config.capture_fingerprints,
            capture_descriptions=config.capture_descriptions,
        )

    def attempt_budget_ms(self, step_timeout_ms: int | None = None) -> int:
        """Return the time one strategy may take within a step.

        A strategy never gets more than half the step timeout, so that a
        hanging tier leaves time for the ones after it.
        """
        if step_timeout_ms is None:
            return self.strategy_timeout_ms
        return max(1, min(self.strategy_timeout_ms, step_timeout_ms // 2))

    async def resolve(
        self,
        locator: LocatorDescriptor,
        surface: AutomationSurface,
        page_signature: str,
        *,
        step_timeout_ms: int | None = None,
    ) -> ResolvedLocator | ResolutionFailure:
        """Bind ``locator`` to an element on ``surface``.

        Args:
            step_timeout_ms: Timeout of the step resolving the locator; each
                strategy is bounded by half of it

        Raises:
            SurfaceUnavailableError: If the surface went away during resolution

        """
        key: RepositoryKey = (page_signature, locator.selector)
        entry = await self._load(key)
        context = ResolutionContext(
            page_signature=page_signature,
            repository_entry=entry,
            stale_after_n_failures=self.stale_after_n_failures,
            fail_on_ambiguous=self.fail_on_ambiguous,
        )
        budget_ms = self.attempt_budget_ms(step_timeout_ms)

        attempts: list[StrategyAttempt] = []
        for strategy in self.strategies:
            outcome = await self._run_strategy(
                strategy, locator, surface, context, budget_ms
            )

            if outcome.stale_candidate is not None:
                await self._record_failure(key, outcome.stale_candidate)

            if outcome.handle is None or outcome.selector is None:
                attempts.append(
                    StrategyAttempt(
                        strategy=strategy.name, reason=outcome.reason or "no match"
                    )
                )
                continue

            resolved = ResolvedLocator(
                strategy=strategy.name,
                selector=outcome.selector,
                primary_selector=locator.selector,
                handle=outcome.handle,
                match_count=outcome.match_count,
            )
            await self._record_success(key, resolved, entry, surface)
            if resolved.healed:
                log.info(
                    "Healed %r via %s strategy: %s",
                    locator.selector,
                    strategy.name,
                    resolved.selector,
                )
            return resolved

        failure = ResolutionFailure(
            primary_selector=locator.selector, attempts=attempts
        )
        log.warning("%s", failure.describe())
        return failure

    async def _run_strategy(
        self,
        strategy: ResolutionStrategy,
        locator: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
        budget_ms: int,
    ) -> StrategyOutcome:
        """Run one strategy within ``budget_ms``; only surface loss escapes."""
        try:
            async with asyncio.timeout(budget_ms / 1000):
                return await strategy.attempt(locator, surface, context)
        except SurfaceUnavailableError:
            raise
        except TimeoutError:
            return StrategyOutcome(reason="timeout")
        except CommandUnsupportedError:
            return StrategyOutcome(reason="surface unsupported")
        except ElementNotFoundError:
            return StrategyOutcome(reason="no match")
        except Exception as e:
            log.debug(
                "%s strategy failed for %r",
                strategy.name,
                locator.selector,
                exc_info=True,
            )
            return StrategyOutcome(reason=str(e) or type(e).__name__)

    async def _load(self, key: RepositoryKey) -> LocatorRepositoryEntry | None:
        try:
            return await self.repository.get(key)
        except Exception:
            log.warning("Locator repository lookup failed for %s", key, exc_info=True)
            return None

    async def _record_success(
        self,
        key: RepositoryKey,
        resolved: ResolvedLocator,
        entry: LocatorRepositoryEntry | None,
        surface: AutomationSurface,
    ) -> None:
        now = _now()
        page_signature, primary_selector = key

        def blank() -> LocatorRepositoryEntry:
            return LocatorRepositoryEntry(
                page_signature=page_signature,
                primary_selector=primary_selector,
                updated_at=now,
            )

        if resolved.strategy == "repository":
            await self._update(
                key,
                lambda current: (current or blank()).with_hit(resolved.selector, now),
            )
            return
        if resolved.healed:
            await self._update(
                key,
                lambda current: (current or blank()).with_heal(
                    resolved.selector, resolved.strategy, now
                ),
            )
            return

        fingerprint = None
        if (
            self.capture_fingerprints
            and surface.supports_visual
            and (entry is None or entry.fingerprint is None)
        ):
            fingerprint = await _read_element(surface.fingerprint, resolved.handle)
        description = None
        if self.capture_descriptions and (entry is None or not entry.has_description):
            description = await _read_element(surface.describe, resolved.handle)
        if fingerprint is None and description is None:
            return

        def learn(current: LocatorRepositoryEntry | None) -> LocatorRepositoryEntry:
            learned = current or blank()
            if fingerprint is not None:
                learned = learned.with_fingerprint(fingerprint, now)
            if description is not None:
                learned = learned.with_description(description, now)
            return learned

        await self._update(key, learn)

    async def _record_failure(self, key: RepositoryKey, selector: str) -> None:
        now = _now()
        updated = await self._update(
            key,
            lambda current: current.with_failure(selector, now) if current else None,
        )
        if updated is not None and updated.is_evicted(self.stale_after_n_failures):
            log.info(
                "Learned selector %r for %r evicted after %d consecutive failures",
                selector,
                key[1],
                updated.consecutive_failures,
            )

    async def _update(
        self, key: RepositoryKey, mutate: Mutator
    ) -> LocatorRepositoryEntry | None:
        try:
            return await self.repository.update(key, mutate)
        except Exception:
            log.warning("Locator repository update failed for %s", key, exc_info=True)
            return None


T = TypeVar("T")


async def _read_element(
    read: Callable[[ElementHandle], Awaitable[T | None]], handle: ElementHandle
) -> T | None:
    try:
        return await read(handle)
    except ElementNotFoundError:
        return None
