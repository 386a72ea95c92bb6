"""Ranked strategies for locating a target element."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import ClassVar

from uniauto_engine.locators.repository import LocatorRepositoryEntry
from uniauto_engine.models.locator import LocatorDescriptor
from uniauto_engine.surfaces.base import AutomationSurface, ElementHandle, ElementQuery


@dataclass(frozen=True, kw_only=True)
class ResolutionContext:
    """What a strategy may know beyond the descriptor and the surface."""

    page_signature: str
    repository_entry: LocatorRepositoryEntry | None = None
    stale_after_n_failures: int = 2
    fail_on_ambiguous: bool = False


@dataclass(frozen=True, kw_only=True)
class StrategyOutcome:
    """Result of one strategy attempt.

    ``stale_candidate`` names a learned selector that was tried and did not
    match, so that the resolver can count the failure against it.
    """

    handle: ElementHandle | None = None
    selector: str | None = None
    match_count: int = 0
    reason: str | None = None
    stale_candidate: str | None = None

    @property
    def matched(self) -> bool:
        return self.handle is not None


class ResolutionStrategy(ABC):
    """One tier of the strategy chain."""

    name: ClassVar[str]

    @abstractmethod
    async def attempt(
        self,
        descriptor: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
    ) -> StrategyOutcome:
        """Try to locate the descriptor's element on the surface."""

    async def _first_match(
        self,
        surface: AutomationSurface,
        query: ElementQuery,
        context: ResolutionContext,
        selector: str | None = None,
    ) -> StrategyOutcome:
        """Query the surface and keep the first match in document order."""
        handles = await surface.query(query)
        if not handles:
            return StrategyOutcome(reason="no match")
        if len(handles) > 1 and context.fail_on_ambiguous:
            return StrategyOutcome(
                match_count=len(handles),
                reason=f"ambiguous: {len(handles)} matches",
            )
        handle = handles[0]
        return StrategyOutcome(
            handle=handle,
            selector=selector or handle.selector,
            match_count=len(handles),
        )


class PrimaryStrategy(ResolutionStrategy):
    """The declared selector, as written."""

    name = "primary"

    async def attempt(
        self,
        descriptor: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
    ) -> StrategyOutcome:
        return await self._first_match(
            surface,
            ElementQuery.by_selector(descriptor.selector),
            context,
            selector=descriptor.selector,
        )


class RepositoryStrategy(ResolutionStrategy):
    """What was learned about this locator on this page before.

    The healed selector is tried first. The alternative selectors captured
    while the primary selector still worked come after it.
    """

    name = "repository"

    async def attempt(
        self,
        descriptor: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
    ) -> StrategyOutcome:
        entry = context.repository_entry
        if entry is None:
            return StrategyOutcome(reason="no learned selector")

        stale_candidate = None
        if entry.healed_selector is None:
            reason = "no learned selector"
        elif entry.is_evicted(context.stale_after_n_failures):
            reason = f"evicted after {entry.consecutive_failures} failures"
        else:
            outcome = await self._first_match(
                surface,
                ElementQuery.by_selector(entry.healed_selector),
                context,
                selector=entry.healed_selector,
            )
            if outcome.matched:
                return outcome
            reason = outcome.reason or "no match"
            stale_candidate = entry.healed_selector

        for selector in entry.alternative_selectors:
            outcome = await self._first_match(
                surface, ElementQuery.by_selector(selector), context, selector=selector
            )
            if outcome.matched:
                return replace(outcome, stale_candidate=stale_candidate)
        return StrategyOutcome(reason=reason, stale_candidate=stale_candidate)


class RoleStrategy(ResolutionStrategy):
    """Elements exposing the hinted ARIA role and accessible name.

    Without a declared role, the role and name learned from an earlier
    primary match are used.
    """

    name = "role"

    async def attempt(
        self,
        descriptor: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
    ) -> StrategyOutcome:
        role, name = descriptor.role, descriptor.name
        if role is None and context.repository_entry is not None:
            role = context.repository_entry.role
            name = context.repository_entry.name
        if role is None:
            return StrategyOutcome(reason="no role hint")
        query = ElementQuery.by_role(role, name)
        return await self._first_match(
            surface, query, context, selector=query.as_selector()
        )


class TextStrategy(ResolutionStrategy):
    """Elements whose visible text equals, then contains, the hint."""

    name = "text"

    async def attempt(
        self,
        descriptor: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
    ) -> StrategyOutcome:
        hint = descriptor.text_hint
        if not hint and context.repository_entry is not None:
            hint = context.repository_entry.text
        if not hint:
            return StrategyOutcome(reason="no text hint")

        exact = ElementQuery.by_text(hint)
        outcome = await self._first_match(
            surface, exact, context, selector=exact.as_selector()
        )
        if outcome.matched or outcome.match_count:
            return outcome

        fuzzy = ElementQuery.by_text(hint, exact=False)
        return await self._first_match(
            surface, fuzzy, context, selector=fuzzy.as_selector()
        )


class VisualStrategy(ResolutionStrategy):
    """Elements that look like a previously captured fingerprint."""

    name = "visual"

    async def attempt(
        self,
        descriptor: LocatorDescriptor,
        surface: AutomationSurface,
        context: ResolutionContext,
    ) -> StrategyOutcome:
        if not surface.supports_visual:
            return StrategyOutcome(reason="surface unsupported")
        fingerprint = descriptor.visual_fingerprint
        if fingerprint is None and context.repository_entry is not None:
            fingerprint = context.repository_entry.fingerprint
        if fingerprint is None:
            return StrategyOutcome(reason="no visual fingerprint")
        return await self._first_match(
            surface, ElementQuery.by_fingerprint(fingerprint), context
        )


DEFAULT_STRATEGIES: Sequence[ResolutionStrategy] = (
    PrimaryStrategy(),
    RepositoryStrategy(),
    RoleStrategy(),
    TextStrategy(),
    VisualStrategy(),
)
