"""Mock surface backed by an in-memory page model."""

import asyncio
import logging
import re
import time
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from uniauto_engine.errors import (
    CommandUnsupportedError,
    ElementNotFoundError,
    SurfaceUnavailableError,
)
from uniauto_engine.models.locator import VisualFingerprint
from uniauto_engine.models.test_case import (
    ClickParameters,
    ExtractParameters,
    SelectParameters,
    StepParameters,
    TypeParameters,
)
from uniauto_engine.surfaces.base import (
    AutomationSurface,
    ElementDescription,
    ElementHandle,
    ElementQuery,
    fingerprint_matches,
    make_page_signature,
)
from uniauto_engine.surfaces.mock.config import MockElement, MockSurfaceConfig

log = logging.getLogger(__name__)

ROLE_SELECTOR = re.compile(r"role=([\w-]+)(?:\[name=\"((?:[^\"\\]|\\.)*)\"\])?")
EXACT_TEXT_SELECTOR = re.compile(r"text=\"((?:[^\"\\]|\\.)*)\"")


def parse_selector(selector: str) -> ElementQuery:
    """Parse ``role=`` and ``text=`` selector engines, else treat as CSS."""
    if match := ROLE_SELECTOR.fullmatch(selector):
        role, name = match.groups()
        return ElementQuery.by_role(role, _unescape(name) if name else None)
    if match := EXACT_TEXT_SELECTOR.fullmatch(selector):
        return ElementQuery.by_text(_unescape(match.group(1)))
    if selector.startswith("text="):
        return ElementQuery.by_text(selector[5:], exact=False)
    return ElementQuery.by_selector(selector)


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


@dataclass(kw_only=True)
class MockSurface(AutomationSurface):
    """Surface that serves configured pages and records every interaction.

    ``queries`` and ``actions`` are kept so callers can inspect exactly what
    the engine asked for.
    """

    config: MockSurfaceConfig
    url: str = "about:blank"
    closed: bool = False
    queries: list[ElementQuery] = field(default_factory=list)
    actions: list[tuple[str, str | None, Any]] = field(default_factory=list)
    screenshots: list[str] = field(default_factory=list)
    _elements: list[MockElement] = field(default_factory=list)
    _values: dict[int, str] = field(default_factory=dict)
    _loaded_at: float = 0.0

    @property
    def supports_visual(self) -> bool:  # type: ignore[override]
        return self.config.supports_visual

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: MockSurfaceConfig
    ) -> AsyncGenerator["MockSurface", None]:
        """Create surface positioned on the configured start page."""
        surface = cls(config=config)
        surface.load_page(config.start_url, config.pages.get(config.start_url, ()))
        try:
            yield surface
        finally:
            surface.close()

    def load_page(self, url: str, elements: Sequence[MockElement]) -> None:
        """Replace the current page content, as a navigation or re-render would."""
        self.url = url
        self._elements = list(elements)
        self._values = {}
        self._loaded_at = time.monotonic()

    def close(self) -> None:
        """Mark the surface as gone; every later call fails."""
        self.closed = True

    async def navigate(self, url: str) -> str:
        """Load the configured page for ``url`` (an empty page if unknown)."""
        await self._enter()
        self.actions.append(("navigate", None, url))
        if url not in self.config.pages:
            log.debug("No mock page configured for %s, serving an empty page", url)
        self.load_page(url, self.config.pages.get(url, ()))
        return url

    async def query(self, query: ElementQuery) -> Sequence[ElementHandle]:
        """Return matching elements in document order."""
        await self._enter()
        self.queries.append(query)
        if query.kind == "visual" and not self.supports_visual:
            raise CommandUnsupportedError(
                "Mock surface is configured without visual comparison"
            )
        if query.kind == "selector" and query.selector is not None:
            parsed = parse_selector(query.selector)
            if parsed.kind != "selector":
                return self._handles(parsed)
        return self._handles(query)

    async def act(
        self,
        handle: ElementHandle,
        command: str,
        parameters: StepParameters,
    ) -> Any:
        """Apply an element command to the in-memory page."""
        await self._enter()
        index = self._index_of(handle)
        element = self._elements[index]
        self.actions.append((command, handle.selector, parameters))

        match command, parameters:
            case "click", ClickParameters():
                return None
            case "type", TypeParameters(text=text, clear_first=clear_first):
                current = "" if clear_first else self._values.get(index, "")
                self._values[index] = current + text
                return None
            case "select", SelectParameters(value=value):
                self._values[index] = value
                return None
            case "extract", ExtractParameters(attribute=attribute):
                if attribute in {"textContent", "innerText"}:
                    return element.text
                if attribute == "value":
                    return self._values.get(index, element.attributes.get("value"))
                return element.attributes.get(attribute)
        raise CommandUnsupportedError(f"{command!r} is not an element command")

    async def capture(self, name: str | None = None) -> str:
        """Record a screenshot and return its mock reference."""
        await self._enter()
        file_name = name or f"screenshot-{len(self.screenshots) + 1}.png"
        ref = f"mock://screenshots/{file_name}"
        self.screenshots.append(ref)
        return ref

    async def page_signature(self) -> str:
        """Return the signature of the current page."""
        await self._enter()
        return make_page_signature(self.url)

    async def pointer_click(self, x: float, y: float) -> None:
        """Record a click at absolute coordinates."""
        await self._enter()
        self.actions.append(("desktop_click", None, (x, y)))

    async def keyboard_type(self, text: str) -> None:
        """Record keyboard input."""
        await self._enter()
        self.actions.append(("desktop_type", None, text))

    async def fingerprint(self, handle: ElementHandle) -> VisualFingerprint | None:
        """Return the configured size of the element, if it has one."""
        await self._enter()
        element = self._elements[self._index_of(handle)]
        if element.width is None or element.height is None:
            return None
        return VisualFingerprint(
            width=element.width, height=element.height, digest=element.digest
        )

    async def describe(self, handle: ElementHandle) -> ElementDescription | None:
        """Return the configured role, name, text and selectors of the element."""
        await self._enter()
        element = self._elements[self._index_of(handle)]
        return ElementDescription(
            role=element.role,
            name=element.name,
            text=element.text.strip() or None,
            selectors=tuple(element.selectors),
        )

    async def _enter(self) -> None:
        if self.closed:
            raise SurfaceUnavailableError("Mock surface has been closed")
        if self.config.latency_ms:
            await asyncio.sleep(self.config.latency_ms / 1000)

    def _rendered(self) -> list[tuple[int, MockElement]]:
        elapsed_ms = (time.monotonic() - self._loaded_at) * 1000
        return [
            (index, element)
            for index, element in enumerate(self._elements)
            if element.render_delay_ms <= elapsed_ms
        ]

    def _handles(self, query: ElementQuery) -> Sequence[ElementHandle]:
        return [
            ElementHandle(selector=element.selectors[0], ref=index)
            for index, element in self._rendered()
            if self._matches(element, query)
        ]

    def _matches(self, element: MockElement, query: ElementQuery) -> bool:
        match query.kind:
            case "selector":
                return query.selector in element.selectors
            case "role":
                return element.role == query.role and (
                    query.name is None or element.name == query.name
                )
            case "text":
                text = element.text.strip()
                if not text or query.text is None:
                    return False
                if query.exact:
                    return text == query.text.strip()
                return query.text.strip().lower() in text.lower()
            case "visual":
                if (
                    query.fingerprint is None
                    or element.width is None
                    or element.height is None
                ):
                    return False
                candidate = VisualFingerprint(
                    width=element.width,
                    height=element.height,
                    digest=element.digest,
                )
                return fingerprint_matches(candidate, query.fingerprint)
        return False

    def _index_of(self, handle: ElementHandle) -> int:
        index = handle.ref
        rendered = dict(self._rendered())
        if not isinstance(index, int) or index not in rendered:
            raise ElementNotFoundError(
                f"Element {handle.selector!r} is no longer attached"
            )
        if handle.selector not in rendered[index].selectors:
            raise ElementNotFoundError(
                f"Element {handle.selector!r} is no longer attached"
            )
        return index
