"""Playwright browser surface implementation."""

import logging
import time
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, ClassVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

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
    FINGERPRINT_TOLERANCE,
    AutomationSurface,
    ElementDescription,
    ElementHandle,
    ElementQuery,
    make_page_signature,
)
from uniauto_engine.surfaces.playwright.config import PlaywrightConfig

log = logging.getLogger(__name__)

CLOSED_MARKERS = ("has been closed", "Target closed", "Browser closed")

CSS_PATH_FUNCTION = """
function cssPath(element) {
  const path = [];
  while (element && element.nodeType === Node.ELEMENT_NODE) {
    let selector = element.tagName.toLowerCase();
    if (element.id) {
      path.unshift(selector + '#' + CSS.escape(element.id));
      break;
    }
    let index = 1;
    let sibling = element.previousElementSibling;
    while (sibling) {
      if (sibling.tagName === element.tagName) index += 1;
      sibling = sibling.previousElementSibling;
    }
    path.unshift(selector + ':nth-of-type(' + index + ')');
    element = element.parentElement;
  }
  return path.join(' > ');
}
"""

CSS_PATH_SCRIPT = "(element) => {" + CSS_PATH_FUNCTION + "return cssPath(element); }"

VISUAL_MATCH_SCRIPT = (
    "([targetWidth, targetHeight, tolerance, limit]) => {"
    + CSS_PATH_FUNCTION
    + """
  const matches = [];
  const candidates = document.querySelectorAll(
    'button, a, input, select, textarea, img, [role], div, span'
  );
  for (const el of candidates) {
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) continue;
    const widthDiff = Math.abs(rect.width - targetWidth) / targetWidth;
    const heightDiff = Math.abs(rect.height - targetHeight) / targetHeight;
    if (widthDiff < tolerance && heightDiff < tolerance) {
      matches.push(cssPath(el));
      if (matches.length >= limit) break;
    }
  }
  return matches;
}
"""
)


DESCRIBE_SCRIPT = """
(element) => {
  const implicitRoles = {
    A: "link", BUTTON: "button", SELECT: "combobox", TEXTAREA: "textbox",
    H1: "heading", H2: "heading", H3: "heading", IMG: "img",
  };
  let role = element.getAttribute("role") || implicitRoles[element.tagName] || null;
  if (!role && element.tagName === "INPUT") {
    const type = (element.getAttribute("type") || "text").toLowerCase();
    role = { checkbox: "checkbox", radio: "radio", submit: "button",
             button: "button" }[type] || "textbox";
  }
  const text = (element.textContent || "").trim().slice(0, 100);
  const name = element.getAttribute("aria-label") || element.getAttribute("alt")
    || element.getAttribute("title") || text || null;
  const selectors = [];
  if (element.id) selectors.push("#" + CSS.escape(element.id));
  for (const attribute of ["data-testid", "name", "aria-label"]) {
    const value = element.getAttribute(attribute);
    if (value) selectors.push(`[${attribute}="${CSS.escape(value)}"]`);
  }
  return { role, name, text: text || null, selectors };
}
"""


@dataclass(frozen=True, kw_only=True)
class PlaywrightSurface(AutomationSurface):
    """Automation surface driving a single Playwright page."""

    supports_visual: ClassVar[bool] = True

    config: PlaywrightConfig
    page: Page

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: PlaywrightConfig
    ) -> AsyncGenerator["PlaywrightSurface", None]:
        """Launch a browser and yield a surface bound to a fresh page."""
        async with async_playwright() as playwright:
            browser_type = getattr(playwright, config.browser)
            browser = await browser_type.launch(headless=config.headless)
            try:
                context = await browser.new_context(
                    viewport={
                        "width": config.viewport_width,
                        "height": config.viewport_height,
                    }
                )
                page = await context.new_page()
                log.info("Browser initialized (%s)", config.browser)
                yield cls(config=config, page=page)
            finally:
                await browser.close()
                log.info("Browser closed")

    async def navigate(self, url: str) -> str:
        """Navigate the page and wait for the configured load state."""
        async with self._translate_errors():
            await self.page.goto(url, wait_until=self.config.wait_until)
        return self.page.url

    async def query(self, query: ElementQuery) -> Sequence[ElementHandle]:
        """Return matching elements in document order."""
        async with self._translate_errors():
            if query.kind == "visual":
                return await self._query_visual(query)
            locator = self._locator(query)
            count = min(await locator.count(), self.config.max_candidates)
            handles: list[ElementHandle] = []
            for index in range(count):
                element = locator.nth(index)
                css_path = await element.evaluate(CSS_PATH_SCRIPT)
                handles.append(ElementHandle(selector=css_path, ref=element))
            return handles

    async def act(
        self,
        handle: ElementHandle,
        command: str,
        parameters: StepParameters,
    ) -> Any:
        """Perform an element command through the bound locator."""
        element: Locator = handle.ref
        async with self._translate_errors():
            if await element.count() == 0:
                raise ElementNotFoundError(
                    f"Element {handle.selector!r} is no longer attached"
                )
            match command, parameters:
                case "click", ClickParameters(force=force):
                    await element.click(force=force)
                    return None
                case "type", TypeParameters(text=text, clear_first=clear_first):
                    if clear_first:
                        await element.fill("")
                    await element.fill(text)
                    return None
                case "select", SelectParameters(value=value):
                    return await element.select_option(value)
                case "extract", ExtractParameters(attribute="textContent"):
                    return await element.text_content()
                case "extract", ExtractParameters(attribute="innerText"):
                    return await element.inner_text()
                case "extract", ExtractParameters(attribute=attribute):
                    return await element.get_attribute(attribute)
        raise CommandUnsupportedError(f"{command!r} is not an element command")

    async def capture(self, name: str | None = None) -> str:
        """Take a full-page screenshot into the configured directory."""
        file_name = name or f"screenshot-{int(time.time() * 1000)}.png"
        path = self.config.screenshot_dir / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        async with self._translate_errors():
            await self.page.screenshot(path=path, full_page=True)
        return str(path)

    async def page_signature(self) -> str:
        """Return the signature of the current page URL."""
        if self.page.is_closed():
            raise SurfaceUnavailableError("Page has been closed")
        return make_page_signature(self.page.url)

    async def pointer_click(self, x: float, y: float) -> None:
        """Click at viewport coordinates."""
        async with self._translate_errors():
            await self.page.mouse.click(x, y)

    async def keyboard_type(self, text: str) -> None:
        """Type into the focused element."""
        async with self._translate_errors():
            await self.page.keyboard.type(text)

    async def fingerprint(self, handle: ElementHandle) -> VisualFingerprint | None:
        """Capture the rendered size of the element."""
        async with self._translate_errors():
            box = await handle.ref.bounding_box()
        if not box or box["width"] <= 0 or box["height"] <= 0:
            return None
        return VisualFingerprint(width=box["width"], height=box["height"])

    async def describe(self, handle: ElementHandle) -> ElementDescription | None:
        """Read the role, accessible name, text and stable selectors of the element."""
        async with self._translate_errors():
            info: dict[str, Any] = await handle.ref.evaluate(DESCRIBE_SCRIPT)
        return ElementDescription(
            role=info.get("role"),
            name=info.get("name"),
            text=info.get("text"),
            selectors=tuple(info.get("selectors") or ()),
        )

    def _locator(self, query: ElementQuery) -> Locator:
        match query.kind:
            case "selector":
                return self.page.locator(query.selector or "")
            case "role":
                return self.page.get_by_role(
                    query.role,  # type: ignore[arg-type]
                    name=query.name,
                    exact=True,
                )
            case "text":
                return self.page.get_by_text(query.text or "", exact=query.exact)
        raise CommandUnsupportedError(f"Unsupported query kind {query.kind!r}")

    async def _query_visual(self, query: ElementQuery) -> Sequence[ElementHandle]:
        if query.fingerprint is None:
            return []
        paths: list[str] = await self.page.evaluate(
            VISUAL_MATCH_SCRIPT,
            [
                query.fingerprint.width,
                query.fingerprint.height,
                FINGERPRINT_TOLERANCE,
                self.config.max_candidates,
            ],
        )
        return [
            ElementHandle(selector=path, ref=self.page.locator(path)) for path in paths
        ]

    @asynccontextmanager
    async def _translate_errors(self) -> AsyncIterator[None]:
        """Map Playwright errors onto the engine's error kinds."""
        if self.page.is_closed():
            raise SurfaceUnavailableError("Page has been closed")
        try:
            yield
        except PlaywrightTimeoutError as e:
            raise TimeoutError(str(e)) from e
        except PlaywrightError as e:
            if self.page.is_closed() or any(m in e.message for m in CLOSED_MARKERS):
                raise SurfaceUnavailableError(e.message) from e
            raise ElementNotFoundError(e.message) from e
