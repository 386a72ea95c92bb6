"""Abstract base class for automation surfaces (browser pages, desktops)."""

import hashlib
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

from yarl import URL

from uniauto_engine.errors import CommandUnsupportedError
from uniauto_engine.models.locator import VisualFingerprint
from uniauto_engine.models.test_case import StepParameters

QueryKind = Literal["selector", "role", "text", "visual"]

FINGERPRINT_TOLERANCE = 0.2


@dataclass(frozen=True, kw_only=True)
class ElementQuery:
    """One way of asking a surface for elements."""

    kind: QueryKind
    selector: str | None = None
    role: str | None = None
    name: str | None = None
    text: str | None = None
    exact: bool = True
    fingerprint: VisualFingerprint | None = None

    @classmethod
    def by_selector(cls, selector: str) -> "ElementQuery":
        return cls(kind="selector", selector=selector)

    @classmethod
    def by_role(cls, role: str, name: str | None = None) -> "ElementQuery":
        return cls(kind="role", role=role, name=name)

    @classmethod
    def by_text(cls, text: str, *, exact: bool = True) -> "ElementQuery":
        return cls(kind="text", text=text, exact=exact)

    @classmethod
    def by_fingerprint(cls, fingerprint: VisualFingerprint) -> "ElementQuery":
        return cls(kind="visual", fingerprint=fingerprint)

    def as_selector(self) -> str | None:
        """Return a selector string that repeats this query, if one exists.

        Role and text queries use the ``role=`` and ``text=`` selector engines
        understood by Playwright and by the mock surface. Visual queries have
        no selector form; the matched element's own selector is used instead.
        """
        match self.kind:
            case "selector":
                return self.selector
            case "role":
                if self.name is None:
                    return f"role={self.role}"
                return f'role={self.role}[name="{_escape(self.name)}"]'
            case "text":
                if self.exact:
                    return f'text="{_escape(self.text or "")}"'
                return f"text={self.text}"
        return None


@dataclass(frozen=True, kw_only=True)
class ElementHandle:
    """Bound reference to an element on a live surface.

    ``selector`` re-finds the element; ``ref`` is the driver's native handle.
    """

    selector: str
    ref: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True, kw_only=True)
class ElementDescription:
    """What a surface can tell about an element besides where it is.

    ``selectors`` lists other selectors that address the same element.
    """

    role: str | None = None
    name: str | None = None
    text: str | None = None
    selectors: tuple[str, ...] = ()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def fingerprint_matches(
    candidate: VisualFingerprint,
    target: VisualFingerprint,
    tolerance: float = FINGERPRINT_TOLERANCE,
) -> bool:
    """Compare two fingerprints by digest when both have one, else by size."""
    if candidate.digest is not None and target.digest is not None:
        return candidate.digest == target.digest
    width_diff = abs(candidate.width - target.width) / target.width
    height_diff = abs(candidate.height - target.height) / target.height
    return width_diff < tolerance and height_diff < tolerance


def make_page_signature(url: str, shape: str | None = None) -> str:
    """Build a page signature from a URL and an optional DOM shape summary.

    Query string and fragment are dropped so that learned locators apply to
    every visit of the same page.
    """
    base = str(URL(url).with_query(None).with_fragment(None))
    if shape is None:
        return base
    digest = hashlib.sha256(shape.encode("utf-8")).hexdigest()[:12]
    return f"{base}#{digest}"


class AutomationSurface(ABC):
    """Abstract base for automation surfaces.

    A surface is exclusively owned by the run that acquired it. Every method
    may raise ``SurfaceUnavailableError`` once the underlying page, context
    or desktop session has gone away.
    """

    supports_visual: ClassVar[bool] = False

    @abstractmethod
    async def navigate(self, url: str) -> str:
        """Navigate to ``url`` and return the URL finally loaded."""

    @abstractmethod
    async def query(self, query: ElementQuery) -> Sequence[ElementHandle]:
        """Return the elements matching ``query`` in document order.

        Raises:
            CommandUnsupportedError: If the surface cannot answer this kind
                of query (e.g. visual queries on a surface without it)

        """

    @abstractmethod
    async def act(
        self,
        handle: ElementHandle,
        command: str,
        parameters: StepParameters,
    ) -> Any:
        """Perform an element command on ``handle`` and return its output.

        Raises:
            ElementNotFoundError: If the handle no longer matches an element
            CommandUnsupportedError: If the command is not an element command

        """

    @abstractmethod
    async def capture(self, name: str | None = None) -> str:
        """Take a screenshot and return a reference to it."""

    @abstractmethod
    async def page_signature(self) -> str:
        """Return the signature of the current surface state."""

    async def pointer_click(self, x: float, y: float) -> None:
        """Click at absolute coordinates."""
        raise CommandUnsupportedError(
            f"{type(self).__name__} does not support pointer clicks"
        )

    async def keyboard_type(self, text: str) -> None:
        """Type text into whatever currently has focus."""
        raise CommandUnsupportedError(
            f"{type(self).__name__} does not support keyboard input"
        )

    async def fingerprint(self, handle: ElementHandle) -> VisualFingerprint | None:
        """Capture the visual fingerprint of ``handle``, if supported."""
        return None

    async def describe(self, handle: ElementHandle) -> ElementDescription | None:
        """Return the role, accessible name and text of ``handle``, if known."""
        return None
