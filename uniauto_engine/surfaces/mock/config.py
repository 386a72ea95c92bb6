"""Configuration for the mock surface."""

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field


class MockElement(BaseModel):
    """An element on a mock page, listed in document order."""

    selectors: Sequence[str] = Field(..., min_length=1)
    role: str | None = None
    name: str | None = None
    text: str = ""
    attributes: Mapping[str, str] = Field(default_factory=dict)
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    digest: str | None = None
    # Element only shows up this long after the page was loaded
    render_delay_ms: int = 0


class MockSurfaceConfig(BaseModel):
    """Configuration for the mock surface."""

    pages: Mapping[str, Sequence[MockElement]] = Field(default_factory=dict)
    start_url: str = "about:blank"
    supports_visual: bool = True
    latency_ms: int = 0
