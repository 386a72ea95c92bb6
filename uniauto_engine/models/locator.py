"""Models describing how a step finds its target element."""

from pydantic import Field, field_validator

from uniauto_engine.models.base import FrozenModel


class VisualFingerprint(FrozenModel):
    """Captured appearance of a target region, used by the visual tier."""

    width: float = Field(..., gt=0, description="Rendered width in CSS pixels")
    height: float = Field(..., gt=0, description="Rendered height in CSS pixels")
    digest: str | None = Field(
        default=None, description="Optional image digest of the captured region"
    )


class LocatorDescriptor(FrozenModel):
    """Declared way to find an element: a primary selector plus semantic hints."""

    selector: str = Field(..., description="Primary selector tried first")
    role: str | None = Field(default=None, description="ARIA role hint")
    name: str | None = Field(default=None, description="Accessible name hint")
    text: str | None = Field(default=None, description="Visible text hint")
    visual_fingerprint: VisualFingerprint | None = Field(
        default=None, description="Fingerprint for the last-resort visual tier"
    )

    @field_validator("selector")
    @classmethod
    def _require_selector(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("primary selector must not be empty")
        return value

    @property
    def text_hint(self) -> str | None:
        """Text used by the text tier, falling back to the accessible name."""
        return self.text or self.name
