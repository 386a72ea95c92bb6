"""Playwright surface manifest."""

from uniauto_engine.surfaces.playwright.config import PlaywrightConfig
from uniauto_engine.surfaces.playwright.surface import PlaywrightSurface
from uniauto_engine.surfaces.registry import SurfaceManifest

playwright_manifest = SurfaceManifest(
    config_cls=PlaywrightConfig,
    surface_factory=PlaywrightSurface.from_config,
    description="Chromium, Firefox or WebKit page driven by Playwright",
)
