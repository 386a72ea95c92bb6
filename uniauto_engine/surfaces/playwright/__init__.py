"""Playwright surface module."""

from uniauto_engine.surfaces.playwright.config import PlaywrightConfig
from uniauto_engine.surfaces.playwright.manifest import playwright_manifest
from uniauto_engine.surfaces.playwright.surface import PlaywrightSurface

__all__ = ["PlaywrightConfig", "PlaywrightSurface", "playwright_manifest"]
