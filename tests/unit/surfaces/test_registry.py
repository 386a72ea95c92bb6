"""Tests for the surface registry."""

from importlib.metadata import EntryPoint, EntryPoints
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from uniauto_engine.surfaces.mock import MockSurface, mock_manifest
from uniauto_engine.surfaces.playwright import playwright_manifest
from uniauto_engine.surfaces.registry import (
    ENTRY_POINT_GROUP,
    SurfaceNotFoundError,
    available_surfaces,
    load_surface_manifest,
)
from uniauto_engine.testing.pages import CHECKOUT_URL, surface_config


def test_load_surface_manifest_returns_manifest() -> None:
    """Loads surface manifests by key."""
    assert load_surface_manifest("mock") is mock_manifest
    assert load_surface_manifest("playwright") is playwright_manifest


def test_available_surfaces_lists_installed_keys() -> None:
    """Installed surfaces are listed in sorted order."""
    assert available_surfaces() == ["mock", "playwright"]


def test_load_surface_manifest_raises_for_unknown_surface() -> None:
    """Raises SurfaceNotFoundError naming the installed surfaces."""
    with pytest.raises(SurfaceNotFoundError) as exc_info:
        load_surface_manifest("unknown-surface")

    assert str(exc_info.value) == (
        "Unknown surface 'unknown-surface'; installed surfaces: mock, playwright"
    )
    assert exc_info.value.kind == "SurfaceNotFound"


def test_load_surface_manifest_rejects_non_manifest_entry_point() -> None:
    """An entry point that does not point at a manifest is refused."""
    entry = EntryPoint(
        name="broken",
        value="uniauto_engine.surfaces.mock:MockSurface",
        group=ENTRY_POINT_GROUP,
    )

    with (
        patch(
            "uniauto_engine.surfaces.registry.entry_points",
            return_value=EntryPoints([entry]),
        ),
        pytest.raises(SurfaceNotFoundError, match="is not a surface manifest"),
    ):
        load_surface_manifest("broken")


async def test_open_validates_config_and_yields_surface() -> None:
    """A manifest opens a surface from its JSON configuration."""
    config_json = surface_config(start_url=CHECKOUT_URL).model_dump_json()

    async with mock_manifest.open(config_json) as surface:
        assert isinstance(surface, MockSurface)
        assert surface.url == CHECKOUT_URL

    assert surface.closed


def test_open_rejects_invalid_config() -> None:
    """Configuration errors surface before any driver is started."""
    with pytest.raises(ValidationError):
        mock_manifest.open('{"start_url": 42}')
