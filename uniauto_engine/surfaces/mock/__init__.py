"""Mock surface module."""

from uniauto_engine.surfaces.mock.config import MockElement, MockSurfaceConfig
from uniauto_engine.surfaces.mock.manifest import mock_manifest
from uniauto_engine.surfaces.mock.surface import MockSurface

__all__ = ["MockElement", "MockSurface", "MockSurfaceConfig", "mock_manifest"]
