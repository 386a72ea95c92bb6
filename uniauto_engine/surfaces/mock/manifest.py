"""Mock surface manifest."""

from uniauto_engine.surfaces.mock.config import MockSurfaceConfig
from uniauto_engine.surfaces.mock.surface import MockSurface
from uniauto_engine.surfaces.registry import SurfaceManifest

mock_manifest = SurfaceManifest(
    config_cls=MockSurfaceConfig,
    surface_factory=MockSurface.from_config,
    description="In-memory pages for tests and dry runs",
)
