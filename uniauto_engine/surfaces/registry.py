"""Registry of automation surfaces installed as entry points."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from uniauto_engine.errors import EngineError
from uniauto_engine.surfaces.base import AutomationSurface

ENTRY_POINT_GROUP = "uniauto_engine.surfaces"

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class SurfaceNotFoundError(EngineError):
    """Raised when no installed plugin provides the requested surface."""

    kind = "SurfaceNotFound"


@dataclass(frozen=True, kw_only=True)
class SurfaceManifest(Generic[ConfigT]):
    """How to configure and acquire one kind of surface.

    ``surface_factory`` owns the driver lifecycle: the surface it yields is
    valid until the context exits.
    """

    config_cls: type[ConfigT]
    surface_factory: Callable[[ConfigT], AbstractAsyncContextManager[AutomationSurface]]
    description: str = ""

    def open(
        self, config_json: str = "{}"
    ) -> AbstractAsyncContextManager[AutomationSurface]:
        """Validate a JSON configuration and return the surface context for it.

        Raises:
            pydantic.ValidationError: If the configuration is invalid

        """
        return self.surface_factory(self.config_cls.model_validate_json(config_json))


def available_surfaces() -> list[str]:
    """Return the keys of every installed surface, sorted."""
    return sorted({entry.name for entry in entry_points(group=ENTRY_POINT_GROUP)})


def load_surface_manifest(key: str) -> SurfaceManifest[Any]:
    """Load the manifest registered under ``key``.

    Raises:
        SurfaceNotFoundError: If no surface is registered under ``key``, or
            the registered object is not a surface manifest

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=key)
    if not matches:
        installed = ", ".join(available_surfaces()) or "none"
        raise SurfaceNotFoundError(
            f"Unknown surface {key!r}; installed surfaces: {installed}"
        )

    entry = matches[key]
    manifest = entry.load()
    if not isinstance(manifest, SurfaceManifest):
        raise SurfaceNotFoundError(
            f"Entry point {entry.value!r} for surface {key!r} is not a surface manifest"
        )
    return manifest
