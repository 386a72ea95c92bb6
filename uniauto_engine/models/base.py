"""Frozen, strict base for declarative test case input."""

from pydantic import BaseModel, ConfigDict


class FrozenModel(BaseModel):
    """Immutable model rejecting unknown keys.

    Test cases are authored by hand, so a misspelled key is an error rather
    than silently ignored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")
