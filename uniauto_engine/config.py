"""Configuration for the execution engine."""

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Policy constants for resolution, retries and tracking."""

    # Bound for a single strategy attempt, also capped at half the step timeout
    strategy_timeout_ms: int = Field(default=2000, gt=0)
    retry_attempts: int = Field(default=2, ge=0)
    retry_backoff_ms: int = Field(default=250, ge=0)
    stale_after_n_failures: int = Field(default=2, ge=1)
    fail_on_ambiguous: bool = False
    screenshot_on_failure: bool = True
    capture_fingerprints: bool = True
    capture_descriptions: bool = True
    tracker_retention_s: float = Field(default=3600, gt=0)
