"""Configuration for the Playwright browser surface."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class PlaywrightConfig(BaseModel):
    """Configuration for the Playwright browser surface."""

    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    viewport_width: int = Field(default=1366, gt=0)
    viewport_height: int = Field(default=768, gt=0)
    screenshot_dir: Path = Path("screenshots")
    wait_until: Literal["commit", "domcontentloaded", "load", "networkidle"] = (
        "networkidle"
    )
    # Upper bound on handles materialized per query
    max_candidates: int = Field(default=20, gt=0)
