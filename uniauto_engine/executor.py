"""Execution of a single step against an automation surface."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from uniauto_engine.config import EngineConfig
from uniauto_engine.errors import (
    CommandUnsupportedError,
    StepTimeoutError,
    SurfaceUnavailableError,
)
from uniauto_engine.locators.resolver import (
    LocatorResolver,
    ResolutionFailure,
    ResolvedLocator,
)
from uniauto_engine.models.result import StepResult, StepStatus
from uniauto_engine.models.test_case import (
    DesktopClickParameters,
    DesktopTypeParameters,
    NavigateParameters,
    ScreenshotParameters,
    Step,
    WaitParameters,
)
from uniauto_engine.surfaces.base import AutomationSurface

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class _AttemptTrace:
    """What the latest attempt resolved, kept even when the action fails."""

    resolved: ResolvedLocator | None = None
    output: Any = None


@dataclass(frozen=True, kw_only=True)
class StepExecutor:
    """Runs one step with its timeout, retry and skip policy."""

    resolver: LocatorResolver = field(repr=False)
    retry_attempts: int = 2
    retry_backoff_ms: int = 250
    screenshot_on_failure: bool = True

    @classmethod
    def from_config(
        cls, config: EngineConfig, resolver: LocatorResolver
    ) -> "StepExecutor":
        return cls(
            resolver=resolver,
            retry_attempts=config.retry_attempts,
            retry_backoff_ms=config.retry_backoff_ms,
            screenshot_on_failure=config.screenshot_on_failure,
        )

    async def execute(
        self, step: Step, index: int, surface: AutomationSurface
    ) -> StepResult:
        """Run ``step`` and report how it went.

        Locator and action failures are retried when the step allows it and
        end up as a failure or skipped result; they are never raised.

        Raises:
            SurfaceUnavailableError: If the surface itself is gone

        """
        started = time.monotonic()
        max_attempts = 1 + self.retry_attempts if step.retry_on_failure else 1
        error: Exception | None = None
        trace = _AttemptTrace()

        for attempt in range(1, max_attempts + 1):
            trace = _AttemptTrace()
            try:
                async with asyncio.timeout(step.timeout_ms / 1000):
                    await self._attempt(step, surface, trace)
            except SurfaceUnavailableError:
                raise
            except TimeoutError:
                error = StepTimeoutError(
                    f"timeout: step exceeded {step.timeout_ms} ms"
                )
            except CommandUnsupportedError as e:
                error = e
                break
            except Exception as e:
                error = e
            else:
                return self._result(step, index, "success", started, attempt, trace)

            log.info(
                "Step %d (%s) attempt %d/%d failed: %s",
                index,
                step.command,
                attempt,
                max_attempts,
                error,
            )
            if attempt < max_attempts:
                await asyncio.sleep(self.retry_backoff_ms * attempt / 1000)

        screenshot = await self._capture_failure(surface, index)
        status: StepStatus = "skipped" if step.skip_if_failed else "failure"
        return self._result(
            step,
            index,
            status,
            started,
            attempt,
            trace,
            error=error,
            screenshot=screenshot,
        )

    async def _attempt(
        self, step: Step, surface: AutomationSurface, trace: _AttemptTrace
    ) -> None:
        match step.command, step.parameters:
            case "navigate", NavigateParameters(url=url):
                trace.output = await surface.navigate(url)
                return
            case "wait", WaitParameters(milliseconds=milliseconds):
                await asyncio.sleep(milliseconds / 1000)
                return
            case "screenshot", ScreenshotParameters(file_name=file_name):
                trace.output = await surface.capture(file_name)
                return
            case "desktop_click", DesktopClickParameters(x=x, y=y):
                await surface.pointer_click(x, y)
                return
            case "desktop_type", DesktopTypeParameters(text=text):
                await surface.keyboard_type(text)
                return

        if step.locator is None:
            raise CommandUnsupportedError(f"Unknown command: {step.command}")

        page_signature = await surface.page_signature()
        resolution = await self.resolver.resolve(
            step.locator, surface, page_signature, step_timeout_ms=step.timeout_ms
        )
        if isinstance(resolution, ResolutionFailure):
            raise resolution.to_error()

        trace.resolved = resolution
        trace.output = await surface.act(
            resolution.handle, step.command, step.parameters
        )

    async def _capture_failure(
        self, surface: AutomationSurface, index: int
    ) -> str | None:
        if not self.screenshot_on_failure:
            return None
        try:
            return await surface.capture(
                f"step-{index}-failure-{int(time.time() * 1000)}.png"
            )
        except SurfaceUnavailableError:
            raise
        except Exception:
            log.warning("Could not capture failure screenshot", exc_info=True)
            return None

    def _result(
        self,
        step: Step,
        index: int,
        status: StepStatus,
        started: float,
        attempts: int,
        trace: _AttemptTrace,
        error: Exception | None = None,
        screenshot: str | None = None,
    ) -> StepResult:
        resolved = trace.resolved
        return StepResult(
            step_index=index,
            command=step.command,
            status=status,
            duration=time.monotonic() - started,
            original_selector=step.locator.selector if step.locator else None,
            healed_selector=resolved.selector if resolved and resolved.healed else None,
            strategy=resolved.strategy if resolved else None,
            error=str(error) if error else None,
            error_kind=getattr(error, "kind", type(error).__name__) if error else None,
            attempts=attempts,
            screenshot=screenshot,
            output=trace.output if status == "success" else None,
        )
