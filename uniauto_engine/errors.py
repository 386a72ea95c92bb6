"""Error kinds raised and recorded by the execution engine."""


class EngineError(Exception):
    """Base class for engine errors.

    ``kind`` is the stable name recorded on step results.
    """

    kind = "EngineError"


class LocatorNotFoundError(EngineError):
    """Raised when no strategy could resolve a locator."""

    kind = "LocatorNotFound"


class LocatorAmbiguousError(EngineError):
    """Raised when a locator matches several elements and ambiguity is refused."""

    kind = "LocatorAmbiguous"


class ElementNotFoundError(EngineError):
    """Raised by a surface when a handle or selector no longer matches."""

    kind = "LocatorNotFound"


class SurfaceUnavailableError(EngineError):
    """Raised when the automation surface itself is gone (closed page/context)."""

    kind = "SurfaceUnavailable"


class StepTimeoutError(EngineError):
    """Raised when a step attempt exceeds its timeout."""

    kind = "StepTimeout"


class CommandUnsupportedError(EngineError):
    """Raised when a surface cannot perform a command."""

    kind = "CommandUnsupported"


class CancellationRequestedError(EngineError):
    """Raised when work is requested on a cancelled execution."""

    kind = "CancellationRequested"


class ExecutionNotFoundError(EngineError):
    """Raised when an execution identifier is unknown to the tracker."""

    kind = "ExecutionNotFound"


class TestCaseNotFoundError(EngineError):
    """Raised when a persistence collaborator has no such test case."""

    __test__ = False

    kind = "TestCaseNotFound"
