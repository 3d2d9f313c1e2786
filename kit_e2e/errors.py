"""Error taxonomy for the e2e harness.

Configuration errors abort the run before any test executes. Everything else
fails the test that triggered it.
"""

from typing import Iterable, Optional


class HarnessError(Exception):
    """Base class for all harness failures."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class ConfigurationError(HarnessError):
    """Setup is invalid; the run must not start."""


class BrowserSelectionError(ConfigurationError):
    """KIT_E2E_BROWSER names a browser the harness does not know."""

    def __init__(self, requested: Optional[str], allowed: Iterable[str]) -> None:
        self.requested = requested
        self.allowed = tuple(allowed)
        super().__init__(
            f"invalid test browser specified: KIT_E2E_BROWSER={requested}. "
            f"Allowed values: {', '.join(self.allowed)}"
        )


class NavigationContractError(ConfigurationError):
    """The page handle is missing a navigation operation the wrapper needs."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"function does not exist on page: {operation}")


class FixtureResolutionError(ConfigurationError):
    """A fixture is unknown, declared twice or part of a dependency cycle."""


class AppContractError(ConfigurationError):
    """The application under test did not publish its control globals."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(
            "application under test is missing control globals: "
            + ", ".join(self.missing)
        )


class ReadinessTimeoutError(HarnessError):
    """A readiness condition was not observed in time after navigation."""

    def __init__(
        self, condition: str, timeout_ms: int, cause: Optional[Exception] = None
    ) -> None:
        self.condition = condition
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Page not ready: {condition} not observed within {timeout_ms}ms",
            cause,
        )


class PortAllocationError(HarnessError):
    """No bindable port was found in the searched range."""


class ServerLifecycleError(HarnessError):
    """A server failed to start, serve or stop."""


class ServerNotRunningError(ServerLifecycleError):
    """close() was called on a server that is not running."""
