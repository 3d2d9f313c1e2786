"""
Harness configuration read from the process environment.

The environment is read once, when the pytest plugin configures itself, and
the resulting ``HarnessConfig`` is immutable for the rest of the run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final, Mapping, Optional

from kit_e2e.browsers import BrowserSelection, select_browser
from kit_e2e.errors import ConfigurationError


class RunMode(Enum):
    """Which server the suite runs against."""

    DEV = "dev"
    BUILD = "build"


class TraceMode(Enum):
    """When Playwright traces are recorded and kept."""

    RETAIN_ON_FAILURE = "retain-on-failure"
    ON_FIRST_RETRY = "on-first-retry"


# Defaults
WEB_SERVER_PORT: Final[int] = 3000
READINESS_TIMEOUT_MS: Final[int] = 5000
CI_TEST_TIMEOUT_MS: Final[int] = 45000
LOCAL_TEST_TIMEOUT_MS: Final[int] = 15000
CI_RETRIES: Final[int] = 5
CI_WORKERS: Final[int] = 2
ERRORS_FILE: Final[Path] = Path("test") / "errors.json"
ARTIFACTS_DIR: Final[Path] = Path("test-results")


def _flag(env: Mapping[str, str], name: str) -> bool:
    """A variable is set when it is present and non-empty."""
    return bool(env.get(name))


@dataclass(frozen=True)
class HarnessConfig:
    """Immutable harness configuration."""

    browser: BrowserSelection
    ci: bool = False
    dev: bool = False
    trace_on_failure: bool = False
    headless: bool = True
    attempt: int = 0
    port: int = WEB_SERVER_PORT
    readiness_timeout_ms: int = READINESS_TIMEOUT_MS
    errors_file: Path = ERRORS_FILE
    artifacts_dir: Path = ARTIFACTS_DIR

    @classmethod
    def from_environment(
        cls, env: Optional[Mapping[str, str]] = None
    ) -> HarnessConfig:
        """
        Build the config from environment variables.

        Raises BrowserSelectionError for an unknown KIT_E2E_BROWSER and
        ConfigurationError for a malformed KIT_E2E_ATTEMPT.
        """
        env = os.environ if env is None else env

        raw_attempt = env.get("KIT_E2E_ATTEMPT", "0")
        try:
            attempt = int(raw_attempt)
        except ValueError as e:
            raise ConfigurationError(
                f"KIT_E2E_ATTEMPT must be an integer, got '{raw_attempt}'", e
            ) from e

        return cls(
            browser=select_browser(env.get("KIT_E2E_BROWSER")),
            ci=_flag(env, "CI"),
            dev=_flag(env, "DEV"),
            trace_on_failure=_flag(env, "KIT_E2E_TRACE"),
            headless=env.get("KIT_E2E_HEADLESS", "true").lower() == "true",
            attempt=attempt,
        )

    @property
    def mode(self) -> RunMode:
        return RunMode.DEV if self.dev else RunMode.BUILD

    @property
    def timeout_ms(self) -> int:
        """Per-test timeout; generous on CI."""
        return CI_TEST_TIMEOUT_MS if self.ci else LOCAL_TEST_TIMEOUT_MS

    @property
    def retries(self) -> int:
        return CI_RETRIES if self.ci else 0

    @property
    def workers(self) -> Optional[int]:
        """Worker count for pytest-xdist; None lets the runner decide."""
        return CI_WORKERS if self.ci else None

    @property
    def reuse_existing_server(self) -> bool:
        return not self.ci

    @property
    def trace_mode(self) -> TraceMode:
        return (
            TraceMode.RETAIN_ON_FAILURE
            if self.trace_on_failure
            else TraceMode.ON_FIRST_RETRY
        )

    @property
    def records_trace(self) -> bool:
        """Whether the current attempt records a trace at all."""
        if self.trace_mode == TraceMode.RETAIN_ON_FAILURE:
            return True
        return self.attempt == 1

    @property
    def web_server_command(self) -> str:
        if self.dev:
            return f"npm run dev -- --port {self.port}"
        return f"npm run build && npm run preview -- --port {self.port}"

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.port}"

    def project_name(self, javascript_enabled: bool) -> str:
        """Name of the run variant, e.g. ``chromium-build+js``."""
        suffix = "+js" if javascript_enabled else "-js"
        return f"{self.browser.name.value}-{self.mode.value}{suffix}"
