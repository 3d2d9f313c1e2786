"""
Kit E2E

Playwright + pytest harness for end-to-end tests of a client-hydrated web
application, plus ephemeral HTTP servers for tests that need a backend.
"""

from kit_e2e.app_control import APP_CONTROL_GLOBALS, AppControl
from kit_e2e.browsers import BrowserName, DeviceProfile, select_browser
from kit_e2e.config import HarnessConfig
from kit_e2e.error_table import ErrorTable
from kit_e2e.errors import (
    BrowserSelectionError,
    ConfigurationError,
    HarnessError,
    NavigationContractError,
    PortAllocationError,
    ReadinessTimeoutError,
    ServerLifecycleError,
    ServerNotRunningError,
)
from kit_e2e.ports import find_port, reserve_port
from kit_e2e.readiness import ReadinessPolicy, ReadyPage
from kit_e2e.registry import FixtureRegistry, FixtureScope
from kit_e2e.server import EphemeralServer, start_server

__version__ = "1.0.0"

__all__ = [
    "APP_CONTROL_GLOBALS",
    "AppControl",
    "BrowserName",
    "DeviceProfile",
    "select_browser",
    "HarnessConfig",
    "ErrorTable",
    "HarnessError",
    "ConfigurationError",
    "BrowserSelectionError",
    "NavigationContractError",
    "PortAllocationError",
    "ReadinessTimeoutError",
    "ServerLifecycleError",
    "ServerNotRunningError",
    "find_port",
    "reserve_port",
    "ReadinessPolicy",
    "ReadyPage",
    "FixtureRegistry",
    "FixtureScope",
    "EphemeralServer",
    "start_server",
]
