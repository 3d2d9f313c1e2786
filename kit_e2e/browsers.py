"""Browser and device profile selection."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Final, Mapping, Optional, Union

from kit_e2e.errors import BrowserSelectionError, ConfigurationError


class BrowserName(Enum):
    """Browsers the suite can run against (values of KIT_E2E_BROWSER)."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    SAFARI = "safari"


@dataclass(frozen=True)
class DeviceProfile:
    """Playwright device descriptor plus the engine that runs it."""

    descriptor: str
    browser_type: str

    def context_options(
        self, devices: Mapping[str, Mapping[str, object]]
    ) -> Dict[str, object]:
        """Context kwargs for this device, taken from ``playwright.devices``."""
        if self.descriptor not in devices:
            raise ConfigurationError(
                f"Playwright has no device descriptor named '{self.descriptor}'"
            )
        return {
            key: value
            for key, value in devices[self.descriptor].items()
            if key != "default_browser_type"
        }


KNOWN_DEVICES: Final[Mapping[BrowserName, DeviceProfile]] = {
    BrowserName.CHROMIUM: DeviceProfile("Desktop Chrome", "chromium"),
    BrowserName.FIREFOX: DeviceProfile("Desktop Firefox", "firefox"),
    BrowserName.SAFARI: DeviceProfile("Desktop Safari", "webkit"),
}

DEFAULT_BROWSER: Final[BrowserName] = BrowserName.CHROMIUM


@dataclass(frozen=True)
class BrowserSelection:
    name: BrowserName
    device: DeviceProfile

    @property
    def is_firefox(self) -> bool:
        return self.name == BrowserName.FIREFOX


def _check_exhaustive(devices: Mapping[BrowserName, DeviceProfile]) -> None:
    unmapped = [name.value for name in BrowserName if name not in devices]
    if unmapped:
        raise ConfigurationError(
            f"No device profile configured for: {', '.join(unmapped)}"
        )


def select_browser(
    requested: Union[str, BrowserName, None] = None,
    devices: Mapping[BrowserName, DeviceProfile] = KNOWN_DEVICES,
) -> BrowserSelection:
    """
    Resolve a browser name to its device profile.

    ``None`` selects the default browser. Anything else, the empty string
    included, must be one of the ``BrowserName`` values.
    """
    _check_exhaustive(devices)

    if isinstance(requested, BrowserName):
        name: Optional[BrowserName] = requested
    elif requested is None:
        name = DEFAULT_BROWSER
    else:
        name = next((b for b in BrowserName if b.value == requested), None)

    if name is None:
        raise BrowserSelectionError(requested, [b.value for b in BrowserName])

    return BrowserSelection(name=name, device=devices[name])
