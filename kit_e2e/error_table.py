"""Expected error payloads keyed by test path."""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from kit_e2e.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ErrorTable:
    """
    Read-only view of the expected-errors JSON file.

    A missing file is an empty table. A path absent from an existing file
    also looks up as ``None``.
    """

    def __init__(self, errors: Optional[Dict[str, object]] = None) -> None:
        self._errors: Dict[str, object] = dict(errors or {})

    @classmethod
    def load(cls, path: Path) -> "ErrorTable":
        """Load the table; raises ConfigurationError on unreadable files."""
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No expected-errors file at {path}")
            return cls()
        except OSError as e:
            raise ConfigurationError(f"Cannot read {path}: {e}", e) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}", e) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{path} must contain a JSON object, got {type(data).__name__}"
            )
        return cls(data)

    def __len__(self) -> int:
        return len(self._errors)

    def __contains__(self, path: object) -> bool:
        return path in self._errors

    def lookup(self, path: str) -> Optional[object]:
        return self._errors.get(path)
