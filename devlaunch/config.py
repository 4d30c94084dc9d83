import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import devlaunch.settings as default_settings

log = logging.getLogger(__name__)


class LauncherSettings:
    """
    Merges the default settings with JSON and keyword overrides.

    This class provides a unified, attribute-based access point for the
    launcher configuration. It follows a clear precedence:
    1. Base values from `settings.py` (which reads the environment and `.env`).
    2. Overrides from the JSON overrides file for settings in `MODIFIABLE_SETTINGS`.
    3. Keyword overrides passed by the caller (command line, tests).
    """

    def __init__(self, root: Optional[Union[str, Path]] = None, **overrides: Any) -> None:
        self._load_defaults()
        self._load_overrides()

        if root is not None:
            self.ROOT_DIR = Path(root).resolve()

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting '{key}'.")
            setattr(self, key, self._coerce(key, value))

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the JSON overrides file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.debug(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            setattr(self, key, self._coerce(key, value))
            log.debug(f"Overridden setting: {key} = {value}")

    def _coerce(self, key: str, value: Any) -> Any:
        """Coerces an override to the type of the default value."""
        original_value = getattr(self, key)
        if isinstance(original_value, Path):
            return Path(value)
        if isinstance(original_value, list) and isinstance(value, str):
            return value.split()
        if isinstance(original_value, float) and isinstance(value, (int, str)):
            return float(value)
        return value

    @property
    def SERVER_DIR(self) -> Path:
        return self.ROOT_DIR / self.SERVER_DIR_NAME

    @property
    def WEB_DIR(self) -> Path:
        return self.ROOT_DIR / self.WEB_DIR_NAME

    @property
    def HEALTH_URL(self) -> str:
        return f"http://{self.HEALTH_HOST}:{self.SERVER_PORT}{self.HEALTH_PATH}"

    def as_dict(self) -> Dict[str, Any]:
        """Returns the effective settings, for debug output."""
        return {key: getattr(self, key) for key in dir(self) if key.isupper()}


def split_command(command: List[str]) -> tuple:
    """Splits a configured command into its program and argument list."""
    if not command:
        raise ValueError("Configured command is empty.")
    return command[0], list(command[1:])


def load_settings(root: Optional[Union[str, Path]] = None, **overrides: Any) -> LauncherSettings:
    """
    Builds the effective launcher settings.

    :param root: Optional repository root, overriding DEVLAUNCH_ROOT.
    :param overrides: Setting names mapped to values, applied last.
    :return: A LauncherSettings instance.
    """
    return LauncherSettings(root, **overrides)
