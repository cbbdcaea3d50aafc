"""Settings dataclass and its JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..utils.file_io import write_text

__all__ = ["Settings", "SettingsStore", "DEFAULT_SETTINGS_DIR"]

LOGGER = logging.getLogger(__name__)
DEFAULT_SETTINGS_DIR = Path.home() / ".drawbridge"
_DEFAULT_SETTINGS_PATH = DEFAULT_SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAWBRIDGE_STORAGE_DIR": "storage_dir",
    "DRAWBRIDGE_EXPORT_DIR": "export_dir",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAWBRIDGE_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAWBRIDGE_SELECTION_TIMEOUT": "selection_timeout",
    "DRAWBRIDGE_EXPORT_TIMEOUT": "export_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAWBRIDGE_HISTORY_CAPACITY": "history_capacity",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """User-configurable engine settings persisted between sessions."""

    storage_dir: str = str(DEFAULT_SETTINGS_DIR / "state")
    export_dir: str = str(Path.home() / "Downloads")
    history_capacity: int = 20
    selection_timeout: float = 0.1
    export_timeout: float = 30.0
    display_name_limit: int = 30
    debug_logging: bool = False


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if payload.get("version") != _SETTINGS_VERSION:
                LOGGER.info("Migrating settings %s to version %s", self._path, _SETTINGS_VERSION)
                try:
                    self.save(settings)
                except OSError as exc:
                    LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        payload: Dict[str, Any] = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        write_text(self._path, json.dumps(payload, indent=2, sort_keys=True))
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Settings file %s does not hold an object; using defaults", self._path)
            return {}
        return data

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}
