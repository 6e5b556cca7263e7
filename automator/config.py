"""
Configuration reader - JSON file values take precedence over the environment.

Lookup order for a key: JSON file > process environment > .env file > default.
Dotted keys (``automation.timeout_ms``) walk nested JSON objects and map to
``AUTOMATION_TIMEOUT_MS`` in the environment.
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from .exceptions import ConfigurationError
from .models import DriverConfiguration

CONFIG_FILE_ENV = "AUTOMATOR_CONFIG"

_MISSING = object()
_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off", ""}

_logger = logging.getLogger("automator.config")


def _env_name(key: str) -> str:
    return key.replace(".", "_").replace("-", "_").upper()


class ConfigReader:
    """
    Reads configuration values from a JSON file and the environment.

    Example:
        reader = ConfigReader("config.json")
        timeout = reader.get("automation.timeout_ms", 30000, "int")
        headless = reader.get("HEADLESS", True, "boolean")
    """

    def __init__(
        self,
        config_file: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
        env_file: str | Path | None = ".env",
        case_sensitive: bool = False,
        logger: Any = None,
    ):
        self.environ = os.environ if environ is None else environ
        self.config_file = config_file or self.environ.get(CONFIG_FILE_ENV) or None
        self.env_file = env_file
        self.case_sensitive = case_sensitive
        self.logger = logger or _logger

        self._json: dict[str, Any] = {}
        self._dotenv: dict[str, str] = {}
        self._overrides: dict[str, Any] = {}
        self.reload()

    def reload(self) -> None:
        """Re-read the JSON file and the .env file"""
        self._json = self._load_json()
        self._dotenv = self._load_dotenv()

    def _load_json(self) -> dict[str, Any]:
        if not self.config_file:
            return {}
        path = Path(self.config_file)
        if not path.exists():
            self.logger.warning(f"Configuration file not found: {path}")
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load JSON configuration {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"JSON configuration {path} must contain an object")
        self.logger.info(f"Loaded JSON config from: {path}")
        return data

    def _load_dotenv(self) -> dict[str, str]:
        if not self.env_file or not Path(self.env_file).exists():
            return {}
        return {k: v for k, v in dotenv_values(self.env_file).items() if v is not None}

    def _match(self, mapping: Mapping[str, Any], key: str) -> Any:
        if key in mapping:
            return mapping[key]
        if not self.case_sensitive:
            lowered = key.lower()
            for candidate, value in mapping.items():
                if candidate.lower() == lowered:
                    return value
        return _MISSING

    def _lookup_json(self, key: str) -> Any:
        direct = self._match(self._json, key)
        if direct is not _MISSING or "." not in key:
            return direct
        node: Any = self._json
        for part in key.split("."):
            if not isinstance(node, Mapping):
                return _MISSING
            node = self._match(node, part)
            if node is _MISSING:
                return _MISSING
        return node

    def _lookup(self, key: str) -> tuple[Any, str]:
        for source, finder in (
            ("override", lambda: self._match(self._overrides, key)),
            ("json", lambda: self._lookup_json(key)),
            ("env", lambda: self._match(self.environ, key)),
            ("env", lambda: self._match(self.environ, _env_name(key))),
            ("dotenv", lambda: self._match(self._dotenv, key)),
            ("dotenv", lambda: self._match(self._dotenv, _env_name(key))),
        ):
            value = finder()
            if value is not _MISSING:
                return value, source
        return _MISSING, "default"

    def get(self, key: str, default: Any = None, type: str | None = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key (dotted keys walk nested JSON objects)
            default: Returned when the key is not set anywhere
            type: Optional conversion: string, number, int, boolean, array, object

        Raises:
            ConfigurationError: Empty key, or a value that cannot be converted
        """
        if not key or not isinstance(key, str):
            raise ConfigurationError("Configuration key must be a non-empty string")

        value, source = self._lookup(key)
        if value is _MISSING:
            self.logger.debug(f"Config '{key}' not set, using default")
            return default

        self.logger.debug(f"Config '{key}' resolved from {source}")
        if type is None:
            return value
        return self._convert_type(key, value, type)

    def has(self, key: str) -> bool:
        return self._lookup(key)[0] is not _MISSING

    def set(self, key: str, value: Any) -> None:
        """Set an in-memory value that wins over every other source"""
        self._overrides[key] = value

    def as_dict(self) -> dict[str, Any]:
        """Merged view of the JSON file and in-memory values (environment excluded)"""
        merged = dict(self._json)
        merged.update(self._overrides)
        return merged

    @staticmethod
    def _convert_type(key: str, value: Any, type: str) -> Any:
        kind = type.lower()
        try:
            if kind == "string":
                if isinstance(value, (dict, list)):
                    return json.dumps(value)
                return str(value)
            if kind == "number":
                return value if isinstance(value, (int, float)) and not isinstance(value, bool) else float(value)
            if kind == "int":
                if isinstance(value, bool):
                    raise ValueError("boolean is not an integer")
                return int(value)
            if kind == "boolean":
                if isinstance(value, bool):
                    return value
                normalized = str(value).strip().lower()
                if normalized in _TRUE_VALUES:
                    return True
                if normalized in _FALSE_VALUES:
                    return False
                raise ValueError(f"'{value}' is not a boolean")
            if kind == "array":
                if isinstance(value, (list, tuple)):
                    return list(value)
                text = str(value).strip()
                if text.startswith("["):
                    return list(json.loads(text))
                return [item.strip() for item in text.split(",") if item.strip()]
            if kind == "object":
                if isinstance(value, Mapping):
                    return dict(value)
                parsed = json.loads(str(value))
                if not isinstance(parsed, dict):
                    raise ValueError("JSON value is not an object")
                return parsed
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Cannot convert config '{key}' to {type}: {e}") from e
        raise ConfigurationError(f"Unknown configuration type '{type}' for '{key}'")


# DriverConfiguration field -> conversion type
_DRIVER_FIELDS: dict[str, str] = {
    "engine": "string",
    "browser": "string",
    "headless": "boolean",
    "timeout_ms": "int",
    "implicit_wait_ms": "int",
    "navigation_timeout_ms": "int",
    "page_ready_state": "string",
    "user_agent": "string",
    "accept_insecure_certs": "boolean",
    "disable_images": "boolean",
    "disable_javascript": "boolean",
    "disable_animations": "boolean",
    "slow_mo_ms": "int",
    "executable_path": "string",
    "remote_url": "string",
    "extra_args": "array",
    "output_path": "string",
    "downloads_path": "string",
    "record_video": "boolean",
    "full_page_screenshots": "boolean",
    "retry_attempts": "int",
    "retry_delay_ms": "int",
    "attempt_timeout_ms": "int",
    "poll_interval_ms": "int",
}


def driver_configuration_from(
    reader: ConfigReader, section: str = "automation"
) -> DriverConfiguration:
    """
    Build a DriverConfiguration from a reader.

    Only keys that are set override the defaults. ``<section>.viewport_width`` and
    ``<section>.viewport_height`` set the viewport.

    Raises:
        ConfigurationError: A value cannot be converted or fails validation
    """
    prefix = f"{section}." if section else ""
    data: dict[str, Any] = {}
    for field_name, kind in _DRIVER_FIELDS.items():
        key = prefix + field_name
        if reader.has(key):
            data[field_name] = reader.get(key, type=kind)

    width = reader.get(prefix + "viewport_width", None, "int")
    height = reader.get(prefix + "viewport_height", None, "int")
    if width is not None or height is not None:
        data["viewport"] = {"width": width or 1920, "height": height or 1080}

    try:
        return DriverConfiguration.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid driver configuration in '{section}': {e}") from e
