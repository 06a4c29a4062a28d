"""
Configuration management and loading.

Handles the YAML settings file, environment overrides and change notifications.
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "crs-status.yaml"
CONFIG_PATH_ENV = "CRS_STATUS_CONFIG"
BASE_URL_ENV = "CRS_STATUS_BASE_URL"
API_KEY_ENV = "CRS_STATUS_API_KEY"

DEFAULT_REFRESH_INTERVAL = 60
DEFAULT_REQUEST_TIMEOUT = 10.0

CONFIG_TEMPLATE = """\
# CRS Status configuration
# Base URL of the Claude Relay Service instance, e.g. https://relay.example.com
baseUrl: ""
# API key issued by the relay service (CRS_STATUS_API_KEY overrides this)
apiKey: ""
# Seconds between automatic refreshes (minimum 1)
refreshIntervalSeconds: 60
# Show the most constrained limit as a percentage in the status line
showPercentage: true
# Append spent/limit amounts to the percentage
showAmounts: true
# Timeout for each remote call, in seconds
requestTimeoutSeconds: 10
"""


@dataclass(frozen=True)
class StatusConfig:
    """Complete status configuration."""
    base_url: str = ""
    api_key: str = ""
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL
    show_percentage: bool = True
    show_amounts: bool = True
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self):
        """Validate interval and timeout values."""
        if self.refresh_interval_seconds < 1:
            raise ValueError("refreshIntervalSeconds must be >= 1")
        if self.request_timeout_seconds <= 0:
            raise ValueError("requestTimeoutSeconds must be > 0")

    @property
    def is_configured(self) -> bool:
        """Whether both base URL and API key are present."""
        return bool(self.base_url) and bool(self.api_key)


# YAML key -> (field name, accepted types)
_KEYS = {
    "baseUrl": ("base_url", (str,)),
    "apiKey": ("api_key", (str,)),
    "refreshIntervalSeconds": ("refresh_interval_seconds", (int,)),
    "showPercentage": ("show_percentage", (bool,)),
    "showAmounts": ("show_amounts", (bool,)),
    "requestTimeoutSeconds": ("request_timeout_seconds", (int, float)),
}


def resolve_config_path(path: Optional[str] = None) -> Path:
    """Pick the config file path: explicit argument, then env, then default."""
    return Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def load_status_config(path: Optional[str] = None) -> StatusConfig:
    """Load and validate status configuration from a YAML file.

    A missing file is not an error: defaults apply and the result is
    simply unconfigured. Environment variables override the credential
    fields so keys can stay out of files.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated StatusConfig object

    Raises:
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = resolve_config_path(path)
    raw_config: Dict[str, Any] = {}

    if config_path.exists():
        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ValueError("Configuration must be a mapping")
            raw_config = loaded
    else:
        logger.debug("Config file %s not found, using defaults", config_path)

    return parse_status_config(raw_config, environ=os.environ)


def parse_status_config(
    raw_config: Dict[str, Any],
    environ: Optional[Dict[str, str]] = None
) -> StatusConfig:
    """Validate raw configuration data.

    Args:
        raw_config: Mapping with camelCase keys
        environ: Environment used for credential overrides

    Returns:
        Validated StatusConfig

    Raises:
        ValueError: If a key is unknown or has the wrong type
    """
    unknown_keys = set(raw_config.keys()) - set(_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {}
    for key, value in raw_config.items():
        field_name, types = _KEYS[key]
        if value is None:
            continue
        # bool is an int subclass; keep it out of numeric keys
        if not isinstance(value, types) or (bool not in types and isinstance(value, bool)):
            type_names = " or ".join(t.__name__ for t in types)
            raise ValueError(f"'{key}' must be {type_names}")
        values[field_name] = value

    environ = environ or {}
    if environ.get(BASE_URL_ENV):
        values["base_url"] = environ[BASE_URL_ENV]
    if environ.get(API_KEY_ENV):
        values["api_key"] = environ[API_KEY_ENV]

    if "base_url" in values:
        values["base_url"] = values["base_url"].strip().rstrip("/")
    if "api_key" in values:
        values["api_key"] = values["api_key"].strip()
    if "request_timeout_seconds" in values:
        values["request_timeout_seconds"] = float(values["request_timeout_seconds"])

    return StatusConfig(**values)


ConfigListener = Callable[[StatusConfig, StatusConfig], None]


class ConfigSource:
    """Read-only view of the current configuration with change notifications.

    Listeners are called with ``(old, new)`` whenever the effective
    configuration actually changes.
    """

    def __init__(self, config: StatusConfig, path: Optional[str] = None):
        """Initialize the source.

        Args:
            config: Initial configuration
            path: File to re-read on reload (None disables reloading)
        """
        self._config = config
        self.path = path
        self._listeners: List[ConfigListener] = []

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "ConfigSource":
        """Create a source backed by a YAML file."""
        config_path = resolve_config_path(path)
        return cls(load_status_config(str(config_path)), path=str(config_path))

    @property
    def config(self) -> StatusConfig:
        return self._config

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, config: StatusConfig) -> bool:
        """Replace the configuration, notifying listeners if it changed.

        Returns:
            True if the configuration changed
        """
        if config == self._config:
            return False
        old = self._config
        self._config = config
        logger.info(
            "Configuration changed (configured=%s, interval=%ss)",
            config.is_configured,
            config.refresh_interval_seconds
        )
        for listener in list(self._listeners):
            listener(old, config)
        return True

    def update_values(self, **changes: Any) -> bool:
        """Change individual fields of the current configuration."""
        return self.update(replace(self._config, **changes))

    def reload(self) -> bool:
        """Re-read the backing file.

        Returns:
            True if the configuration changed

        Raises:
            ValueError: If the source has no backing file or it is invalid
        """
        if self.path is None:
            raise ValueError("Config source has no backing file")
        return self.update(load_status_config(self.path))


def write_config_template(path: str, force: bool = False) -> Path:
    """Write a commented configuration template.

    Raises:
        FileExistsError: If the file exists and force is False
    """
    config_path = Path(path)
    if config_path.exists() and not force:
        raise FileExistsError(f"Config file already exists: {path}")
    config_path.write_text(CONFIG_TEMPLATE, encoding='utf-8')
    return config_path
