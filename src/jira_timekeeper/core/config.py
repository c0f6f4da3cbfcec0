"""YAML configuration for Jira Timekeeper.

Settings are addressed with dotted keys (``cache.ttl.tasks``). The file is
merged over :data:`DEFAULTS` on load and checked against :data:`SCHEMA`
after every change.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml  # type: ignore[import-untyped]
from jsonschema import Draft7Validator  # type: ignore[import-untyped]

from jira_timekeeper.core.exceptions import ConfigurationError
from jira_timekeeper.core.models import Credentials

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".jira-timekeeper" / "config.yml"

DEFAULTS: dict[str, Any] = {
    "version": "1.0",
    "jira": {"domain": None, "email": None, "api_token": None},
    "cache": {
        "dir": "~/.jira-timekeeper/cache",
        "ttl": {"default": 3600, "tasks": 1800, "worklogs": 900, "user": 86400},
    },
    "sync": {
        "max_concurrent_fetches": 1,
        "request_timeout": 30,
        "refresh_interval": 300,
        "tasks_max_age": 1800,
        "worklogs_max_age": 900,
    },
    "stats": {"monthly_target_hours": 168},
    "advanced": {"log_level": "WARNING"},
}


def _section(**properties: Any) -> dict[str, Any]:
    return {"type": "object", "properties": properties}


def _seconds(minimum: int = 1, maximum: Optional[int] = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "integer", "minimum": minimum}
    if maximum is not None:
        schema["maximum"] = maximum
    return schema


_OPTIONAL_STRING = {"type": ["string", "null"]}

SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["version"],
    "properties": {
        "version": {"type": "string"},
        "jira": _section(
            domain=_OPTIONAL_STRING, email=_OPTIONAL_STRING, api_token=_OPTIONAL_STRING
        ),
        "cache": _section(
            dir={"type": "string"},
            ttl=_section(
                default=_seconds(), tasks=_seconds(), worklogs=_seconds(), user=_seconds()
            ),
        ),
        "sync": _section(
            max_concurrent_fetches=_seconds(1, 16),
            request_timeout=_seconds(1, 600),
            refresh_interval=_seconds(10),
            tasks_max_age=_seconds(0),
            worklogs_max_age=_seconds(0),
        ),
        "stats": _section(monthly_target_hours={"type": "number", "exclusiveMinimum": 0}),
        "advanced": _section(
            log_level={"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR"]}
        ),
    },
}


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged in, section by section."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def flatten(data: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield ``(dotted_key, value)`` for every leaf of a nested dict."""
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            yield from flatten(value, dotted)
        else:
            yield dotted, value


class ConfigManager:
    """Load, validate and persist the configuration file."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        A missing file is created with defaults. An invalid file is moved to
        ``<name>.backup`` and replaced with defaults.

        Args:
            config_path: Path to config file. Defaults to ~/.jira-timekeeper/config.yml

        Raises:
            ConfigurationError: If the existing file was invalid
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config: dict[str, Any] = copy.deepcopy(DEFAULTS)

        if not self.config_path.exists():
            self.save()
            return

        with open(self.config_path, encoding="utf-8") as f:
            stored = yaml.safe_load(f) or {}
        self._config = merge_dicts(DEFAULTS, stored) if isinstance(stored, dict) else stored

        try:
            self.validate()
        except ConfigurationError as e:
            backup = self.backup_path
            self.config_path.replace(backup)
            logger.warning(f"Invalid config moved to {backup}: {e}")
            self.reset()
            raise ConfigurationError(
                f"Config validation failed, backed up to {backup}. Using defaults. Error: {e}"
            )

    @property
    def backup_path(self) -> Path:
        return self.config_path.with_name(self.config_path.name + ".backup")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dotted key.

        Example:
            >>> config.get('sync.max_concurrent_fetches')
            1
        """
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or node.get(part) is None:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a value by dotted key and save.

        The previous configuration is kept when the new value fails
        validation.

        Raises:
            ConfigurationError: If the resulting configuration is invalid
        """
        *parents, leaf = key.split(".")
        updated = copy.deepcopy(self._config)
        node = updated
        for part in parents:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[leaf] = value

        self._check(updated)
        self._config = updated
        self.save()

    def validate(self) -> bool:
        """Validate the current configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        self._check(self._config)
        return True

    @staticmethod
    def _check(config: dict[str, Any]) -> None:
        errors = sorted(Draft7Validator(SCHEMA).iter_errors(config), key=lambda e: list(e.path))
        if errors:
            error = errors[0]
            where = ".".join(str(p) for p in error.path) or "<root>"
            raise ConfigurationError(f"Invalid configuration at {where}: {error.message}")

    def save(self) -> None:
        """Write the configuration file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)

    def reset(self) -> None:
        """Restore defaults, dropping stored credentials."""
        self._config = copy.deepcopy(DEFAULTS)
        self.save()

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._config)

    def get_all_keys(self) -> list[str]:
        """All leaf keys in dotted form."""
        return [key for key, _ in flatten(self._config)]

    def get_credentials(self) -> Optional[Credentials]:
        """Stored Jira credentials, or None until all three fields are set."""
        return Credentials.from_dict(self.get("jira", {}))

    def set_credentials(self, credentials: Credentials) -> None:
        self.set("jira", credentials.to_dict())

    @property
    def cache_dir(self) -> Path:
        return Path(self.get("cache.dir")).expanduser()

    def cache_ttls(self) -> dict[str, int]:
        """Cache TTLs in seconds keyed by entry kind."""
        return dict(self.get("cache.ttl", {}))
