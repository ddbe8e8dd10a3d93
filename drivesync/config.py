"""Configuration loading for drivesync.

Settings come from a JSON document whose keys follow the camelCase names
below. Anything missing or malformed falls back to the defaults with a
warning, so a bare installation still starts.
"""

import json
import logging
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigurationError
from .utils import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NETWORK_RETRY_DELAY,
    DEFAULT_RETRY_DELAY,
    resolve_path,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.json")
DEFAULT_METADATA_FILE_NAME = ".drivesync-metadata.json"

# JSON key -> Config attribute
CONFIG_KEYS = {
    "localRoot": "local_root",
    "remoteRootId": "remote_root_id",
    "ignore": "ignore",
    "metadataFileName": "metadata_file_name",
    "debounceDelayMs": "debounce_delay_ms",
    "periodicIntervalMs": "periodic_interval_ms",
    "tokenFile": "token_file",
    "logDir": "log_dir",
    "maxWorkers": "max_workers",
    "propagateDeletions": "propagate_deletions",
    "maxRetries": "max_retries",
    "retryDelayMs": "retry_delay_ms",
    "networkRetryDelayMs": "network_retry_delay_ms",
    "apiUrl": "api_url",
}


@dataclass
class Config:
    # Paths / remote root
    local_root: str = "~/DriveSync"
    remote_root_id: str = "root"
    metadata_file_name: str = DEFAULT_METADATA_FILE_NAME
    token_file: str = "token.json"
    log_dir: Optional[str] = None
    api_url: str = "https://www.googleapis.com"

    # Behavior
    ignore: list[str] = field(default_factory=list)
    debounce_delay_ms: int = 5000
    periodic_interval_ms: int = 60 * 1000
    propagate_deletions: bool = False

    # Concurrency / retries
    max_workers: int = DEFAULT_MAX_WORKERS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_ms: int = int(DEFAULT_RETRY_DELAY * 1000)
    network_retry_delay_ms: int = int(DEFAULT_NETWORK_RETRY_DELAY * 1000)

    @property
    def local_path(self) -> Path:
        """Absolute path of the synced local root."""
        return resolve_path(self.local_root)

    @property
    def metadata_path(self) -> Path:
        """Location of the persisted sync metadata (inside the local root)."""
        return self.local_path / self.metadata_file_name

    @property
    def debounce_delay(self) -> float:
        return self.debounce_delay_ms / 1000

    @property
    def periodic_interval(self) -> float:
        return self.periodic_interval_ms / 1000

    def validate(self) -> None:
        """Check settings required before any scanning starts.

        Raises:
            ConfigurationError: If a required setting is absent or invalid
        """
        if not self.local_root:
            raise ConfigurationError("localRoot must be configured")
        if not self.remote_root_id:
            raise ConfigurationError("remoteRootId must be configured")
        if not self.metadata_file_name:
            raise ConfigurationError("metadataFileName must not be empty")
        if self.max_workers < 1:
            raise ConfigurationError("maxWorkers must be at least 1")
        for pattern in self.ignore:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid ignore pattern {pattern!r}: {e}"
                ) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON document layout."""
        values = asdict(self)
        return {key: values[attr] for key, attr in CONFIG_KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build a Config from a parsed JSON document.

        Values of the wrong type are dropped with a warning and the default
        is kept instead.
        """
        config = cls()
        defaults = {f.name: getattr(config, f.name) for f in fields(cls)}

        for key, value in data.items():
            attr = CONFIG_KEYS.get(key)
            if attr is None:
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            if not _matches_type(value, defaults[attr], attr):
                logger.warning(
                    f"Invalid value for {key}: {value!r}, using default "
                    f"{defaults[attr]!r}"
                )
                continue
            setattr(config, attr, value)

        return config


def _matches_type(value: Any, default: Any, attr: str) -> bool:
    """Check a config value against the type of its default."""
    if attr == "log_dir":
        return value is None or isinstance(value, str)
    if attr == "ignore":
        return isinstance(value, list) and all(isinstance(p, str) for p in value)
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        # bool is an int subclass but never a valid number here
        return isinstance(value, int) and not isinstance(value, bool) and value >= 0
    return isinstance(value, type(default))


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration from a JSON file.

    Args:
        path: Config file location (defaults to ``config.json``)

    Returns:
        Loaded Config; defaults when the file is missing or unreadable
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning(f"No config file found at {config_path}, using defaults")
        return Config()
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read config {config_path}: {e}, using defaults")
        return Config()

    if not isinstance(data, dict):
        logger.warning(f"Config {config_path} is not a JSON object, using defaults")
        return Config()

    return Config.from_dict(data)


def write_default_config(path: Union[str, Path]) -> Path:
    """Write a config file populated with the defaults."""
    config_path = Path(path)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(Config().to_dict(), f, indent=2)
        f.write("\n")
    return config_path
