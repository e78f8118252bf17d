"""
Mavrixfy Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

# Valid device types
VALID_BACKEND_TYPES = {"simulated", "local"}

DEFAULT_STORAGE_PATH = "~/.mavrixfy/library.json"
DEFAULT_CATALOG_URL = "https://jiosaavn-api-ts.vercel.app"

# Environment variable mappings
ENV_MAPPINGS = {
    # Player
    "MAVRIXFY_RESTART_THRESHOLD_MS": ("player", "restart_threshold_ms"),
    "MAVRIXFY_FALLBACK_INDEX": ("player", "fallback_index"),
    # Backend
    "MAVRIXFY_BACKEND": ("backend", "type"),
    "MAVRIXFY_STATUS_INTERVAL": ("backend", "status_interval"),
    "MAVRIXFY_AUDIO_DEVICE": ("backend", "local", "device"),
    # Storage
    "MAVRIXFY_STORAGE_PATH": ("storage", "path"),
    # Firestore
    "MAVRIXFY_FIRESTORE_PROJECT_ID": ("firestore", "project_id"),
    "MAVRIXFY_FIRESTORE_API_KEY": ("firestore", "api_key"),
    # Catalog
    "MAVRIXFY_CATALOG_URL": ("catalog", "base_url"),
    "MAVRIXFY_CATALOG_TIMEOUT": ("catalog", "timeout"),
    # Logging
    "MAVRIXFY_LOG_LEVEL": ("logging", "level"),
}

INT_ENV_VARS = {"MAVRIXFY_RESTART_THRESHOLD_MS", "MAVRIXFY_FALLBACK_INDEX"}
FLOAT_ENV_VARS = {"MAVRIXFY_STATUS_INTERVAL", "MAVRIXFY_CATALOG_TIMEOUT"}


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class PlayerConfig:
    """Session controller behaviour."""

    restart_threshold_ms: int = 3000  # previous() restarts past this position
    fallback_index: int = 0  # play_song index when the song is not in its queue


@dataclass
class LocalBackendConfig:
    """Local audio device configuration."""

    device: str = "default"  # "default", index or name substring
    blocksize: int = 2048


@dataclass
class SimulatedBackendConfig:
    """Simulated device configuration."""

    default_duration_ms: int = 180_000  # used when a song has no duration
    load_delay: float = 0.0


@dataclass
class BackendConfig:
    """Playback device configuration."""

    type: str = "simulated"
    status_interval: float = 0.25
    local: LocalBackendConfig = field(default_factory=LocalBackendConfig)
    simulated: SimulatedBackendConfig = field(default_factory=SimulatedBackendConfig)


@dataclass
class StorageConfig:
    """Local library storage."""

    path: str = DEFAULT_STORAGE_PATH
    recently_played_limit: int = 30


@dataclass
class FirestoreConfig:
    """Remote liked-songs store. Empty project id disables remote sync."""

    project_id: str = ""
    api_key: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.project_id)


@dataclass
class CatalogConfig:
    """Music catalog API."""

    base_url: str = DEFAULT_CATALOG_URL
    timeout: float = 12


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete Mavrixfy configuration."""

    player: PlayerConfig = field(default_factory=PlayerConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    firestore: FirestoreConfig = field(default_factory=FirestoreConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # Player
    if config.player.restart_threshold_ms < 0:
        errors.append(f"Invalid restart_threshold_ms: {config.player.restart_threshold_ms}")
    if config.player.fallback_index < 0:
        errors.append(f"Invalid fallback_index: {config.player.fallback_index}")

    # Backend
    if config.backend.type not in VALID_BACKEND_TYPES:
        errors.append(
            f"Invalid backend type: {config.backend.type}. "
            f"Valid values: {sorted(VALID_BACKEND_TYPES)}"
        )
    if config.backend.status_interval <= 0:
        errors.append(f"Invalid status_interval: {config.backend.status_interval}")
    if config.backend.local.blocksize <= 0:
        errors.append(f"Invalid blocksize: {config.backend.local.blocksize}")
    if config.backend.simulated.default_duration_ms <= 0:
        errors.append(f"Invalid default_duration_ms: {config.backend.simulated.default_duration_ms}")
    if config.backend.simulated.load_delay < 0:
        errors.append(f"Invalid load_delay: {config.backend.simulated.load_delay}")

    # Storage
    if not config.storage.path:
        errors.append("Storage path is required")
    if config.storage.recently_played_limit <= 0:
        errors.append(f"Invalid recently_played_limit: {config.storage.recently_played_limit}")

    # Firestore
    if config.firestore.project_id and not config.firestore.api_key:
        errors.append("Firestore api_key is required when project_id is set")

    # Catalog
    if not config.catalog.base_url.startswith(("http://", "https://")):
        errors.append(f"Invalid catalog base_url: {config.catalog.base_url}")
    if config.catalog.timeout <= 0:
        errors.append(f"Invalid catalog timeout: {config.catalog.timeout}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var in INT_ENV_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var in FLOAT_ENV_VARS:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    # Player
    if "player" in d:
        p = d["player"]
        config.player.restart_threshold_ms = int(
            p.get("restart_threshold_ms", config.player.restart_threshold_ms)
        )
        config.player.fallback_index = int(p.get("fallback_index", config.player.fallback_index))

    # Backend
    if "backend" in d:
        b = d["backend"]
        config.backend.type = b.get("type", config.backend.type)
        config.backend.status_interval = float(
            b.get("status_interval", config.backend.status_interval)
        )
        if "local" in b:
            local = b["local"]
            config.backend.local.device = str(local.get("device", config.backend.local.device))
            config.backend.local.blocksize = int(
                local.get("blocksize", config.backend.local.blocksize)
            )
        if "simulated" in b:
            sim = b["simulated"]
            config.backend.simulated.default_duration_ms = int(
                sim.get("default_duration_ms", config.backend.simulated.default_duration_ms)
            )
            config.backend.simulated.load_delay = float(
                sim.get("load_delay", config.backend.simulated.load_delay)
            )

    # Storage
    if "storage" in d:
        s = d["storage"]
        config.storage.path = str(s.get("path", config.storage.path))
        config.storage.recently_played_limit = int(
            s.get("recently_played_limit", config.storage.recently_played_limit)
        )

    # Firestore
    if "firestore" in d:
        fs = d["firestore"]
        config.firestore.project_id = fs.get("project_id", config.firestore.project_id) or ""
        config.firestore.api_key = fs.get("api_key", config.firestore.api_key) or ""

    # Catalog
    if "catalog" in d:
        c = d["catalog"]
        config.catalog.base_url = c.get("base_url", config.catalog.base_url)
        config.catalog.timeout = float(c.get("timeout", config.catalog.timeout))

    # Logging
    if "logging" in d:
        config.logging.level = d["logging"].get("level", config.logging.level)

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    try:
        config = dict_to_config(merged)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")

    validate_config(config)

    return config
