# Copyright (c) 2025 Stephen Clau

# This file is part of Kill Cooldown.

# Kill Cooldown is dual-licensed:

# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms

# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com

# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""
Configuration module for Kill Cooldown.

- cooldown.yml holds the persisted settings (created with defaults if missing)
- Versioned: older files are upgraded in place and written back
- Environment variables override file values
- Docker secrets support for the HTTP API token
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple
import os
import yaml
import structlog

from cooldown_store import InvalidDurationError, is_valid_duration
from relationship_sources import parse_actor_id

logger = structlog.get_logger()

CONFIG_VERSION = "1.0.0"
CONFIG_FILENAME = "cooldown.yml"
DEFAULT_COOLDOWN_MINUTES = 60.0


def _read_docker_secret(secret_name: str) -> Optional[str]:
    """
    Read a secret from Docker secrets location.

    Args:
        secret_name: Name of the secret (e.g., 'api_token')

    Returns:
        Secret value or None if not found
    """
    secret_path = Path(f"/run/secrets/{secret_name}")

    if secret_path.exists():
        try:
            return secret_path.read_text().strip()
        except (IOError, OSError) as e:
            logger.warning("docker_secret_read_error", secret=secret_name, error=str(e))
            return None

    return None


def get_config_value(
    env_var: str,
    secret_name: Optional[str] = None,
    required: bool = False,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Get configuration value from Docker secrets or environment variables.

    Tries in order:
    1. Docker secret file at /run/secrets/{secret_name}
    2. Environment variable {env_var}
    3. Default value if provided
    4. Raise error if required and not found

    Args:
        env_var: Environment variable name (e.g., 'COOLDOWN_MINUTES')
        secret_name: Docker secret name. If not provided, uses env_var lowercased
        required: If True, raises ValueError when value not found
        default: Default value if not found in env or secrets

    Returns:
        Configuration value from secret, env var, or default

    Raises:
        ValueError: If required=True and value not found
    """
    if secret_name is None:
        secret_name = env_var.lower()

    secret_value = _read_docker_secret(secret_name)
    if secret_value is not None:
        logger.debug("config_value_loaded_from_secret", source="docker_secret", var=env_var)
        return secret_value

    env_value = os.getenv(env_var)
    if env_value is not None:
        logger.debug("config_value_loaded_from_env", source="environment", var=env_var)
        return env_value

    if default is not None:
        logger.debug("config_value_loaded_from_default", source="default", var=env_var)
        return default

    if required:
        raise ValueError(
            f"Required configuration value not found for '{env_var}'. "
            f"Checked: Docker secret '{secret_name}', environment variable '{env_var}'"
        )

    return None


def _safe_int(value: Any, field_name: str, default: int) -> int:
    """
    Safely convert value to int with proper type checking.

    Raises:
        ValueError: If conversion fails
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {field_name} to int: bool")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Invalid integer for {field_name}: {value}")

    raise ValueError(f"Cannot convert {field_name} to int: {type(value).__name__}")


def _safe_float(value: Any, field_name: str, default: float) -> float:
    """
    Safely convert value to float with proper type checking.

    Raises:
        ValueError: If conversion fails
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {field_name} to float: bool")

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"Invalid float for {field_name}: {value}")

    raise ValueError(f"Cannot convert {field_name} to float: {type(value).__name__}")


def _version_tuple(version: Any) -> Tuple[int, ...]:
    """Parse "1.2.3" into (1, 2, 3). Unparseable versions sort first."""
    if not isinstance(version, str) or not version:
        return (0,)
    parts = []
    for piece in version.split("."):
        if not piece.isdigit():
            return (0,)
        parts.append(int(piece))
    return tuple(parts)


def default_config_data() -> Dict[str, Any]:
    """Default contents of cooldown.yml."""
    return {
        "version": CONFIG_VERSION,
        "cooldown_minutes": DEFAULT_COOLDOWN_MINUTES,
        "bypass_actors": [],
        "source_timeout_seconds": None,
        "relationships_file": "relationships.yml",
        "language": "en",
        "messages": {},
    }


def upgrade_config_data(data: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """
    Bring persisted config data up to CONFIG_VERSION.

    Files older than 1.0.0 are replaced by the defaults. Newer files only get
    missing keys filled in.

    Returns:
        Tuple of (upgraded_data, changed)
    """
    defaults = default_config_data()
    changed = False
    old_version = data.get("version")

    if _version_tuple(old_version) < _version_tuple(CONFIG_VERSION):
        logger.warning("config_update_detected", from_version=old_version, to_version=CONFIG_VERSION)

        if _version_tuple(old_version) < (1, 0, 0):
            data = defaults

        data["version"] = CONFIG_VERSION
        changed = True
        logger.warning("config_update_complete", from_version=old_version, to_version=CONFIG_VERSION)

    for key, value in defaults.items():
        if key not in data:
            data[key] = value
            changed = True

    return data, changed


@dataclass
class Config:
    """Main application configuration."""

    cooldown_minutes: float = DEFAULT_COOLDOWN_MINUTES
    """Minutes before an actor (or anyone related) can repeat the action."""

    bypass_actors: List[int] = field(default_factory=list)
    """Actor ids granted the cooldown bypass permission."""

    source_timeout_seconds: Optional[float] = None
    """Per relationship source lookup timeout. None = no timeout."""

    relationships_file: Path = field(default_factory=lambda: Path("config/relationships.yml"))
    """YAML file with teams, clans and friend lists."""

    language: str = "en"
    """Language used for player messages."""

    messages: Dict[str, Dict[str, str]] = field(default_factory=dict)
    """Per-language message template overrides."""

    http_host: str = "0.0.0.0"
    """Host the action HTTP API binds to."""

    http_port: int = 8080
    """Port the action HTTP API binds to."""

    api_token: Optional[str] = None
    """Optional bearer token required by the action endpoints."""

    log_level: str = "info"
    """Logging level: debug, info, warning, error, critical."""

    log_format: str = "console"
    """Logging format: console or json."""

    version: str = CONFIG_VERSION

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not isinstance(self.relationships_file, Path):
            self.relationships_file = Path(self.relationships_file)

        if not is_valid_duration(self.cooldown_minutes):
            raise InvalidDurationError(
                f"cooldown_minutes must be finite and >= 0, got {self.cooldown_minutes}"
            )

        if self.source_timeout_seconds is not None and self.source_timeout_seconds <= 0:
            raise ValueError(
                f"source_timeout_seconds must be > 0 or null, got {self.source_timeout_seconds}"
            )

        valid_levels = {"debug", "info", "warning", "error", "critical"}
        if self.log_level.lower() not in valid_levels:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. Must be one of: {', '.join(sorted(valid_levels))}"
            )

        valid_formats = {"console", "json"}
        if self.log_format.lower() not in valid_formats:
            raise ValueError(
                f"Invalid log_format '{self.log_format}'. Must be one of: {', '.join(sorted(valid_formats))}"
            )

        if not 1 <= self.http_port <= 65535:
            raise ValueError(f"Invalid http_port: {self.http_port}. Must be 1-65535")

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_minutes * 60.0


def save_config_data(path: Path, data: Dict[str, Any]) -> None:
    """Write config data back to YAML."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    logger.debug("config_saved", path=str(path))


def _parse_bypass_actors(values: Any) -> List[int]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise ValueError(f"bypass_actors must be a list, got {type(values).__name__}")
    actors: List[int] = []
    for value in values:
        actor_id = parse_actor_id(value)
        if actor_id is None:
            raise ValueError(f"Invalid actor id in bypass_actors: {value!r}")
        actors.append(actor_id)
    return actors


def load_config() -> Config:
    """
    Load configuration from cooldown.yml and environment variables.

    Priority order for each config value:
    1. Environment variable (or Docker secret for the API token)
    2. cooldown.yml
    3. Hardcoded defaults

    A missing cooldown.yml is created with defaults. An outdated one is
    upgraded and written back.

    Returns:
        Fully populated Config object with validation

    Raises:
        ValueError: If config values are invalid
        yaml.YAMLError: If cooldown.yml is invalid YAML
    """
    config_dir = Path(os.getenv("CONFIG_DIR", "config"))
    config_path = config_dir / CONFIG_FILENAME

    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        data, changed = upgrade_config_data(data)
    else:
        logger.warning("config_file_not_found_creating_default", path=str(config_path))
        data, changed = default_config_data(), True

    if changed:
        save_config_data(config_path, data)

    cooldown_minutes = _safe_float(
        get_config_value(env_var="COOLDOWN_MINUTES", default=None) or data.get("cooldown_minutes"),
        "cooldown_minutes",
        DEFAULT_COOLDOWN_MINUTES,
    )

    source_timeout = data.get("source_timeout_seconds")
    source_timeout_seconds = (
        None if source_timeout is None
        else _safe_float(source_timeout, "source_timeout_seconds", 0.0)
    )

    relationships_file = Path(str(data.get("relationships_file") or "relationships.yml"))
    if not relationships_file.is_absolute():
        relationships_file = config_dir / relationships_file

    messages = data.get("messages") or {}
    if not isinstance(messages, dict):
        raise ValueError("messages must be a mapping of language -> {key: template}")

    http_port = _safe_int(
        get_config_value(env_var="HTTP_PORT", default="8080"),
        "http_port",
        8080,
    )

    config = Config(
        cooldown_minutes=cooldown_minutes,
        bypass_actors=_parse_bypass_actors(data.get("bypass_actors")),
        source_timeout_seconds=source_timeout_seconds,
        relationships_file=relationships_file,
        language=str(data.get("language") or "en"),
        messages=messages,
        http_host=get_config_value(env_var="HTTP_HOST", default="0.0.0.0") or "0.0.0.0",
        http_port=http_port,
        api_token=get_config_value(env_var="API_TOKEN", secret_name="api_token"),
        log_level=get_config_value(env_var="LOG_LEVEL", default="info") or "info",
        log_format=get_config_value(env_var="LOG_FORMAT", default="console") or "console",
        version=str(data.get("version", CONFIG_VERSION)),
    )

    logger.info(
        "config_loaded",
        path=str(config_path),
        cooldown_minutes=config.cooldown_minutes,
        bypass_actors=len(config.bypass_actors),
    )
    return config


def validate_config(config: Config) -> bool:
    """
    Validate a Config object for runtime readiness.

    Returns:
        True if config is usable, False otherwise
    """
    try:
        if not is_valid_duration(config.cooldown_minutes):
            logger.error("config_validation_failed_invalid_cooldown")
            return False

        if config.cooldown_minutes == 0:
            logger.warning("config_cooldown_disabled")

        if not config.relationships_file.exists():
            logger.warning(
                "config_relationships_file_missing",
                relationships_file=str(config.relationships_file),
            )

        return True

    except Exception as e:
        logger.error("config_validation_error", error=str(e))
        return False
