"""
Configuration dataclasses for the switchboard.

This module defines the configuration structures used throughout the system
(server connection, switch groups, persistence, logging) together with JSON
file loading and environment overrides.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigInvalid


DEFAULT_CONFIG_PATH = Path.home() / ".adguard_switchboard" / "config.json"
DEFAULT_STORAGE_DIR = Path.home() / ".adguard_switchboard"


@dataclass
class ServerConfig:
    """Connection settings for the AdGuard Home server."""

    host: str = "localhost"
    port: int = 80
    https: bool = False
    username: str = ""
    password: str = ""
    timeout_ms: int = 7500
    verify_ssl: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.https else "http"
        return f"{scheme}://{self.host}:{self.port}/control"


@dataclass(frozen=True)
class SwitchGroupConfig:
    """Configuration of one logical switch. Immutable after load."""

    name: str
    clients: tuple[str, ...] = ()
    services: tuple[str, ...] = ()
    default_state: bool = True
    force_state: bool = False
    timeouts: tuple[int, ...] = (0,)
    bridged: bool = True

    @property
    def is_global(self) -> bool:
        return len(self.clients) == 0

    @property
    def is_select_services(self) -> bool:
        return len(self.services) > 0

    @classmethod
    def from_dict(cls, data: dict) -> "SwitchGroupConfig":
        """
        Parse and validate a raw switch definition.

        Accepts comma-separated strings or lists for clients, services and
        auto-reset times, in either camelCase or snake_case spelling.

        Raises:
            ConfigInvalid: If the name is missing or a timeout is not a
                non-negative integer
        """
        if not isinstance(data, dict):
            raise ConfigInvalid(
                code="invalid_switch",
                message="Switch definition must be an object",
                details={"value": repr(data)},
            )

        name = str(data.get("name") or "").strip()
        if not name:
            raise ConfigInvalid(
                code="missing_name",
                message="Switch definition has no name",
                details={"switch": data},
            )

        timeouts_raw = _first(data, "autoResetTimes", "auto_reset_times", "timeouts")
        timeouts = _parse_timeouts(name, timeouts_raw)

        return cls(
            name=name,
            clients=tuple(_split_list(data.get("clients"))),
            services=tuple(_split_list(data.get("services"))),
            # true unless explicitly false
            default_state=_first(data, "defaultState", "default_state") is not False,
            # false unless explicitly true
            force_state=_first(data, "forceState", "force_state") is True,
            timeouts=timeouts,
            bridged=data.get("bridged") is not False,
        )

    def with_timeouts(self, name: str, timeouts: tuple[int, ...]) -> "SwitchGroupConfig":
        return SwitchGroupConfig(
            name=name,
            clients=self.clients,
            services=self.services,
            default_state=self.default_state,
            force_state=self.force_state,
            timeouts=timeouts,
            bridged=self.bridged,
        )


@dataclass
class PersistenceConfig:
    """Durable timer and client-save storage configuration."""

    storage_dir: Path = DEFAULT_STORAGE_DIR
    hmac_secret: str = "default-secret-change-me"


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None


@dataclass
class SystemConfig:
    """Main configuration combining all sub-configurations."""

    server: ServerConfig = field(default_factory=ServerConfig)
    # Raw switch definitions; validated per group so one bad entry cannot
    # prevent its siblings from loading.
    switches: list[dict] = field(default_factory=list)
    interval_ms: int = 10000
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _split_list(value: Any) -> list[str]:
    """Split a comma-separated string or list into trimmed, unique items."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = [str(value)]

    result: list[str] = []
    for item in items:
        item = item.strip()
        if item and item not in result:
            result.append(item)
    return result


def _parse_timeouts(name: str, value: Any) -> tuple[int, ...]:
    if value is None:
        return (0,)
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        raw_items = str(value).split(",")
    elif isinstance(value, (list, tuple)):
        raw_items = list(value)
    else:
        raw_items = [value]

    timeouts: list[int] = []
    for raw in raw_items:
        try:
            if isinstance(raw, bool):
                raise ValueError("boolean")
            timeout = int(str(raw).strip())
        except ValueError:
            raise ConfigInvalid(
                code="invalid_timeout",
                message=f"Unknown or invalid timeout value '{raw}' given for switch '{name}'",
                details={"switch": name, "timeout": str(raw)},
            )
        if timeout < 0:
            raise ConfigInvalid(
                code="invalid_timeout",
                message=f"Negative timeout value '{raw}' given for switch '{name}'",
                details={"switch": name, "timeout": str(raw)},
            )
        if timeout not in timeouts:
            timeouts.append(timeout)

    return tuple(timeouts) if timeouts else (0,)


def create_default_config(storage_dir: Optional[Path] = None) -> SystemConfig:
    """
    Create a default configuration with a single global switch.

    Args:
        storage_dir: Directory for timer and client-save records
    """
    return SystemConfig(
        server=ServerConfig(),
        switches=[{"name": "AdGuard Home", "autoResetTimes": "0"}],
        persistence=PersistenceConfig(storage_dir=storage_dir or DEFAULT_STORAGE_DIR),
    )


def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """
    Override server connection settings from the environment.

    A .env file in the working directory is loaded first. Recognized
    variables: ADGUARD_HOST, ADGUARD_PORT, ADGUARD_USERNAME, ADGUARD_PASSWORD.
    """
    load_dotenv(find_dotenv(usecwd=True))

    server = config.server
    if os.getenv("ADGUARD_HOST"):
        server.host = os.environ["ADGUARD_HOST"].strip()
    if os.getenv("ADGUARD_PORT"):
        try:
            server.port = int(os.environ["ADGUARD_PORT"])
        except ValueError:
            print(f"Ignoring invalid ADGUARD_PORT: {os.environ['ADGUARD_PORT']}", file=sys.stderr)
    if os.getenv("ADGUARD_USERNAME"):
        server.username = os.environ["ADGUARD_USERNAME"]
    if os.getenv("ADGUARD_PASSWORD"):
        server.password = os.environ["ADGUARD_PASSWORD"]
    return config


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        server_data = data.get("server", {})
        server = ServerConfig(
            host=server_data.get("host") or "localhost",
            port=int(server_data.get("port") or 80),
            https=bool(server_data.get("https", False)),
            username=server_data.get("username", ""),
            password=server_data.get("password", ""),
            timeout_ms=int(server_data.get("timeout_ms") or 7500),
            verify_ssl=bool(server_data.get("verify_ssl", False)),
        )

        persistence_data = data.get("persistence", {})
        storage_dir = persistence_data.get("storage_dir")
        persistence = PersistenceConfig(
            storage_dir=Path(storage_dir) if storage_dir else DEFAULT_STORAGE_DIR,
            hmac_secret=persistence_data.get("hmac_secret", "default-secret-change-me"),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
            audit_mode=logging_data.get("audit_mode", False),
            audit_signing_key=logging_data.get("audit_signing_key"),
        )

        switches = data.get("switches", [])
        if not isinstance(switches, list):
            raise TypeError("'switches' must be a list")

        return SystemConfig(
            server=server,
            switches=switches,
            interval_ms=int(data.get("interval_ms") or 10000),
            persistence=persistence,
            logging=logging_config,
        )

    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "server": {
                "host": config.server.host,
                "port": config.server.port,
                "https": config.server.https,
                "username": config.server.username,
                "password": config.server.password,
                "timeout_ms": config.server.timeout_ms,
                "verify_ssl": config.server.verify_ssl,
            },
            "interval_ms": config.interval_ms,
            "persistence": {
                "storage_dir": str(config.persistence.storage_dir),
                "hmac_secret": config.persistence.hmac_secret,
            },
            "logging": {
                "level": config.logging.level,
                "output_format": config.logging.output_format,
                "audit_mode": config.logging.audit_mode,
                "audit_signing_key": config.logging.audit_signing_key,
            },
            "switches": config.switches,
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False
