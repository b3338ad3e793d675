"""Configuration for the bisyncd daemon.

Settings are resolved in three layers, lowest precedence first:
1. DaemonConfig defaults
2. ~/.bisyncd/config.json
3. BISYNCD_* environment variables

List-valued environment variables are comma-separated. BISYNCD_DIRECTORIES
entries take the form ``local`` or ``local=remote``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bisyncd.core.errors import ConfigError

ENV_PREFIX = "BISYNCD_"

DEFAULT_REMOTE_NAME = "gdrive"
DEFAULT_SYNC_INTERVAL = 30.0  # seconds between full re-enqueues
DEFAULT_QUEUE_INTERVAL = 1.0  # seconds between queue-processor ticks
DEFAULT_DEBOUNCE_DELAY = 2.0  # seconds of quiet before a change triggers a sync
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8765

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class DirectoryConfig:
    """A configured (local, remote) pair.

    Attributes:
        local: Local directory path (``~`` allowed).
        remote: rclone remote path; None derives ``REMOTE:<basename>``.
    """

    local: str
    remote: str | None = None

    @classmethod
    def parse(cls, value: str | dict[str, Any]) -> DirectoryConfig:
        """Build from a config entry (``"local=remote"`` string or dict)."""
        if isinstance(value, dict):
            if "local" not in value:
                raise ConfigError(f"Directory entry missing 'local': {value!r}")
            return cls(local=str(value["local"]), remote=value.get("remote"))

        local, sep, remote = value.partition("=")
        local = local.strip()
        if not local:
            raise ConfigError(f"Invalid directory entry: {value!r}")
        remote = remote.strip()
        return cls(local=local, remote=remote if sep and remote else None)


@dataclass
class DaemonConfig:
    """Settings for the sync orchestrator and its control API.

    Attributes:
        remote_name: rclone remote name (without the trailing colon).
        sync_interval: Seconds between periodic re-enqueues of every directory.
        queue_interval: Seconds between queue-processor ticks.
        directories: Directory pairs; empty means the default set.
        excludes: Extra exclude patterns on top of the defaults.
        exclude_file: Optional file with one exclude pattern per line.
        max_concurrent: Cap on concurrently syncing directories (None = no cap).
        watch_changes: Enqueue directories on local file changes.
        debounce_delay: Quiet period before a local change enqueues a sync.
        rclone_binary: rclone executable.
        api_host: Control API bind address.
        api_port: Control API port.
        log_level: Logging level name.
        log_file: Optional log file path.
        shutdown_timeout: Seconds to wait for in-flight syncs on stop.
    """

    remote_name: str = DEFAULT_REMOTE_NAME
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    queue_interval: float = DEFAULT_QUEUE_INTERVAL
    directories: list[DirectoryConfig] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)
    exclude_file: Path | None = None
    max_concurrent: int | None = None
    watch_changes: bool = False
    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY
    rclone_binary: str = "rclone"
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    log_level: str = "INFO"
    log_file: Path | None = None
    shutdown_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Normalize and validate settings."""
        self.remote_name = self.remote_name.strip().rstrip(":")
        if not self.remote_name:
            raise ConfigError("remote_name must not be empty")
        if self.sync_interval <= 0:
            raise ConfigError(f"sync_interval must be positive, got {self.sync_interval}")
        if self.queue_interval <= 0:
            raise ConfigError(f"queue_interval must be positive, got {self.queue_interval}")
        if self.debounce_delay < 0:
            raise ConfigError(f"debounce_delay must not be negative, got {self.debounce_delay}")
        if self.max_concurrent is not None and self.max_concurrent < 1:
            raise ConfigError(f"max_concurrent must be at least 1, got {self.max_concurrent}")
        if not 0 < self.api_port < 65536:
            raise ConfigError(f"api_port out of range: {self.api_port}")

        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid log_level: {self.log_level} (must be one of {', '.join(LOG_LEVELS)})"
            )

        if self.exclude_file is not None:
            self.exclude_file = Path(self.exclude_file).expanduser()
        if self.log_file is not None:
            self.log_file = Path(self.log_file).expanduser()

    @property
    def api_url(self) -> str:
        """Base URL of the control API."""
        return f"http://{self.api_host}:{self.api_port}"

    def remote_for(self, local: str | Path) -> str:
        """Default remote path for a local directory: ``REMOTE:<basename>``."""
        return f"{self.remote_name}:{Path(local).expanduser().name}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DaemonConfig:
        """Build from a parsed config mapping, ignoring unknown keys."""
        kwargs: dict[str, Any] = {}
        for key in (
            "remote_name",
            "rclone_binary",
            "api_host",
            "log_level",
        ):
            if key in data:
                kwargs[key] = str(data[key])
        for key in ("sync_interval", "queue_interval", "debounce_delay", "shutdown_timeout"):
            if key in data:
                kwargs[key] = _to_float(key, data[key])
        if "api_port" in data:
            kwargs["api_port"] = _to_int("api_port", data["api_port"])
        if data.get("max_concurrent") is not None:
            kwargs["max_concurrent"] = _to_int("max_concurrent", data["max_concurrent"])
        if "watch_changes" in data:
            kwargs["watch_changes"] = _to_bool("watch_changes", data["watch_changes"])
        for key in ("exclude_file", "log_file"):
            if data.get(key):
                kwargs[key] = Path(str(data[key]))
        if "directories" in data:
            kwargs["directories"] = [DirectoryConfig.parse(d) for d in data["directories"]]
        if "excludes" in data:
            kwargs["excludes"] = [str(p) for p in data["excludes"]]
        return cls(**kwargs)


def get_config_dir() -> Path:
    """Get the configuration directory for bisyncd.

    Returns:
        Path to ~/.bisyncd.
    """
    return Path.home() / ".bisyncd"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config(config_file: Path | None = None) -> dict[str, Any]:
    """Load the raw configuration mapping from the config file."""
    config_file = config_file or get_config_file()
    if not config_file.exists():
        return {}
    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file} must contain a JSON object")
    return data


def save_config(config: dict[str, Any], config_file: Path | None = None) -> None:
    """Save the raw configuration mapping to the config file."""
    config_file = config_file or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2), encoding="utf-8")


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    """Collect BISYNCD_* overrides into config-file keys."""
    overrides: dict[str, Any] = {}
    scalar_keys = (
        "remote_name",
        "sync_interval",
        "queue_interval",
        "debounce_delay",
        "shutdown_timeout",
        "max_concurrent",
        "watch_changes",
        "rclone_binary",
        "api_host",
        "api_port",
        "log_level",
        "log_file",
        "exclude_file",
    )
    for key in scalar_keys:
        value = environ.get(ENV_PREFIX + key.upper())
        if value is not None and value.strip():
            overrides[key] = value.strip()

    dirs = environ.get(ENV_PREFIX + "DIRECTORIES")
    if dirs:
        overrides["directories"] = _split_and_trim(dirs)
    excludes = environ.get(ENV_PREFIX + "EXCLUDES")
    if excludes:
        overrides["excludes"] = _split_and_trim(excludes)
    return overrides


def load_daemon_config(
    config_file: Path | None = None,
    environ: dict[str, str] | None = None,
) -> DaemonConfig:
    """Resolve the daemon configuration from file and environment.

    Args:
        config_file: Config file to read (default ~/.bisyncd/config.json).
        environ: Environment mapping (default os.environ).

    Returns:
        Validated DaemonConfig.

    Raises:
        ConfigError: If any setting is invalid.
    """
    data = load_config(config_file)
    data.update(_env_overrides(dict(os.environ if environ is None else environ)))
    config = DaemonConfig.from_dict(data)
    logging.getLogger(__name__).debug("Loaded configuration: %s", config)
    return config


def _split_and_trim(value: str) -> list[str]:
    """Split a comma-separated string, dropping empty items."""
    return [part.strip() for part in value.split(",") if part.strip()]


def _to_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be a number, got {value!r}") from e


def _to_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")
