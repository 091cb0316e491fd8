"""
Configuration management for the linklens client.

The configuration is stored as a TOML file in the store directory.
It specifies the enrichment worker endpoint and client timings.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# tomli_w for writing TOML (tomllib is read-only)
import tomli_w


CONFIG_FILENAME = "linklens.toml"
CONFIG_VERSION = 1

DEFAULT_WORKER_URL = "http://localhost:8787"

# Debounce before a URL preview request fires
DEFAULT_PREVIEW_DELAY = 0.6
# Upper bound on one analysis request
DEFAULT_ANALYZE_TIMEOUT = 25.0
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass
class ClientConfig:
    """Complete client configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    worker_url: str = DEFAULT_WORKER_URL
    preview_delay: float = DEFAULT_PREVIEW_DELAY
    analyze_timeout: float = DEFAULT_ANALYZE_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    # Bearer token for the worker; usually comes from the session instead
    token: Optional[str] = None

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        return self.path / "linklens.db"

    @property
    def trash_dir(self) -> Path:
        return self.path / "trash"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_store_path(override: Optional[Path] = None) -> Path:
    """
    Resolve the store directory.

    Priority: explicit override, LINKLENS_STORE_PATH, ~/.linklens
    """
    if override is not None:
        return Path(override).expanduser()
    env = os.environ.get("LINKLENS_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".linklens"


def _apply_env(config: ClientConfig) -> ClientConfig:
    """Environment variables win over the file."""
    worker_url = os.environ.get("LINKLENS_WORKER_URL")
    if worker_url:
        config.worker_url = worker_url
    token = os.environ.get("LINKLENS_TOKEN")
    if token:
        config.token = token
    return config


def load_config(store_path: Path) -> ClientConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    worker = data.get("worker", {})
    timing = data.get("timing", {})
    try:
        preview_delay = float(timing.get("preview_delay", DEFAULT_PREVIEW_DELAY))
        analyze_timeout = float(timing.get("analyze_timeout", DEFAULT_ANALYZE_TIMEOUT))
        request_timeout = float(timing.get("request_timeout", DEFAULT_REQUEST_TIMEOUT))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid [timing] value in {config_path}: {e}") from e
    if preview_delay < 0 or analyze_timeout <= 0 or request_timeout <= 0:
        raise ValueError(f"Timing values must be positive in {config_path}")

    return _apply_env(ClientConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        worker_url=worker.get("base_url", DEFAULT_WORKER_URL),
        preview_delay=preview_delay,
        analyze_timeout=analyze_timeout,
        request_timeout=request_timeout,
    ))


def save_config(config: ClientConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist. The token is never written.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "worker": {
            "base_url": config.worker_url,
        },
        "timing": {
            "preview_delay": config.preview_delay,
            "analyze_timeout": config.analyze_timeout,
            "request_timeout": config.request_timeout,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> ClientConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    config = ClientConfig(path=store_path)
    save_config(config)
    return _apply_env(config)
