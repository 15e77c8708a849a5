"""Shared configuration utilities."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar, Callable, Generic

import yaml
from dotenv import load_dotenv

T = TypeVar('T')

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"


@dataclass
class StoreConfig:
    database_url: str = "sqlite:///feed_sync.db"
    echo: bool = False
    purge_feeds_hours: int = 24


@dataclass
class FetchConfig:
    timeout: int = 10
    size_limit: int = 2 * 1024 * 1024
    user_agent: str = "feed-sync/1.0 (feed reader)"


@dataclass
class Config:
    store: StoreConfig = field(default_factory=StoreConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)


def find_config_path(
    config_name: str | None,
    config_dir: Path = CONFIG_DIR,
    default_name: str = "prod",
    env_var: str | None = "CONFIG_ENV",
) -> Path:
    """Find config file path, checking env var and defaults.

    Args:
        config_name: Name of config (without .yaml) or None for default
        config_dir: Directory containing config files
        default_name: Default config name if config_name is None
        env_var: Environment variable to check for config name

    Returns:
        Path to the config file

    Raises:
        FileNotFoundError: If config file doesn't exist
    """
    if config_name is None:
        config_name = os.environ.get(env_var, default_name) if env_var else default_name

    config_path = config_dir / f"{config_name}.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return config_path


def load_yaml(path: Path) -> dict:
    """Load YAML file and return dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(config_name: str | None = None, config_dir: Path = CONFIG_DIR) -> Config:
    """Load configuration from a YAML file, with DATABASE_URL taking precedence."""
    load_dotenv()
    data = load_yaml(find_config_path(config_name, config_dir))
    config = parse_config(data)

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        config.store.database_url = database_url
    return config


def parse_config(data: dict) -> Config:
    """Parse config dictionary into Config object."""
    store_data = data.get("store", {})
    fetch_data = data.get("fetch", {})

    store = StoreConfig(
        database_url=store_data.get("database_url", StoreConfig.database_url),
        echo=store_data.get("echo", False),
        purge_feeds_hours=store_data.get("purge_feeds_hours", StoreConfig.purge_feeds_hours),
    )
    fetch = FetchConfig(
        timeout=fetch_data.get("timeout", FetchConfig.timeout),
        size_limit=fetch_data.get("size_limit", FetchConfig.size_limit),
        user_agent=fetch_data.get("user_agent", FetchConfig.user_agent),
    )
    return Config(store=store, fetch=fetch)


class ConfigSingleton(Generic[T]):
    """Generic config singleton manager.

    Provides get/set/reset pattern for managing a global config instance.

    Example:
        >>> _manager = ConfigSingleton(load_config)
        >>> get_config = _manager.get
        >>> set_config = _manager.set
        >>> reset_config = _manager.reset
    """

    def __init__(self, loader: Callable[[], T] | None = None):
        self._config: T | None = None
        self._loader = loader

    def get(self) -> T:
        """Get the config, loading it lazily if needed."""
        if self._config is None:
            if self._loader is None:
                raise RuntimeError("No config loaded and no loader set")
            self._config = self._loader()
        return self._config

    def set(self, config: T) -> None:
        """Set the config directly."""
        self._config = config

    def reset(self) -> None:
        """Reset the config, forcing reload on next get()."""
        self._config = None


_manager: ConfigSingleton[Config] = ConfigSingleton(load_config)
get_config = _manager.get
set_config = _manager.set
reset_config = _manager.reset
