"""Configuration loading for blockwarden.

Loads settings from TOML config file with CLI override support.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli

from blockwarden.models import BlockingCategory
from blockwarden.repository import ApiConfig

logger = logging.getLogger(__name__)


def get_config_search_paths() -> list[Path]:
    """Get list of paths to search for config file."""
    return [
        Path("blockwarden.toml"),  # Current directory
        Path.home() / ".config" / "blockwarden" / "blockwarden.toml",
        Path("/etc/blockwarden/blockwarden.toml"),
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_search_paths():
        if path.exists():
            return path
    return None


@dataclass
class Config:
    """Loaded configuration with all sections."""

    # Remote API
    api_base_url: str = "http://127.0.0.1:8000"
    api_service_key: str = ""
    api_service_name: str = "blockwarden"
    api_timeout: float = 10.0

    # Cache
    cache_timeout: float = 120.0

    # Shared state
    state_path: Path = field(
        default_factory=lambda: Path.home() / ".local" / "share" / "blockwarden" / "state.duckdb"
    )

    # Enforcement
    hosts_path: Path = Path("/etc/hosts")
    redirect_ip: str = "0.0.0.0"
    time_saved_per_block: float = 30.0

    # App-category identifier -> blocking category, lowercased keys
    category_mapping: dict[str, BlockingCategory] = field(default_factory=dict)

    def api_config(self) -> ApiConfig:
        return ApiConfig(
            base_url=self.api_base_url,
            service_key=self.api_service_key,
            service_name=self.api_service_name,
            timeout=self.api_timeout,
        )


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from TOML file.

    Args:
        config_path: Explicit path to config file, or None to search

    Returns:
        Config object with loaded values
    """
    config = Config()

    # Find config file
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        logger.debug("No config file found, using defaults")
        return config

    logger.info(f"Loading config from {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except Exception as e:
        logger.warning(f"Failed to load config file: {e}")
        return config

    # API section
    if "api" in data:
        api = data["api"]
        if "base_url" in api:
            config.api_base_url = api["base_url"]
        if "service_key" in api:
            config.api_service_key = api["service_key"]
        if "service_name" in api:
            config.api_service_name = api["service_name"]
        if "timeout" in api:
            config.api_timeout = float(api["timeout"])

    # Cache section
    if "cache" in data:
        cache = data["cache"]
        if "timeout_seconds" in cache:
            config.cache_timeout = float(cache["timeout_seconds"])

    # State section
    if "state" in data:
        state = data["state"]
        if "path" in state:
            config.state_path = Path(state["path"]).expanduser()

    # Enforcement section
    if "enforcement" in data:
        enforcement = data["enforcement"]
        if "hosts_path" in enforcement:
            config.hosts_path = Path(enforcement["hosts_path"]).expanduser()
        if "redirect_ip" in enforcement:
            config.redirect_ip = enforcement["redirect_ip"]
        if "time_saved_per_block" in enforcement:
            config.time_saved_per_block = float(enforcement["time_saved_per_block"])

    # Category mapping section
    if "categories" in data:
        for identifier, category_name in data["categories"].items():
            try:
                config.category_mapping[identifier.lower()] = BlockingCategory(category_name)
            except ValueError:
                logger.warning(
                    f"Unknown blocking category '{category_name}' for '{identifier}', ignoring"
                )

    return config


def merge_cli_options(config: Config, **cli_options: Any) -> Config:
    """Merge CLI options into config (CLI takes precedence).

    Args:
        config: Base config from file
        **cli_options: CLI option overrides (None values are ignored)

    Returns:
        Config with CLI overrides applied
    """
    # Map CLI option names to config attributes
    mappings = {
        "api_url": "api_base_url",
        "service_key": "api_service_key",
        "state": "state_path",
        "hosts": "hosts_path",
    }

    for cli_name, config_name in mappings.items():
        if cli_name in cli_options:
            value = cli_options[cli_name]
            # Only override if CLI value is meaningful
            if value is not None and value != "":
                if cli_name in ("state", "hosts"):
                    value = Path(value).expanduser()
                setattr(config, config_name, value)

    return config
