"""Remote configuration API access."""

from blockwarden.repository.client import ApiClient, ApiConfig
from blockwarden.repository.config_repository import ConfigRepository

__all__ = ["ApiClient", "ApiConfig", "ConfigRepository"]
