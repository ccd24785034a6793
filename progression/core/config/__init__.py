"""
Configuration layer.

- `Config`: static settings from environment variables (.env supported).
- `ConfigManager`: YAML-backed economy tunables, injected into services.
"""

from progression.core.config.config import Config, Environment
from progression.core.config.errors import ConfigError, ConfigLoadError, ConfigurationError
from progression.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "ConfigError",
    "ConfigLoadError",
    "ConfigManager",
    "ConfigurationError",
    "Environment",
]
