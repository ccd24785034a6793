"""
Configuration error hierarchy.

Purpose
-------
Provides exceptions for configuration loading and validation with clear
error classification.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigurationError (missing/invalid static settings)
└── ConfigLoadError (unreadable or malformed YAML tunables)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     Config.validate()
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """


class ConfigurationError(ConfigError):
    """
    Raised when a required static setting is missing or invalid.

    Only raised in production; other environments log a warning and
    continue with defaults.
    """


class ConfigLoadError(ConfigError):
    """
    Raised when a YAML tunables file cannot be parsed in strict mode.

    Attributes
    ----------
    path:
        File that failed to load.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load config file '{path}': {reason}")
