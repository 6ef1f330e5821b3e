"""Common utilities and exceptions."""

from libs.common.exceptions import ConfigurationError, PlatformError

__all__ = [
    "PlatformError",
    "ConfigurationError",
]
