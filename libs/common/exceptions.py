"""
Exception roots shared by every service in the platform.

Service packages define their own hierarchies underneath PlatformError so a
caller can catch "anything we raised on purpose" without also catching
programming errors.
"""


class PlatformError(Exception):
    """
    Base exception for all platform errors.

    Example:
        >>> try:
        ...     submit_batch(order_ids)
        ... except PlatformError as e:
        ...     logger.error(f"Platform error: {e}")
    """

    pass


class ConfigurationError(PlatformError):
    """
    Raised when configuration is missing or internally inconsistent.

    Raised at startup so a misconfigured process never starts serving.

    Example:
        >>> if retry_after_base > retry_after_max:
        ...     raise ConfigurationError("RETRY_AFTER_BASE_SECONDS exceeds RETRY_AFTER_MAX_SECONDS")
    """

    pass
