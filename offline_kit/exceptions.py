"""
Defines custom exceptions for the library to allow for more specific error handling.
"""


class OfflineKitError(Exception):
    """Base exception for all library-specific errors."""


class ConfigurationError(OfflineKitError):
    """Raised for issues related to configuration loading or validation."""


class InvalidDurationError(OfflineKitError, ValueError):
    """Raised when a TTL or staleness value does not match the duration grammar."""


class StorageError(OfflineKitError):
    """
    Raised when a storage backend cannot read or write its persistent state.
    """
