"""
Custom exceptions for hypervisor statistics collection.

This module defines all custom exceptions used throughout the hvstats package.
"""

from typing import Optional


class HVStatsError(Exception):
    """Base exception for hvstats operations."""

    def __init__(self, message: str, error_code: int = 2000) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message

    @property
    def exit_code(self) -> int:
        """Process exit status for this error, kept below 256."""
        if 2000 <= self.error_code < 2100:
            return self.error_code - 1990
        return 1


class ConfigurationError(HVStatsError):
    """Configuration-related errors."""

    def __init__(self, message: str, error_code: int = 2001) -> None:
        super().__init__(message, error_code=error_code)


class DriverRegistrationError(ConfigurationError):
    """A value handed to the registry is not a usable driver."""

    def __init__(self, message: str, driver: Optional[object] = None) -> None:
        super().__init__(f"RegisterDriver: {message}", error_code=2002)
        self.driver = driver


class DriverNotFoundError(HVStatsError):
    """No driver registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Driver '{name}' is not registered", error_code=2003)
        self.name = name


class CollectionError(HVStatsError):
    """A backend failed to produce a snapshot."""

    def __init__(self, message: str, driver: str = "unknown") -> None:
        super().__init__(
            f"Collection failed for driver {driver}: {message}", error_code=2004
        )
        self.driver = driver


class ValidationError(HVStatsError):
    """Validation errors."""

    def __init__(
        self, message: str, validation_type: str = "general", error_code: int = 2005
    ) -> None:
        super().__init__(
            f"Validation error ({validation_type}): {message}", error_code=error_code
        )
        self.validation_type = validation_type


class CounterError(ValidationError):
    """Two counter samples cannot be combined."""

    def __init__(self, message: str) -> None:
        super().__init__(message, validation_type="counter", error_code=2006)
