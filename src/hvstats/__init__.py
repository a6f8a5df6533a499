"""hvstats - Backend-agnostic hypervisor resource-usage snapshots."""

__version__ = "0.1.0"
__description__ = "Hypervisor resource usage collection"

# Import main classes for easy access
from .driver import BaseDriver, Driver, is_driver
from .registry import DriverRegistry
from .models import (
    BlockDevice,
    BlockIO,
    CPU,
    CPUFlag,
    Domain,
    DomainFlag,
    DomainID,
    NetworkInterface,
    NetworkIO,
    Timestamp,
    string_to_domain_id,
)
from .exceptions import (
    HVStatsError,
    ConfigurationError,
    DriverRegistrationError,
    DriverNotFoundError,
    CollectionError,
    ValidationError,
    CounterError,
)

__all__ = [
    "__version__",
    "__description__",
    "BaseDriver",
    "Driver",
    "is_driver",
    "DriverRegistry",
    "BlockDevice",
    "BlockIO",
    "CPU",
    "CPUFlag",
    "Domain",
    "DomainFlag",
    "DomainID",
    "NetworkInterface",
    "NetworkIO",
    "Timestamp",
    "string_to_domain_id",
    "HVStatsError",
    "ConfigurationError",
    "DriverRegistrationError",
    "DriverNotFoundError",
    "CollectionError",
    "ValidationError",
    "CounterError",
]
