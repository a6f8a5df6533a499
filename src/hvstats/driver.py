"""
Driver capability contract.

A driver knows how to detect and query one hypervisor technology. Backends
either satisfy the ``Driver`` protocol structurally or subclass ``BaseDriver``.
"""

from abc import ABC, abstractmethod
from typing import Dict, Protocol, runtime_checkable

from .models import Domain, DomainID

Snapshot = Dict[DomainID, Domain]

CAPABILITIES = ("name", "detect", "collect", "close")


@runtime_checkable
class Driver(Protocol):
    """Capability set every hypervisor backend exposes."""

    def name(self) -> str:
        """Stable, non-empty identifier for the backend."""
        ...

    def detect(self) -> bool:
        """Side-effect-free probe: is this hypervisor usable on this host?"""
        ...

    def collect(
        self, include_cpu: bool, include_block: bool, include_network: bool
    ) -> Snapshot:
        """Take one point-in-time scan of every domain."""
        ...

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
        ...


def is_driver(value: object) -> bool:
    """True iff ``value`` exposes all four driver capabilities as callables."""
    if isinstance(value, type):
        # A driver class rather than an instance
        return False
    return all(callable(getattr(value, attr, None)) for attr in CAPABILITIES)


class BaseDriver(ABC):
    """Convenience base class with an idempotent close()."""

    def __init__(self) -> None:
        self._closed = False

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def detect(self) -> bool: ...

    @abstractmethod
    def collect(
        self, include_cpu: bool, include_block: bool, include_network: bool
    ) -> Snapshot: ...

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()

    def _release(self) -> None:
        """Hook for subclasses holding native handles."""
