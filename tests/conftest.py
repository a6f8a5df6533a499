"""Test configuration and fixtures for hvstats."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from hvstats.models import (  # noqa: E402
    BlockDevice,
    BlockIO,
    CPU,
    CPUFlag,
    Domain,
    DomainFlag,
    DomainID,
    NetworkInterface,
    NetworkIO,
)
from hvstats.registry import DriverRegistry  # noqa: E402


def make_domain(domid: int = 1, name: str = "guest") -> Domain:
    """A fully populated domain as a backend would return it."""
    return Domain(
        name=name,
        id=DomainID(domid),
        uuid=f"00000000-0000-0000-0000-{domid:012d}",
        os_type="hvm",
        time=1700000000,
        flags=DomainFlag.ONLINE,
        cpus=[CPU(id=0, flags=CPUFlag.RUNNING, time=12.5)],
        blocks=[
            BlockDevice(
                name="vda",
                is_disk=True,
                read=BlockIO(operations=10, bytes=4096, sectors=8, absolute=True),
            )
        ],
        interfaces=[
            NetworkInterface(
                name="vnet0",
                mac="52:54:00:12:34:56",
                bridges=["br0"],
                rx=NetworkIO(bytes=100, packets=2),
            )
        ],
    )


class FakeDriver:
    """Structural driver used across tests."""

    def __init__(self, name="fake", detected=True, domains=None, error=None):
        self._name = name
        self.detected = detected
        self.domains = domains if domains is not None else [make_domain()]
        self.error = error
        self.detect_calls = 0
        self.collect_calls = []
        self.close_calls = 0

    def name(self):
        return self._name

    def detect(self):
        self.detect_calls += 1
        return self.detected

    def collect(self, include_cpu, include_block, include_network):
        self.collect_calls.append((include_cpu, include_block, include_network))
        if self.error is not None:
            raise self.error
        return {domain.id: domain for domain in self.domains}

    def close(self):
        self.close_calls += 1


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def registry():
    """Each test gets its own registry instance."""
    return DriverRegistry()


@pytest.fixture
def sample_domain():
    return make_domain()


@pytest.fixture
def driver_factory():
    """Build FakeDriver instances with custom behaviour."""
    return FakeDriver


@pytest.fixture
def domain_factory():
    return make_domain
