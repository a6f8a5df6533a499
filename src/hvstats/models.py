"""
Data models for hypervisor resource-usage snapshots.

Every driver returns its snapshot in these shapes, whatever hypervisor it
talks to. A Domain is built fresh by each collect call and handed over to the
caller; nothing here keeps state between calls.
"""

import re
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Dict, List, NewType, Optional

from .exceptions import CounterError, ValidationError

DomainID = NewType("DomainID", int)
Timestamp = NewType("Timestamp", int)

MAX_DOMAIN_ID = 2**64 - 1

_DIGITS_PATTERN = re.compile(r"[0-9]+")
_MAC_PATTERN = re.compile(r"[0-9a-f]{2}([:-][0-9a-f]{2}){5}")


class CPUFlag(Enum):
    """Scheduling state of a single virtual CPU."""

    ONLINE = 0
    RUNNING = 1
    HALTED = 2  # blocked, waiting on IO etc
    PAUSED = 3


class DomainFlag(Enum):
    """Domain states."""

    ONLINE = 0
    SHUTDOWN = 1
    CRASHED = 2
    DYING = 3
    PAUSED = 4


def string_to_domain_id(text: str) -> DomainID:
    """
    Parse a base-10 unsigned integer into a DomainID.

    Anything unparseable (signs, whitespace, non-digits, values past 2**64-1)
    yields DomainID(0). Zero is also a legitimate id, so callers that need
    strict validation must check the string themselves.
    """
    if not isinstance(text, str) or not _DIGITS_PATTERN.fullmatch(text):
        return DomainID(0)
    value = int(text)
    if value > MAX_DOMAIN_ID:
        return DomainID(0)
    return DomainID(value)


def _check_counters(record: Any, names: List[str]) -> None:
    for name in names:
        value = getattr(record, name)
        if value < 0:
            raise ValidationError(
                f"{type(record).__name__}.{name} must be non-negative, got {value}",
                "counter",
            )


@dataclass
class BlockIO:
    """Block IO counters for one direction (read, write or flush).

    ``absolute`` marks counters that are cumulative since boot; otherwise the
    values are a delta since the previous sample.
    """

    operations: int = 0
    bytes: int = 0
    sectors: int = 0
    absolute: bool = False

    def __post_init__(self) -> None:
        _check_counters(self, ["operations", "bytes", "sectors"])

    def delta(self, previous: "BlockIO") -> "BlockIO":
        """
        Return the activity between ``previous`` and this sample.

        Absolute samples are subtracted. Delta samples already describe one
        interval and are returned unchanged.

        Raises:
            CounterError: If the samples disagree on ``absolute`` or an
                absolute counter went backwards (counter reset).
        """
        if self.absolute != previous.absolute:
            raise CounterError(
                "cannot combine absolute and delta samples"
            )
        if not self.absolute:
            return BlockIO(self.operations, self.bytes, self.sectors, False)

        diffs = {}
        for name in ("operations", "bytes", "sectors"):
            diff = getattr(self, name) - getattr(previous, name)
            if diff < 0:
                raise CounterError(f"{name} counter went backwards, resample")
            diffs[name] = diff
        return BlockIO(absolute=False, **diffs)

    def rate(self, previous: "BlockIO", seconds: float) -> Dict[str, float]:
        """Per-second operations, bytes and sectors since ``previous``."""
        if seconds <= 0:
            raise CounterError(f"interval must be positive, got {seconds}")
        diff = self.delta(previous)
        return {
            "operations": diff.operations / seconds,
            "bytes": diff.bytes / seconds,
            "sectors": diff.sectors / seconds,
        }


@dataclass
class BlockDevice:
    """Storage device attached to a domain."""

    name: str
    read_only: bool = False
    is_disk: bool = False
    is_cdrom: bool = False
    read: BlockIO = field(default_factory=BlockIO)
    write: BlockIO = field(default_factory=BlockIO)
    flush: BlockIO = field(default_factory=BlockIO)

    def __post_init__(self) -> None:
        if self.is_disk and self.is_cdrom:
            raise ValidationError(
                f"block device {self.name} cannot be both disk and cdrom",
                "block_device",
            )


@dataclass
class CPU:
    """One virtual CPU of a domain."""

    id: int
    flags: CPUFlag = CPUFlag.ONLINE
    time: float = 0.0  # cumulative seconds
    idle: float = 0.0
    idle_set: bool = False  # not every backend can report idle time
    load1: float = 0.0
    load5: float = 0.0
    load15: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.flags, CPUFlag):
            raise ValidationError(f"invalid CPU flag {self.flags!r}", "cpu")
        _check_counters(
            self, ["id", "time", "idle", "load1", "load5", "load15"]
        )


@dataclass
class NetworkIO:
    """Network counters for one direction."""

    bytes: int = 0
    packets: int = 0
    errors: int = 0
    drops: int = 0

    def __post_init__(self) -> None:
        _check_counters(self, ["bytes", "packets", "errors", "drops"])


@dataclass
class NetworkInterface:
    """Network interface information."""

    name: str
    mac: str = ""
    bridges: List[str] = field(default_factory=list)
    rx: NetworkIO = field(default_factory=NetworkIO)
    tx: NetworkIO = field(default_factory=NetworkIO)

    def __post_init__(self) -> None:
        if self.mac:
            mac = self.mac.lower()
            if not _MAC_PATTERN.fullmatch(mac):
                raise ValidationError(f"invalid hardware address {self.mac!r}", "mac")
            self.mac = mac.replace("-", ":")


@dataclass(frozen=True)
class BackendPrivate:
    """Context a driver keeps on a domain for its own later use."""

    owner: str
    data: Any


@dataclass
class Domain:
    """One virtual machine as seen by a hypervisor at one instant."""

    name: str
    id: DomainID
    uuid: str = ""
    os_type: str = ""
    time: Timestamp = Timestamp(0)
    flags: DomainFlag = DomainFlag.ONLINE

    cpus: List[CPU] = field(default_factory=list)
    blocks: List[BlockDevice] = field(default_factory=list)
    interfaces: List[NetworkInterface] = field(default_factory=list)

    _private: Optional[BackendPrivate] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not isinstance(self.flags, DomainFlag):
            raise ValidationError(f"invalid domain flag {self.flags!r}", "domain")
        if not 0 <= self.id <= MAX_DOMAIN_ID:
            raise ValidationError(f"domain id out of range: {self.id}", "domain")
        if self.time < 0:
            raise ValidationError(f"timestamp must be non-negative: {self.time}", "domain")

    def attach_private(self, owner: str, data: Any) -> None:
        """Store driver-owned context; only ``owner`` can read it back."""
        self._private = BackendPrivate(owner.upper(), data)

    def private_for(self, owner: str) -> Any:
        if self._private is None or self._private.owner != owner.upper():
            return None
        return self._private.data

    def to_dict(self) -> Dict[str, Any]:
        """Plain, JSON-ready representation with enums rendered by name."""
        data = {
            f.name: getattr(self, f.name) for f in fields(self) if f.compare
        }
        data["flags"] = self.flags.name
        data["cpus"] = [
            dict(asdict(cpu), flags=cpu.flags.name) for cpu in self.cpus
        ]
        data["blocks"] = [asdict(block) for block in self.blocks]
        data["interfaces"] = [asdict(iface) for iface in self.interfaces]
        return data
