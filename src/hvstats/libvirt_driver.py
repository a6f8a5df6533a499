"""
Libvirt/KVM driver.

Collects domain snapshots through the libvirt Python binding. The binding is
optional: without it the driver still registers but never detects.
"""

from __future__ import annotations

import time
import xml.etree.ElementTree as ET
from typing import Any, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    import libvirt
else:
    try:
        import libvirt  # type: ignore[import-untyped,import-not-found]
    except ImportError:
        libvirt = None  # type: ignore[assignment]

from .driver import BaseDriver, Snapshot
from .exceptions import CollectionError, ValidationError
from .logging import logger
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
)

DEFAULT_URI = "qemu:///system"
SECTOR_SIZE = 512


class LibvirtDriver(BaseDriver):
    """Driver for hypervisors managed by libvirt."""

    def __init__(self, uri: str = DEFAULT_URI) -> None:
        super().__init__()
        self.uri = uri
        self._conn: Optional[Any] = None

    def name(self) -> str:
        return "libvirt"

    def detect(self) -> bool:
        if libvirt is None:
            return False
        try:
            conn = libvirt.openReadOnly(self.uri)
        except libvirt.libvirtError as e:
            logger.debug(f"libvirt not usable at {self.uri}: {e}", uri=self.uri)
            return False
        if conn is None:
            return False
        conn.close()
        return True

    def _connection(self) -> Any:
        if libvirt is None:
            raise CollectionError("libvirt python binding is not installed", "LIBVIRT")

        if self._conn is not None:
            if self._conn.isAlive():
                return self._conn
            # Connection is dead, drop it and reconnect
            self._conn = None

        try:
            conn = libvirt.openReadOnly(self.uri)
        except libvirt.libvirtError as e:
            raise CollectionError(str(e), "LIBVIRT") from e
        if conn is None:
            raise CollectionError(f"failed to connect to {self.uri}", "LIBVIRT")

        self._conn = conn
        logger.debug(f"Connected to libvirt at {self.uri}", uri=self.uri)
        return conn

    def collect(
        self, include_cpu: bool, include_block: bool, include_network: bool
    ) -> Snapshot:
        conn = self._connection()
        try:
            # Only running domains carry a hypervisor id
            domains = conn.listAllDomains(libvirt.VIR_CONNECT_LIST_DOMAINS_ACTIVE)
            snapshot: Snapshot = {}
            for dom in domains:
                domain = self._domain(dom, include_cpu, include_block, include_network)
                snapshot[domain.id] = domain
            return snapshot
        except libvirt.libvirtError as e:
            logger.error(f"libvirt collection failed: {e}", uri=self.uri, exc_info=True)
            raise CollectionError(str(e), "LIBVIRT") from e
        except (ET.ParseError, ValidationError) as e:
            raise CollectionError(f"malformed domain data: {e}", "LIBVIRT") from e

    def _domain(
        self, dom: Any, include_cpu: bool, include_block: bool, include_network: bool
    ) -> Domain:
        state, max_mem, memory, _, _ = dom.info()
        active = bool(dom.isActive())

        domain = Domain(
            name=dom.name(),
            id=DomainID(max(dom.ID(), 0)),  # -1 if it stopped since listing
            uuid=dom.UUIDString(),
            os_type=dom.OSType(),
            time=Timestamp(time.time_ns()),
            flags=self._domain_flag(state),
        )
        domain.attach_private(self.name(), {"max_memory_kb": max_mem, "memory_kb": memory})

        root = ET.fromstring(dom.XMLDesc(0))
        if include_cpu and active:
            domain.cpus = self._cpus(dom)
        if include_block:
            domain.blocks = self._blocks(dom, root, active)
        if include_network:
            domain.interfaces = self._interfaces(dom, root, active)
        return domain

    @staticmethod
    def _domain_flag(state: int) -> DomainFlag:
        state_map = {
            libvirt.VIR_DOMAIN_RUNNING: DomainFlag.ONLINE,
            libvirt.VIR_DOMAIN_BLOCKED: DomainFlag.ONLINE,
            libvirt.VIR_DOMAIN_PAUSED: DomainFlag.PAUSED,
            libvirt.VIR_DOMAIN_PMSUSPENDED: DomainFlag.PAUSED,
            libvirt.VIR_DOMAIN_SHUTDOWN: DomainFlag.DYING,
            libvirt.VIR_DOMAIN_SHUTOFF: DomainFlag.SHUTDOWN,
            libvirt.VIR_DOMAIN_CRASHED: DomainFlag.CRASHED,
        }
        return state_map.get(state, DomainFlag.SHUTDOWN)

    @staticmethod
    def _cpus(dom: Any) -> List[CPU]:
        flag_map = {
            libvirt.VIR_VCPU_OFFLINE: CPUFlag.ONLINE,
            libvirt.VIR_VCPU_RUNNING: CPUFlag.RUNNING,
            libvirt.VIR_VCPU_BLOCKED: CPUFlag.HALTED,
        }
        vcpu_info, _ = dom.vcpus()
        return [
            CPU(
                id=number,
                flags=flag_map.get(state, CPUFlag.ONLINE),
                time=cpu_time / 1e9,  # ns to seconds
            )
            for number, state, cpu_time, _ in vcpu_info
        ]

    def _blocks(self, dom: Any, root: ET.Element, active: bool) -> List[BlockDevice]:
        blocks = []
        for disk_elem in root.findall("./devices/disk"):
            target = disk_elem.find("target")
            if target is None or not target.get("dev"):
                continue
            dev = target.get("dev", "")
            device_type = disk_elem.get("device", "disk")

            block = BlockDevice(
                name=dev,
                read_only=disk_elem.find("readonly") is not None,
                is_disk=device_type == "disk",
                is_cdrom=device_type == "cdrom",
            )
            if active and disk_elem.find("source") is not None:
                self._fill_block_stats(dom, block)
            blocks.append(block)
        return blocks

    @staticmethod
    def _fill_block_stats(dom: Any, block: BlockDevice) -> None:
        try:
            stats = dom.blockStatsFlags(block.name, 0)
        except libvirt.libvirtError as e:
            # Empty cdrom trays and similar have no stats
            logger.debug(f"No block stats for {block.name}: {e}", device=block.name)
            return

        def io(prefix: str) -> BlockIO:
            nbytes = max(stats.get(f"{prefix}_bytes", 0), 0)
            return BlockIO(
                operations=max(stats.get(f"{prefix}_operations", 0), 0),
                bytes=nbytes,
                sectors=nbytes // SECTOR_SIZE,
                absolute=True,
            )

        block.read = io("rd")
        block.write = io("wr")
        block.flush = io("flush")

    @staticmethod
    def _interfaces(dom: Any, root: ET.Element, active: bool) -> List[NetworkInterface]:
        interfaces = []
        for interface_elem in root.findall("./devices/interface"):
            mac_elem = interface_elem.find("mac")
            source_elem = interface_elem.find("source")
            target_elem = interface_elem.find("target")

            dev = target_elem.get("dev", "") if target_elem is not None else ""
            bridges = []
            if source_elem is not None and source_elem.get("bridge"):
                bridges.append(source_elem.get("bridge", ""))

            iface = NetworkInterface(
                name=dev,
                mac=mac_elem.get("address", "") if mac_elem is not None else "",
                bridges=bridges,
            )
            if active and dev:
                try:
                    stats = dom.interfaceStats(dev)
                except libvirt.libvirtError as e:
                    logger.debug(f"No interface stats for {dev}: {e}", device=dev)
                else:
                    rx = [max(v, 0) for v in stats[:4]]
                    tx = [max(v, 0) for v in stats[4:8]]
                    iface.rx = NetworkIO(*rx)
                    iface.tx = NetworkIO(*tx)
            interfaces.append(iface)
        return interfaces

    def _release(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except libvirt.libvirtError as e:
            logger.warning(f"Failed to close libvirt connection: {e}", uri=self.uri)
        self._conn = None
        logger.debug("libvirt connection closed", uri=self.uri)
