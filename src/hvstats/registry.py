"""
Driver registry.

Maps an upper-cased backend name to a registered driver. The registry is an
ordinary object built by the program's composition root; there is no
process-wide instance.
"""

import threading
from typing import Dict, Iterable, List, Tuple

from .driver import Driver, Snapshot, is_driver
from .exceptions import (
    ConfigurationError,
    CollectionError,
    DriverNotFoundError,
    DriverRegistrationError,
    HVStatsError,
)
from .logging import logger

REGISTRATION_POLICIES = ("strict", "skip")


class DriverRegistry:
    """Thread-safe mapping of backend name to driver."""

    def __init__(self) -> None:
        self._drivers: Dict[str, Driver] = {}
        self._lock = threading.RLock()

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return name.upper() in self._drivers

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)

    def register(self, value: object) -> bool:
        """
        Register a driver and report whether its hypervisor was detected.

        A driver that is not detected stays registered and discoverable by
        name. The detection result is not remembered.

        Args:
            value: Candidate driver object

        Returns:
            bool: Result of the driver's detect() call

        Raises:
            DriverRegistrationError: If value is not a driver or has an empty name
        """
        _, detected = self._add(value)
        return detected

    def _add(self, value: object) -> Tuple[str, bool]:
        """Store a driver and return its registry key and detection result."""
        if not is_driver(value):
            raise DriverRegistrationError(
                f"Invalid type {type(value).__name__}", driver=value
            )

        try:
            driver_name = value.name()  # type: ignore[attr-defined]
        except Exception as e:
            raise DriverRegistrationError(f"name() failed: {e}", driver=value) from e
        if not isinstance(driver_name, str) or not driver_name:
            raise DriverRegistrationError("Empty driver name", driver=value)

        key = driver_name.upper()
        with self._lock:
            if key in self._drivers and self._drivers[key] is not value:
                logger.warning(
                    f"Replacing previously registered driver {key}", driver=key
                )
            self._drivers[key] = value  # type: ignore[assignment]

        try:
            detected = bool(value.detect())  # type: ignore[attr-defined]
        except Exception as e:
            logger.warning(
                f"Detection for driver {key} raised, treating as not detected: {e}",
                driver=key,
                exc_info=True,
            )
            detected = False

        if detected:
            logger.debug(f"Driver {key} registered successfully", driver=key)
        else:
            logger.debug(f"Driver {key} registered, hypervisor not detected", driver=key)
        return key, detected

    def register_all(
        self, values: Iterable[object], policy: str = "strict"
    ) -> Dict[str, bool]:
        """
        Register several drivers under an explicit failure policy.

        ``strict`` re-raises the first registration error, ``skip`` logs it
        and carries on with the remaining drivers.
        """
        if policy not in REGISTRATION_POLICIES:
            raise ConfigurationError(
                f"registration policy must be one of {list(REGISTRATION_POLICIES)}"
            )

        results: Dict[str, bool] = {}
        for value in values:
            try:
                key, detected = self._add(value)
            except DriverRegistrationError as e:
                if policy == "strict":
                    raise
                logger.warning(f"Skipping driver: {e.message}", error_code=e.error_code)
                continue
            results[key] = detected
        return results

    def unregister(self, name: str) -> Driver:
        """Remove a driver without closing it and hand it back."""
        with self._lock:
            try:
                return self._drivers.pop(name.upper())
            except KeyError:
                raise DriverNotFoundError(name) from None

    def get(self, name: str) -> Driver:
        """Case-insensitive lookup."""
        with self._lock:
            try:
                return self._drivers[name.upper()]
            except KeyError:
                raise DriverNotFoundError(name) from None

    def available_drivers(self) -> List[str]:
        """Names of every registered driver, in no particular order."""
        with self._lock:
            return list(self._drivers)

    def detected_drivers(self) -> List[str]:
        """Names of registered drivers whose hypervisor is detected right now."""
        with self._lock:
            drivers = list(self._drivers.items())

        detected = []
        for key, driver in drivers:
            try:
                if driver.detect():
                    detected.append(key)
            except Exception as e:
                logger.warning(f"Detection for driver {key} raised: {e}", driver=key)
        return detected

    def collect(
        self,
        name: str,
        include_cpu: bool = True,
        include_block: bool = True,
        include_network: bool = True,
    ) -> Snapshot:
        """
        Look up a driver and take one snapshot from it.

        No retries are made. Backend errors that are not already hvstats
        errors are wrapped in CollectionError.
        """
        driver = self.get(name)
        key = name.upper()

        try:
            snapshot = driver.collect(include_cpu, include_block, include_network)
        except HVStatsError:
            raise
        except Exception as e:
            logger.error(f"Driver {key} failed to collect: {e}", driver=key, exc_info=True)
            raise CollectionError(str(e), key) from e

        for domain in snapshot.values():
            if not include_cpu:
                domain.cpus = []
            if not include_block:
                domain.blocks = []
            if not include_network:
                domain.interfaces = []

        logger.debug(f"Collected {len(snapshot)} domains from {key}", driver=key)
        return snapshot

    def close_all(self) -> None:
        """Close every registered driver once and empty the registry."""
        with self._lock:
            drivers = list(self._drivers.items())
            self._drivers.clear()

        for key, driver in drivers:
            try:
                driver.close()
            except Exception as e:
                logger.warning(f"Failed to close driver {key}: {e}", driver=key)
        logger.debug("All drivers closed")
