"""Stable public API for building tooling on top of beaconctl.

This module is the supported integration surface for third-party callers, for
example a kiosk UI that renders ``DetectionStatus`` and opens resources when the
first-seen pulse fires. Avoid importing from internal modules unless
intentionally depending on non-stable internals.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from beaconctl.core.distance import DEFAULT_MEASURED_POWER
from beaconctl.core.engine import DEFAULT_DEBOUNCE_S, StatusListener
from beaconctl.core.errors import (
    BeaconctlError,
    EngineConfigError,
    FrameDecodeError,
    RegistryLoadError,
    RegistryValidationError,
    ScannerError,
    ScannerUnavailableError,
)
from beaconctl.core.model import (
    AdapterState,
    BeaconTarget,
    DecodedFrame,
    DetectionStatus,
    EngineAction,
    FrameKind,
)
from beaconctl.core.service import BeaconService
from beaconctl.transports.base import AdvertisementSource

__all__ = [
    "BeaconctlError",
    "EngineConfigError",
    "FrameDecodeError",
    "RegistryLoadError",
    "RegistryValidationError",
    "ScannerError",
    "ScannerUnavailableError",
    "AdapterState",
    "BeaconTarget",
    "DecodedFrame",
    "DetectionStatus",
    "EngineAction",
    "FrameKind",
    "Client",
]


class Client:
    """Public client wrapping the beacon table, decoder, and detection engine.

    Each `Client` owns exactly one engine, so two clients never share
    detection state or the set of already-opened beacons.
    """

    def __init__(
        self,
        *,
        source: AdvertisementSource | None = None,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        measured_power: int = DEFAULT_MEASURED_POWER,
        clock: Callable[[], float] = time.monotonic,
        include_user_tables: bool = True,
    ) -> None:
        self._service = BeaconService(
            source=source,
            debounce_s=debounce_s,
            measured_power=measured_power,
            clock=clock,
            include_user_tables=include_user_tables,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    def list_beacons(self) -> list[BeaconTarget]:
        return self._service.list_beacons()

    def lookup(self, namespace: str, instance: str) -> BeaconTarget | None:
        return self._service.lookup(namespace, instance)

    def decode(self, payload: bytes | str) -> tuple[DecodedFrame, BeaconTarget | None]:
        return self._service.decode(payload)

    def observe(self, payload: bytes, rssi: int, *, now: float | None = None) -> EngineAction:
        return self._service.observe(payload, rssi, now=now)

    def status(self, *, now: float | None = None) -> DetectionStatus:
        return self._service.status(now)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        return self._service.subscribe(listener)

    def consume_open_request(self) -> str | None:
        return self._service.consume_open_request()

    def open_last_resource(self) -> str | None:
        """URL of the most recently matched beacon, kept across resets."""
        return self._service.last_resource_url()

    def scan(self, *, duration_s: float | None = None) -> None:
        self._service.scan(duration_s=duration_s)
