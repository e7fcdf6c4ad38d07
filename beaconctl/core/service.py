"""Service layer used by CLI and API frontends."""

from __future__ import annotations

import importlib.util
import time
from collections.abc import Callable

from beaconctl.core.distance import DEFAULT_MEASURED_POWER
from beaconctl.core.engine import DEFAULT_DEBOUNCE_S, DetectionEngine, StatusListener
from beaconctl.core.frame_decoder import decode, decode_hex
from beaconctl.core.model import BeaconTarget, DecodedFrame, DetectionStatus, EngineAction
from beaconctl.core.registry_loader import load_registry
from beaconctl.transports.base import AdvertisementSource
from beaconctl.transports.ble_scan import BLEScanTransport


class BeaconService:
    def __init__(
        self,
        *,
        source: AdvertisementSource | None = None,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        measured_power: int = DEFAULT_MEASURED_POWER,
        clock: Callable[[], float] = time.monotonic,
        include_user_tables: bool = True,
    ) -> None:
        loaded = load_registry(include_user=include_user_tables)
        self.registry = loaded.registry
        self.load_warnings = loaded.warnings
        self.runtime_warnings = _runtime_warnings()
        self.source = source or BLEScanTransport()
        self.engine = DetectionEngine(
            self.registry,
            debounce_s=debounce_s,
            measured_power=measured_power,
            clock=clock,
        )

    def list_beacons(self) -> list[BeaconTarget]:
        return list(self.registry.targets)

    def lookup(self, namespace: str, instance: str) -> BeaconTarget | None:
        return self.registry.lookup(namespace, instance)

    def decode(self, payload: bytes | str) -> tuple[DecodedFrame, BeaconTarget | None]:
        frame = decode_hex(payload) if isinstance(payload, str) else decode(payload)
        if not frame.is_uid:
            return frame, None
        return frame, self.registry.lookup(frame.namespace, frame.instance)

    def observe(self, payload: bytes, rssi: int, now: float | None = None) -> EngineAction:
        return self.engine.observe(decode(payload), rssi, now=now)

    def status(self, now: float | None = None) -> DetectionStatus:
        return self.engine.status(now)

    def consume_open_request(self) -> str | None:
        return self.engine.consume_open_request()

    def last_resource_url(self) -> str | None:
        return self.engine.status().resource_url

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        return self.engine.subscribe(listener)

    def scan(self, *, duration_s: float | None = None) -> None:
        self.source.scan(self.engine, duration_s=duration_s)


def _runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if importlib.util.find_spec("bleak") is None:
        warnings.append("Python package 'bleak' is not installed; the scan command will fail.")
    return tuple(warnings)
