"""BLE advertisement scanning implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from beaconctl.core.engine import DetectionEngine
from beaconctl.core.errors import ScannerError, ScannerUnavailableError
from beaconctl.core.frame_decoder import EDDYSTONE_SERVICE_UUID, decode
from beaconctl.core.model import AdapterState, EngineAction

LOGGER = logging.getLogger(__name__)


def eddystone_service_data(service_data: Mapping[str, bytes] | None) -> bytes | None:
    """Pick the 0xFEAA payload out of an advertisement's service data."""
    if not service_data:
        return None
    for uuid, data in service_data.items():
        normalized = str(uuid).lower()
        if normalized == EDDYSTONE_SERVICE_UUID or normalized in {"feaa", "0000feaa"}:
            return bytes(data)
    return None


class BLEScanTransport:
    """Passive Eddystone scanner built on bleak.

    Every advertisement callback and deadline wake-up runs on the scanner's
    event loop, and the engine serializes them again under its own lock.
    """

    def __init__(self) -> None:
        self._reset_handle: asyncio.TimerHandle | None = None

    def handle_advertisement(
        self,
        engine: DetectionEngine,
        service_data: Mapping[str, bytes] | None,
        rssi: int | None,
        now: float | None = None,
    ) -> EngineAction:
        payload = eddystone_service_data(service_data)
        if payload is None:
            return EngineAction.NO_MATCH
        return engine.observe(decode(payload), rssi or 0, now=now)

    def scan(self, engine: DetectionEngine, *, duration_s: float | None = None) -> None:
        try:
            from bleak import BleakScanner  # type: ignore
            from bleak.exc import BleakError  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            engine.set_adapter_state(AdapterState.UNSUPPORTED)
            raise ScannerUnavailableError(
                "BLE scanning requires 'bleak'. Install dependency and retry."
            ) from exc

        async def _run() -> None:
            loop = asyncio.get_running_loop()

            def _detection_callback(device: Any, adv: Any) -> None:
                action = self.handle_advertisement(engine, adv.service_data, adv.rssi)
                if action is not EngineAction.NO_MATCH:
                    LOGGER.debug("Eddystone match from %s: %s", device.address, action.value)
                    self._arm_reset(loop, engine)

            scanner = BleakScanner(
                detection_callback=_detection_callback,
                service_uuids=[EDDYSTONE_SERVICE_UUID],
            )
            try:
                await scanner.start()
            except BleakError as exc:
                engine.set_adapter_state(AdapterState.POWERED_OFF)
                raise ScannerUnavailableError(f"Could not start BLE scan: {exc}") from exc

            engine.set_adapter_state(AdapterState.POWERED_ON)
            try:
                if duration_s is None:
                    await asyncio.Event().wait()
                else:
                    await asyncio.sleep(duration_s)
            finally:
                if self._reset_handle is not None:
                    self._reset_handle.cancel()
                    self._reset_handle = None
                await scanner.stop()

        try:
            asyncio.run(_run())
        except ScannerError:
            raise
        except Exception as exc:
            raise ScannerError(f"BLE scan failed: {exc}") from exc

    def _arm_reset(self, loop: asyncio.AbstractEventLoop, engine: DetectionEngine) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        delay = engine.time_until_reset()
        if delay is not None:
            self._reset_handle = loop.call_later(delay, self._on_deadline, loop, engine)

    def _on_deadline(self, loop: asyncio.AbstractEventLoop, engine: DetectionEngine) -> None:
        self._reset_handle = None
        # Timer handles may run slightly before the engine's deadline.
        if not engine.expire():
            self._arm_reset(loop, engine)
