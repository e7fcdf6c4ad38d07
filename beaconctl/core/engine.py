"""Beacon matching and debounce engine.

The engine owns a single detection state. Radio observations and deadline
expiry are two event sources that both mutate it, so every mutation runs under
one lock. Every state change enqueues an immutable ``DetectionStatus`` snapshot;
listeners receive them in change order from a single dispatcher, outside the
state lock. A failing listener is logged and does not affect the engine.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import replace

from beaconctl.core.distance import DEFAULT_MEASURED_POWER, estimate_distance, format_distance
from beaconctl.core.errors import EngineConfigError
from beaconctl.core.model import AdapterState, DecodedFrame, DetectionStatus, EngineAction
from beaconctl.core.registry import BeaconRegistry

DEFAULT_DEBOUNCE_S = 5.0
SCANNING_TEXT = "Scanning for Eddystone beacons..."
DETECTED_TEXT = "Historic Site Detected!"

_ADAPTER_TEXT = {
    AdapterState.POWERED_ON: SCANNING_TEXT,
    AdapterState.POWERED_OFF: "Bluetooth is off",
    AdapterState.UNSUPPORTED: "Bluetooth not supported",
    AdapterState.UNAUTHORIZED: "Bluetooth unauthorized",
    AdapterState.RESETTING: "Bluetooth resetting...",
    AdapterState.UNKNOWN: "Bluetooth state unknown",
}

LOGGER = logging.getLogger(__name__)

StatusListener = Callable[[DetectionStatus], None]


class DetectionEngine:
    def __init__(
        self,
        registry: BeaconRegistry,
        *,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        measured_power: int = DEFAULT_MEASURED_POWER,
        clock: Callable[[], float] = time.monotonic,
        scanning_text: str = SCANNING_TEXT,
        detected_text: str = DETECTED_TEXT,
    ) -> None:
        if debounce_s <= 0:
            raise EngineConfigError(f"Debounce window must be positive, got {debounce_s}")
        if measured_power >= 0:
            raise EngineConfigError(f"Measured power must be a negative dBm value, got {measured_power}")
        self.registry = registry
        self.debounce_s = debounce_s
        self.measured_power = measured_power
        self._clock = clock
        self._scanning_text = scanning_text
        self._detected_text = detected_text
        self._lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._pending: deque[DetectionStatus] = deque()
        self._listeners: list[StatusListener] = []
        self._opened: set[str] = set()
        self._deadline: float | None = None
        self._status = DetectionStatus(status_text=scanning_text)

    @property
    def opened_identifiers(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._opened)

    @property
    def deadline(self) -> float | None:
        with self._lock:
            return self._deadline

    def time_until_reset(self, now: float | None = None) -> float | None:
        now = self._now(now)
        with self._lock:
            if self._deadline is None:
                return None
            return max(self._deadline - now, 0.0)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def status(self, now: float | None = None) -> DetectionStatus:
        now = self._now(now)
        with self._lock:
            self._expire_locked(now)
            snapshot = self._status
        self._drain()
        return snapshot

    def observe(self, frame: DecodedFrame, rssi: int, now: float | None = None) -> EngineAction:
        now = self._now(now)
        if not frame.is_uid:
            self.expire(now)
            return EngineAction.NO_MATCH

        target = self.registry.lookup(frame.namespace, frame.instance)
        if target is None:
            self.expire(now)
            return EngineAction.NO_MATCH

        with self._lock:
            self._expire_locked(now)
            identifier = target.identifier
            beacon_changed = self._status.current_identifier != identifier
            action = EngineAction.UPDATED_EXISTING
            open_requested = self._status.open_requested
            current = self._status.current_identifier

            if beacon_changed:
                current = identifier
                if identifier not in self._opened:
                    self._opened.add(identifier)
                    open_requested = True
                    action = EngineAction.NEW_BEACON_FIRST_SEEN

            self._status = replace(
                self._status,
                is_detected=True,
                status_text=self._detected_text,
                frame_kind_label=f"Eddystone-{frame.kind.value}",
                namespace=frame.namespace,
                instance=frame.instance,
                rssi=rssi,
                distance_label=format_distance(estimate_distance(rssi, self.measured_power)),
                resource_url=target.url,
                open_requested=open_requested,
                current_identifier=current,
            )
            self._deadline = now + self.debounce_s
            self._publish_locked()

        if action is EngineAction.NEW_BEACON_FIRST_SEEN:
            LOGGER.info("First sighting of %s (%s) -> %s", identifier, target.label or "unlabelled", target.url)
        else:
            LOGGER.debug("Refreshed %s rssi=%d", identifier, rssi)
        self._drain()
        return action

    def expire(self, now: float | None = None) -> bool:
        """Apply the reset if the debounce deadline has passed.

        Returns True when the engine transitioned back to idle.
        """
        now = self._now(now)
        with self._lock:
            changed = self._expire_locked(now)
        self._drain()
        return changed

    def consume_open_request(self) -> str | None:
        """Return the resource URL if the first-seen pulse is set, clearing it."""
        with self._lock:
            if not self._status.open_requested:
                return None
            self._status = replace(self._status, open_requested=False)
            url = self._status.resource_url
            self._publish_locked()
        self._drain()
        return url

    def set_adapter_state(self, state: AdapterState) -> None:
        LOGGER.info("Bluetooth adapter state: %s", state.value)
        with self._lock:
            powered = state is AdapterState.POWERED_ON
            text = self._status.status_text
            if not (powered and self._status.is_detected):
                text = self._scanning_text if powered else _ADAPTER_TEXT[state]
            self._status = replace(self._status, bluetooth_on=powered, status_text=text)
            self._publish_locked()
        self._drain()

    def _expire_locked(self, now: float) -> bool:
        if self._deadline is None or now < self._deadline:
            return False
        LOGGER.debug("No beacon seen for %.1fs, resetting detection", self.debounce_s)
        self._deadline = None
        # resource_url is kept so a delayed manual open still works.
        self._status = replace(
            self._status,
            is_detected=False,
            status_text=self._scanning_text if self._status.bluetooth_on else self._status.status_text,
            frame_kind_label="Unknown",
            namespace="",
            instance="",
            rssi=0,
            distance_label="Unknown",
            current_identifier=None,
        )
        self._publish_locked()
        return True

    def _publish_locked(self) -> None:
        self._pending.append(self._status)

    def _drain(self) -> None:
        # Single dispatcher: a listener re-entering the engine, or another
        # thread publishing meanwhile, only enqueues; the active drain delivers.
        while True:
            if not self._dispatch_lock.acquire(blocking=False):
                return
            try:
                while True:
                    with self._lock:
                        if not self._pending:
                            break
                        snapshot = self._pending.popleft()
                        listeners = list(self._listeners)
                    for listener in listeners:
                        try:
                            listener(snapshot)
                        except Exception:
                            LOGGER.exception("Status listener %r failed", listener)
            finally:
                self._dispatch_lock.release()
            with self._lock:
                if not self._pending:
                    return

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now
