"""Core data models used across registry, engine, scanner, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FrameKind(str, Enum):
    UID = "UID"
    URL = "URL"
    TLM = "TLM"
    EID = "EID"
    UNKNOWN = "Unknown"


class EngineAction(str, Enum):
    NO_MATCH = "no_match"
    UPDATED_EXISTING = "updated_existing"
    NEW_BEACON_FIRST_SEEN = "new_beacon_first_seen"


class AdapterState(str, Enum):
    POWERED_ON = "powered_on"
    POWERED_OFF = "powered_off"
    UNSUPPORTED = "unsupported"
    UNAUTHORIZED = "unauthorized"
    RESETTING = "resetting"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BeaconTarget:
    namespace: str
    instance: str
    url: str
    label: str = ""

    @property
    def identifier(self) -> str:
        return f"{self.namespace}-{self.instance}".upper()


@dataclass(frozen=True)
class DecodedFrame:
    kind: FrameKind
    namespace: str | None = None
    instance: str | None = None

    @property
    def is_uid(self) -> bool:
        return self.kind is FrameKind.UID and self.namespace is not None and self.instance is not None


@dataclass(frozen=True)
class DetectionStatus:
    """Read-only snapshot of what the engine publishes to presentation code."""

    is_detected: bool = False
    status_text: str = ""
    frame_kind_label: str = "Unknown"
    namespace: str = ""
    instance: str = ""
    rssi: int = 0
    distance_label: str = "Unknown"
    resource_url: str | None = None
    open_requested: bool = False
    bluetooth_on: bool = True
    current_identifier: str | None = None
