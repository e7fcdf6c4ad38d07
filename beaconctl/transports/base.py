"""Advertisement source interfaces."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from beaconctl.core.engine import DetectionEngine


class AdvertisementSource(Protocol):
    def scan(self, engine: DetectionEngine, *, duration_s: float | None = None) -> None:
        """Feed Eddystone observations into ``engine`` until done or interrupted."""
