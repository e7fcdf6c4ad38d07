"""RSSI to distance estimate using a log-distance path-loss curve."""

from __future__ import annotations

DEFAULT_MEASURED_POWER = -59
UNKNOWN_DISTANCE = -1.0


def estimate_distance(rssi: int, measured_power: int = DEFAULT_MEASURED_POWER) -> float:
    """Return the estimated distance in meters, or ``UNKNOWN_DISTANCE``.

    ``measured_power`` is the expected RSSI at one meter. An RSSI of 0 means
    the radio reported no reading.
    """
    if rssi == 0:
        return UNKNOWN_DISTANCE

    ratio = rssi / measured_power
    if ratio < 1.0:
        return ratio**10
    return 0.89976 * ratio**7.7095 + 0.111


def format_distance(distance: float) -> str:
    if distance < 0:
        return "Unknown"
    if distance < 1:
        return f"{distance:.2f} m (Immediate)"
    if distance < 5:
        return f"{distance:.2f} m (Near)"
    return f"{distance:.2f} m (Far)"
