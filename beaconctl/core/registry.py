"""Immutable lookup table of the beacons the app reacts to."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from urllib.parse import urlparse

from beaconctl.core.errors import RegistryValidationError
from beaconctl.core.model import BeaconTarget

_ALLOWED_SCHEMES = {"http", "https"}


def validate_url(url: str, *, context: str) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not parsed.netloc:
        raise RegistryValidationError(f"{context} is not a valid http(s) URL: {url!r}")
    return url.strip()


class BeaconRegistry:
    """Case-insensitive exact match on (namespace, instance).

    Construction fails on duplicate identifiers or malformed URLs, so a built
    registry can never return an ambiguous match.
    """

    def __init__(self, targets: Iterable[BeaconTarget]) -> None:
        ordered: list[BeaconTarget] = []
        by_key: dict[tuple[str, str], BeaconTarget] = {}
        for target in targets:
            validate_url(target.url, context=f"Beacon {target.identifier}")
            key = (target.namespace.upper(), target.instance.upper())
            if key in by_key:
                raise RegistryValidationError(
                    f"Duplicate beacon identifier '{target.identifier}' in registry"
                )
            by_key[key] = target
            ordered.append(target)
        self._targets = tuple(ordered)
        self._by_key = by_key

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[BeaconTarget]:
        return iter(self._targets)

    @property
    def targets(self) -> tuple[BeaconTarget, ...]:
        return self._targets

    def lookup(self, namespace: str, instance: str) -> BeaconTarget | None:
        return self._by_key.get((namespace.upper(), instance.upper()))
