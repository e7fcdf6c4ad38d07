import pytest

from beaconctl.core.errors import RegistryValidationError
from beaconctl.core.model import BeaconTarget
from beaconctl.core.registry import BeaconRegistry


def _target(instance: str, url: str = "https://example.org/a", namespace: str = "0000000000000000000A") -> BeaconTarget:
    return BeaconTarget(namespace=namespace, instance=instance, url=url)


def test_identifier_is_uppercase_pair() -> None:
    target = _target("00000000000b")
    assert target.identifier == "0000000000000000000A-00000000000B"


def test_lookup_is_case_insensitive() -> None:
    registry = BeaconRegistry([_target("ABCDEF000001")])
    lower = registry.lookup("0000000000000000000a", "abcdef000001")
    upper = registry.lookup("0000000000000000000A", "ABCDEF000001")
    assert lower is not None
    assert lower == upper


def test_lookup_requires_exact_match() -> None:
    registry = BeaconRegistry([_target("ABCDEF000001")])
    assert registry.lookup("0000000000000000000A", "ABCDEF00000") is None
    assert registry.lookup("0000000000000000000B", "ABCDEF000001") is None


def test_duplicate_identifier_rejected() -> None:
    with pytest.raises(RegistryValidationError):
        BeaconRegistry([_target("000000000001"), _target("000000000001", url="https://example.org/b")])


def test_duplicate_identifier_differing_only_in_case_rejected() -> None:
    with pytest.raises(RegistryValidationError):
        BeaconRegistry([_target("00000000000a"), _target("00000000000A")])


@pytest.mark.parametrize("url", ["", "not a url", "ftp://example.org/x", "https://"])
def test_invalid_url_rejected(url: str) -> None:
    with pytest.raises(RegistryValidationError):
        BeaconRegistry([_target("000000000001", url=url)])


def test_registry_preserves_order() -> None:
    targets = [_target("000000000002"), _target("000000000001")]
    registry = BeaconRegistry(targets)
    assert len(registry) == 2
    assert [t.instance for t in registry] == ["000000000002", "000000000001"]
