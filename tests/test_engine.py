from __future__ import annotations

import threading

import pytest

from beaconctl.core.engine import DetectionEngine
from beaconctl.core.errors import EngineConfigError
from beaconctl.core.frame_decoder import decode
from beaconctl.core.model import AdapterState, BeaconTarget, DecodedFrame, DetectionStatus, EngineAction, FrameKind
from beaconctl.core.registry import BeaconRegistry

NAMESPACE = "00000000000000000001"
SHOTGUN_HOUSE_URL = "https://touroldalabamatown.com/living-block/shotgun-house"
POLE_BARN_URL = "https://touroldalabamatown.com/living-block/pole-barn"


def _uid_payload(namespace: str, instance: str) -> bytes:
    return bytes([0x00, 0xEE]) + bytes.fromhex(namespace) + bytes.fromhex(instance)


def _frame(instance: str, namespace: str = NAMESPACE) -> DecodedFrame:
    return decode(_uid_payload(namespace, instance))


def _engine() -> DetectionEngine:
    registry = BeaconRegistry(
        [
            BeaconTarget(namespace=NAMESPACE, instance="000000000004", url=SHOTGUN_HOUSE_URL),
            BeaconTarget(namespace=NAMESPACE, instance="000000000001", url=POLE_BARN_URL),
        ]
    )
    return DetectionEngine(registry, clock=lambda: 0.0)


def test_initial_state_is_idle() -> None:
    status = _engine().status(now=0.0)
    assert status.is_detected is False
    assert status.current_identifier is None
    assert status.resource_url is None
    assert status.frame_kind_label == "Unknown"
    assert status.status_text == "Scanning for Eddystone beacons..."


def test_first_match_transitions_to_detected() -> None:
    engine = _engine()

    action = engine.observe(_frame("000000000004"), -59, now=0.0)

    assert action is EngineAction.NEW_BEACON_FIRST_SEEN
    status = engine.status(now=0.0)
    assert status.is_detected is True
    assert status.current_identifier == f"{NAMESPACE}-000000000004"
    assert status.frame_kind_label == "Eddystone-UID"
    assert status.namespace == NAMESPACE
    assert status.instance == "000000000004"
    assert status.rssi == -59
    assert status.distance_label == "1.01 m (Near)"
    assert status.resource_url == SHOTGUN_HOUSE_URL
    assert status.open_requested is True
    assert status.status_text == "Historic Site Detected!"
    assert engine.deadline == pytest.approx(5.0)


def test_repeat_sighting_updates_existing_and_extends_deadline() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)

    action = engine.observe(_frame("000000000004"), -70, now=2.0)

    assert action is EngineAction.UPDATED_EXISTING
    assert len(engine.opened_identifiers) == 1
    assert engine.deadline == pytest.approx(7.0)
    assert engine.status(now=6.0).is_detected is True
    assert engine.status(now=6.0).rssi == -70


def test_reset_after_quiet_window_preserves_resource_url() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)
    engine.observe(_frame("000000000004"), -59, now=2.0)

    assert engine.expire(now=6.9) is False
    assert engine.expire(now=7.0) is True

    status = engine.status(now=7.0)
    assert status.is_detected is False
    assert status.current_identifier is None
    assert status.namespace == ""
    assert status.instance == ""
    assert status.rssi == 0
    assert status.distance_label == "Unknown"
    assert status.frame_kind_label == "Unknown"
    assert status.resource_url == SHOTGUN_HOUSE_URL
    assert engine.deadline is None


def test_status_read_applies_elapsed_deadline() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)
    assert engine.status(now=5.0).is_detected is False


def test_switching_beacons_overwrites_display_fields() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)
    engine.consume_open_request()

    action = engine.observe(_frame("000000000001"), -80, now=1.0)

    assert action is EngineAction.NEW_BEACON_FIRST_SEEN
    status = engine.status(now=1.0)
    assert status.current_identifier == f"{NAMESPACE}-000000000001"
    assert status.instance == "000000000001"
    assert status.rssi == -80
    assert status.distance_label.endswith("(Far)")
    assert status.resource_url == POLE_BARN_URL


def test_returning_to_opened_beacon_does_not_retrigger() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)
    engine.observe(_frame("000000000001"), -59, now=1.0)
    engine.consume_open_request()

    action = engine.observe(_frame("000000000004"), -59, now=2.0)

    assert action is EngineAction.UPDATED_EXISTING
    assert engine.status(now=2.0).current_identifier == f"{NAMESPACE}-000000000004"
    assert engine.status(now=2.0).open_requested is False


def test_sighting_after_reset_does_not_retrigger() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)
    engine.consume_open_request()
    engine.expire(now=10.0)

    action = engine.observe(_frame("000000000004"), -59, now=11.0)

    assert action is EngineAction.UPDATED_EXISTING
    assert engine.status(now=11.0).is_detected is True


def test_unregistered_and_non_uid_frames_leave_state_unchanged() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)
    before = engine.status(now=1.0)

    assert engine.observe(_frame("0000000000FF"), -40, now=1.0) is EngineAction.NO_MATCH
    assert engine.observe(DecodedFrame(kind=FrameKind.TLM), -40, now=1.0) is EngineAction.NO_MATCH
    assert engine.observe(decode(b"\x00\x01"), -40, now=1.0) is EngineAction.NO_MATCH

    assert engine.status(now=1.0) == before
    assert engine.deadline == pytest.approx(5.0)


def test_consume_open_request_is_one_shot() -> None:
    engine = _engine()
    engine.observe(_frame("000000000004"), -59, now=0.0)

    assert engine.consume_open_request() == SHOTGUN_HOUSE_URL
    assert engine.consume_open_request() is None
    assert engine.status(now=0.0).open_requested is False


def test_opened_identifiers_never_shrink() -> None:
    engine = _engine()
    sizes = []
    sequence = [
        ("000000000004", 0.0),
        ("0000000000FF", 1.0),
        ("000000000001", 2.0),
        ("000000000004", 3.0),
        ("000000000001", 20.0),
    ]
    for instance, now in sequence:
        engine.observe(_frame(instance), -60, now=now)
        engine.expire(now=now)
        sizes.append(len(engine.opened_identifiers))

    assert sizes == sorted(sizes)
    assert sizes[-1] == 2


def test_listeners_receive_snapshots_and_can_unsubscribe() -> None:
    engine = _engine()
    seen: list[DetectionStatus] = []
    unsubscribe = engine.subscribe(seen.append)

    engine.observe(_frame("000000000004"), -59, now=0.0)
    engine.expire(now=5.0)
    unsubscribe()
    engine.observe(_frame("000000000004"), -59, now=6.0)

    assert [s.is_detected for s in seen] == [True, False]


def test_adapter_state_updates_status_text() -> None:
    engine = _engine()

    engine.set_adapter_state(AdapterState.POWERED_OFF)
    status = engine.status(now=0.0)
    assert status.bluetooth_on is False
    assert status.status_text == "Bluetooth is off"

    engine.set_adapter_state(AdapterState.POWERED_ON)
    assert engine.status(now=0.0).status_text == "Scanning for Eddystone beacons..."


def test_concurrent_observations_never_mix_beacons() -> None:
    engine = _engine()
    frames = {
        "000000000004": (_frame("000000000004"), SHOTGUN_HOUSE_URL),
        "000000000001": (_frame("000000000001"), POLE_BARN_URL),
    }
    mismatches: list[DetectionStatus] = []

    def _check(status: DetectionStatus) -> None:
        if status.is_detected:
            _, url = frames[status.instance]
            if status.resource_url != url or not status.current_identifier.endswith(status.instance):
                mismatches.append(status)

    engine.subscribe(_check)

    def _worker(instance: str) -> None:
        frame, _ = frames[instance]
        for _ in range(200):
            engine.observe(frame, -60, now=0.0)

    threads = [threading.Thread(target=_worker, args=(instance,)) for instance in frames]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert mismatches == []
    assert len(engine.opened_identifiers) == 2


@pytest.mark.parametrize("kwargs", [{"debounce_s": 0}, {"debounce_s": -1.0}, {"measured_power": 0}])
def test_out_of_range_tunables_rejected(kwargs: dict) -> None:
    with pytest.raises(EngineConfigError):
        DetectionEngine(BeaconRegistry([]), **kwargs)


def test_listeners_see_changes_in_order_when_one_consumes_the_pulse() -> None:
    engine = _engine()
    consumed: list[str | None] = []
    seen: list[DetectionStatus] = []
    engine.subscribe(lambda status: consumed.append(engine.consume_open_request()) if status.open_requested else None)
    engine.subscribe(seen.append)

    engine.observe(_frame("000000000004"), -59, now=0.0)

    assert consumed == [SHOTGUN_HOUSE_URL]
    assert [s.open_requested for s in seen] == [True, False]
    assert seen[-1] == engine.status(now=0.0)


def test_failing_listener_does_not_break_engine_or_other_listeners(caplog: pytest.LogCaptureFixture) -> None:
    engine = _engine()
    seen: list[DetectionStatus] = []

    def _broken(status: DetectionStatus) -> None:
        raise RuntimeError("display went away")

    engine.subscribe(_broken)
    engine.subscribe(seen.append)

    action = engine.observe(_frame("000000000004"), -59, now=0.0)
    assert engine.expire(now=5.0) is True

    assert action is EngineAction.NEW_BEACON_FIRST_SEEN
    assert [s.is_detected for s in seen] == [True, False]
    assert "Status listener" in caplog.text


def test_observations_racing_expiry_keep_state_consistent() -> None:
    engine = _engine()
    engine.debounce_s = 0.5
    frames = [_frame("000000000004"), _frame("000000000001")]
    inconsistent: list[DetectionStatus] = []
    delivered: list[DetectionStatus] = []

    def _check(status: DetectionStatus) -> None:
        delivered.append(status)
        if status.is_detected != (status.current_identifier is not None):
            inconsistent.append(status)
        if not status.is_detected and (status.namespace or status.instance or status.rssi):
            inconsistent.append(status)

    engine.subscribe(_check)

    def _observer(offset: int) -> None:
        for step in range(300):
            engine.observe(frames[(step + offset) % 2], -60, now=step * 0.25)

    def _expirer() -> None:
        for step in range(300):
            engine.expire(now=step * 0.25)
            engine.status(now=step * 0.25)

    threads = [
        threading.Thread(target=_observer, args=(0,)),
        threading.Thread(target=_observer, args=(1,)),
        threading.Thread(target=_expirer),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert inconsistent == []
    assert delivered
    final = engine.status(now=1000.0)
    assert final.is_detected is False
    assert final.current_identifier is None
    assert delivered[-1] == final
