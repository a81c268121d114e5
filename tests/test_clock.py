from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from weatheragg.clock import LamportClock


def test_tick_increments_from_zero() -> None:
    clock = LamportClock()
    assert clock.value == 0
    assert clock.tick() == 1
    assert clock.tick() == 2
    assert clock.value == 2


def test_observe_jumps_past_higher_remote() -> None:
    clock = LamportClock()
    clock.tick()
    assert clock.observe(10) == 11


def test_observe_lower_remote_still_advances() -> None:
    clock = LamportClock(initial=20)
    assert clock.observe(3) == 21


def test_received_value_strictly_exceeds_sender() -> None:
    sender = LamportClock()
    receiver = LamportClock()
    for _ in range(5):
        sender.tick()
    advertised = sender.tick()
    assert receiver.observe(advertised) > advertised


def test_negative_remote_is_treated_as_zero() -> None:
    clock = LamportClock()
    assert clock.observe(-5) == 1


def test_negative_initial_rejected() -> None:
    with pytest.raises(ValueError):
        LamportClock(initial=-1)


def test_concurrent_ticks_are_unique() -> None:
    clock = LamportClock()
    with ThreadPoolExecutor(max_workers=8) as pool:
        values = list(pool.map(lambda _: clock.tick(), range(500)))
    assert len(set(values)) == 500
    assert clock.value == 500
