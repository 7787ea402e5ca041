from __future__ import annotations

import logging
import threading
import time

import pytest

from difftrack.scheduler import PollScheduler


def _wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PollScheduler(0, lambda: None)


def test_ticks_fire_until_stopped() -> None:
    calls: list[float] = []
    scheduler = PollScheduler(0.02, lambda: calls.append(time.monotonic()))

    scheduler.start()
    assert scheduler.is_running
    assert _wait_for(lambda: len(calls) >= 3)
    scheduler.stop()

    assert not scheduler.is_running
    settled = len(calls)
    time.sleep(0.1)
    assert len(calls) == settled


def test_trigger_before_start_is_ignored() -> None:
    scheduler = PollScheduler(10, lambda: None)

    assert not scheduler.trigger()


def test_overlapping_tick_is_skipped() -> None:
    release = threading.Event()
    started = threading.Event()

    def slow_tick() -> None:
        started.set()
        release.wait(timeout=5)

    scheduler = PollScheduler(60, slow_tick)
    scheduler.start()
    try:
        assert scheduler.trigger()
        assert started.wait(timeout=5)
        assert not scheduler.trigger()
        assert scheduler.skipped == 1

        release.set()
        assert _wait_for(scheduler.trigger)
        assert scheduler.ticks == 2
    finally:
        release.set()
        scheduler.stop()


def test_failing_tick_is_logged_and_schedule_continues(caplog: pytest.LogCaptureFixture) -> None:
    calls: list[int] = []

    def broken() -> None:
        calls.append(1)
        raise RuntimeError("boom")

    scheduler = PollScheduler(0.02, broken)
    with caplog.at_level(logging.ERROR, logger="difftrack.scheduler"):
        scheduler.start()
        assert _wait_for(lambda: len(calls) >= 2)
        scheduler.stop()

    assert "Poll tick failed" in caplog.text


def test_stop_from_inside_a_tick_does_not_deadlock() -> None:
    stopped = threading.Event()
    scheduler: PollScheduler

    def stop_self() -> None:
        scheduler.stop()
        stopped.set()

    scheduler = PollScheduler(0.02, stop_self)
    scheduler.start()

    assert stopped.wait(timeout=5)
    assert _wait_for(lambda: not scheduler.is_running)
