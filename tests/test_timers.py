import socket
import time

import pytest

from tcpkit.timers import TimerQueue


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_ids_increase():
    timers = TimerQueue(FakeClock())
    first = timers.timeout(print, None, 100)
    second = timers.timeout(print, None, 100)
    assert first == 1
    assert second == first + 1


def test_run_expired_in_order():
    clock = FakeClock()
    timers = TimerQueue(clock)
    fired = []
    timers.timeout(fired.append, "late", 300)
    timers.timeout(fired.append, "early", 100)
    timers.timeout(fired.append, "middle", 200)
    clock.now = 0.25
    assert timers.run_expired() == 2
    assert fired == ["early", "middle"]
    assert len(timers) == 1


def test_equal_times_fire_in_insertion_order():
    clock = FakeClock()
    timers = TimerQueue(clock)
    fired = []
    timers.timeout(fired.append, "a", 50)
    timers.timeout(fired.append, "b", 50)
    clock.now = 1.0
    timers.run_expired()
    assert fired == ["a", "b"]


def test_nothing_expired_yet():
    clock = FakeClock()
    timers = TimerQueue(clock)
    fired = []
    timers.timeout(fired.append, "x", 500)
    clock.now = 0.1
    assert timers.run_expired() == 0
    assert fired == []


def test_untimeout_cancels():
    clock = FakeClock()
    timers = TimerQueue(clock)
    fired = []
    keep = timers.timeout(fired.append, "keep", 10)
    drop = timers.timeout(fired.append, "drop", 10)
    timers.untimeout(drop)
    clock.now = 1.0
    timers.run_expired()
    assert fired == ["keep"]
    with pytest.raises(KeyError):
        timers.untimeout(keep)


def test_untimeout_unknown_id():
    timers = TimerQueue(FakeClock())
    with pytest.raises(KeyError):
        timers.untimeout(42)


def test_callback_can_rearm():
    clock = FakeClock()
    timers = TimerQueue(clock)
    fired = []

    def again(arg):
        fired.append(arg)
        if arg < 2:
            timers.timeout(again, arg + 1, 100)

    timers.timeout(again, 0, 100)
    counts = []
    for step in range(1, 4):
        clock.now = step * 0.1 + 0.001
        counts.append(timers.run_expired())
    assert counts == [1, 1, 1]
    assert fired == [0, 1, 2]
    assert len(timers) == 0


def test_tselect_without_fds_runs_timers():
    timers = TimerQueue()
    fired = []
    timers.timeout(fired.append, "done", 10)
    start = time.monotonic()
    assert timers.tselect() == ([], [], [])
    assert fired == ["done"]
    assert time.monotonic() - start >= 0.009


def test_tselect_returns_ready_socket():
    a, b = socket.socketpair()
    with a, b:
        a.sendall(b"x")
        timers = TimerQueue()
        readable, writable, errors = timers.tselect([b], [], [])
        assert readable == [b]
        assert writable == [] and errors == []


def test_tselect_fires_timer_before_data():
    a, b = socket.socketpair()
    with a, b:
        timers = TimerQueue()
        fired = []

        def send_later(sock):
            fired.append(True)
            sock.sendall(b"y")

        timers.timeout(send_later, a, 20)
        readable, _, _ = timers.tselect([b], [], [])
        assert fired == [True]
        assert readable == [b]
        assert b.recv(1) == b"y"