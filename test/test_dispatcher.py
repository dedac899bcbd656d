"""Tests of per-key ordered event dispatch."""

import threading
import time
import pytest
from bled112_central.hardware.dispatcher import EventDispatcher, WILDCARD
from bled112_central.hardware.packets import PacketFramer, build_event
from util.recorder import wait_until


def event(class_id, event_id, payload=b''):
    return PacketFramer().feed(build_event(class_id, event_id, payload))[0]


@pytest.fixture
def dispatcher():
    dispatcher = EventDispatcher(max_workers=4)
    dispatcher.start()
    yield dispatcher
    dispatcher.stop()


def test_fifo_per_key(dispatcher):
    """Events under one key are handled in arrival order, one at a time."""

    seen = []
    active = []

    def _handler(packet):
        active.append(1)
        assert len(active) == 1
        time.sleep(0.001)
        seen.append(packet.payload[0])
        active.pop()

    dispatcher.register_handler(6, 0, _handler)

    for i in range(100):
        assert dispatcher.dispatch(event(6, 0, bytes([i])))

    assert wait_until(lambda: len(seen) == 100)
    assert seen == list(range(100))


def test_keys_run_in_parallel(dispatcher):
    """A slow handler on one key does not hold up another key."""

    release = threading.Event()
    fast = threading.Event()

    dispatcher.register_handler(6, 0, lambda packet: release.wait(2.0))
    dispatcher.register_handler(3, 4, lambda packet: fast.set())

    dispatcher.dispatch(event(6, 0))
    dispatcher.dispatch(event(3, 4))

    assert fast.wait(1.0)
    release.set()


def test_exact_match_beats_wildcard(dispatcher):
    exact = []
    wildcard = []

    dispatcher.register_handler(4, 1, exact.append)
    dispatcher.register_handler(4, WILDCARD, wildcard.append)

    dispatcher.dispatch(event(4, 1, b'\x00\x00\x00\x00\x00'))
    dispatcher.dispatch(event(4, 5, b'\x00\x01\x00\x00\x00'))

    assert wait_until(lambda: len(exact) == 1 and len(wildcard) == 1)
    assert exact[0].cmd == 1
    assert wildcard[0].cmd == 5


def test_unhandled_dropped(dispatcher):
    assert dispatcher.dispatch(event(7, 7)) is False


def test_handler_exception_does_not_stop_queue(dispatcher):
    seen = []

    def _handler(packet):
        if packet.payload == b'\x00':
            raise ValueError("bad event")

        seen.append(packet.payload)

    dispatcher.register_handler(6, 0, _handler)
    dispatcher.dispatch(event(6, 0, b'\x00'))
    dispatcher.dispatch(event(6, 0, b'\x01'))

    assert wait_until(lambda: seen == [b'\x01'])


def test_stop_start_keeps_handlers():
    dispatcher = EventDispatcher(max_workers=2)
    seen = []
    dispatcher.register_handler(6, WILDCARD, seen.append)

    assert dispatcher.dispatch(event(6, 0)) is False

    dispatcher.start()
    dispatcher.stop()
    assert not dispatcher.running
    assert dispatcher.dispatch(event(6, 0)) is False

    dispatcher.start()
    try:
        assert dispatcher.dispatch(event(6, 0))
        assert wait_until(lambda: len(seen) == 1)
    finally:
        dispatcher.stop()


def test_call_soon_ordered_and_off_event_queue(dispatcher):
    """Deferred calls run in order on their own key and can wait for later events."""

    seen = []
    got_event = threading.Event()
    dispatcher.register_handler(4, 5, lambda packet: got_event.set())

    def _waiting_call(index):
        if index == 0:
            seen.append(got_event.wait(2.0))
        seen.append(index)

    assert dispatcher.call_soon(("callbacks", 1), _waiting_call, 0)
    assert dispatcher.call_soon(("callbacks", 1), _waiting_call, 1)
    dispatcher.dispatch(event(4, 5))

    assert wait_until(lambda: len(seen) == 3)
    assert seen == [True, 0, 1]


def test_call_soon_dropped_when_stopped():
    dispatcher = EventDispatcher()
    assert dispatcher.call_soon(("callbacks", 1), lambda: None) is False
