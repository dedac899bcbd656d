"""Tests of the connection lifecycle and hot-plug handling."""

import pytest
from bled112_central.hardware import BGAPIConnection, ConnectionRegistry, ConnectionState
from bled112_central.commands import BGAPICommands
from bled112_central.exceptions import AwaitingRestoreError, BusyError, NotOpenError, TransportUnavailableError
from util.recorder import wait_until


class ListenerRecorder:
    def __init__(self):
        self.events = []

    def on_detached(self, conn):
        self.events.append(('detached', conn.port))

    def on_restored(self, conn):
        self.events.append(('restored', conn.port))


@pytest.fixture
def conn(serial_factory):
    conn = BGAPIConnection('test', serial_factory=serial_factory, command_timeout=1.0)
    yield conn
    conn.close()


def test_open_and_command(conn, adapter):
    assert conn.state is ConnectionState.CLOSED

    with pytest.raises(NotOpenError):
        conn.send_command(0, 1)

    conn.open()
    assert conn.state is ConnectionState.OPEN

    commands = BGAPICommands(conn)
    commands.system.hello()
    assert commands.system.get_address() == adapter.ADDRESS
    assert commands.system.get_connections() == 3

    info = commands.system.get_info()
    assert (info.major, info.minor, info.patch) == (1, 3, 2)


def test_close_from_any_state(conn):
    conn.close()
    assert conn.state is ConnectionState.CLOSED

    conn.open()
    conn.close()
    assert conn.state is ConnectionState.CLOSED

    with pytest.raises(NotOpenError):
        conn.send_command(0, 1)


def test_detach_and_reattach(conn, serial_factory):
    """Unplugging fails commands with AwaitingRestoreError until the adapter returns."""

    listener = ListenerRecorder()
    conn.add_listener(listener.on_detached, listener.on_restored)
    conn.open()

    serial_factory.ports[-1].unplug()
    assert wait_until(lambda: listener.events == [('detached', 'test')])
    assert conn.state is ConnectionState.AWAITING_RESTORE

    with pytest.raises(AwaitingRestoreError):
        conn.send_command(0, 1)

    # Opening again is not allowed, it must be reattached
    with pytest.raises(AwaitingRestoreError):
        conn.open()

    conn.reattach('test2')
    assert conn.state is ConnectionState.OPEN
    assert conn.port == 'test2'
    assert listener.events == [('detached', 'test'), ('restored', 'test2')]
    assert len(serial_factory.ports) == 2

    BGAPICommands(conn).system.hello()


def test_reattach_requires_detached(conn):
    conn.open()

    with pytest.raises(TransportUnavailableError):
        conn.reattach()


def test_registry_reuses_connection(registry):
    conn1 = registry.open('test')
    conn2 = registry.open('test')

    assert conn1 is conn2
    assert registry.connections == [conn1]


def test_registry_reattach_by_port(registry, serial_factory):
    conn = registry.open('COM3')

    assert registry.detach('COM3') is conn
    assert conn.state is ConnectionState.AWAITING_RESTORE

    assert registry.reattach('COM4') is None
    assert registry.reattach('COM3') is conn
    assert conn.state is ConnectionState.OPEN


def test_registry_reattach_by_serial_number(registry):
    """A known serial number wins over the port name, which can change across re-enumeration."""

    conn = registry.open('COM3', 'SN1')
    registry.detach(serial_number='SN1')

    assert registry.reattach('COM3', 'SN2') is None
    assert registry.reattach('COM9', 'SN1') is conn
    assert conn.port == 'COM9'
    assert conn.identity == 'SN1'


def test_registry_open_reattaches(registry):
    conn = registry.open('COM3')
    registry.detach('COM3')

    assert registry.open('COM3') is conn
    assert conn.state is ConnectionState.OPEN


def test_registry_shutdown(registry):
    conn = registry.open('COM3')
    registry.shutdown()

    assert conn.state is ConnectionState.CLOSED
    assert registry.connections == []


def test_single_owner(conn):
    first, second = object(), object()

    conn.open()
    conn.claim(first)
    conn.claim(first)
    assert conn.owner is first

    with pytest.raises(BusyError):
        conn.claim(second)

    # Closing releases the claim
    conn.close()
    assert conn.owner is None
    conn.claim(second)
