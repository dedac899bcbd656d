"""Ownership of a bled112 serial transport and its lifecycle.

A BGAPIConnection owns the serial port, the packet reader, the command
channel and the event dispatcher for one adapter.  Its lifecycle is::

    CLOSED -> OPEN -> AWAITING_RESTORE (detach) -> OPEN (reattach) -> CLOSED

Detaching happens when the adapter is unplugged or the serial port fails.
Any command in flight fails with AwaitingRestoreError and every registered
listener gets an on_detached notification.  Reattaching reuses the same
connection object, possibly on a different port name, keeps all registered
event handlers and sends an on_restored notification.
"""

from enum import Enum
import logging
import threading
from ..exceptions import AwaitingRestoreError, BusyError, NotOpenError, TransportUnavailableError
from .. import utilities
from .command_channel import CommandChannel
from .dispatcher import EventDispatcher, WILDCARD
from .packet_reader import PacketReader
from .packets import HardwareFailurePacket


class ConnectionState(Enum):
    """Lifecycle states of a BGAPIConnection."""

    CLOSED = "closed"
    OPEN = "open"
    AWAITING_RESTORE = "awaiting_restore"


class BGAPIConnection:
    """A connection to a single bled112 adapter.

    Args:
        port (str): The serial port name of the adapter.
        serial_number (str): The USB serial number of the adapter, if known.
            It is used to recognize the adapter if it comes back under a
            different port name.
        serial_factory (callable): Function taking a port name and returning
            an open file-like serial object.  Defaults to opening a real
            pyserial port.
        command_timeout (float): Default time to wait for a command response.
        dispatch_workers (int): Size of the event dispatch worker pool.
    """

    def __init__(self, port, serial_number=None, *, serial_factory=None, command_timeout=10.0, dispatch_workers=4):
        self.port = port
        self.serial_number = serial_number

        self._logger = logging.getLogger(__name__)
        self._logger.addHandler(logging.NullHandler())

        if serial_factory is None:
            serial_factory = lambda port: utilities.open_bled112(port, self._logger)

        self._serial_factory = serial_factory
        self._serial = None
        self._reader = None
        self._state = ConnectionState.CLOSED
        self._lock = threading.RLock()
        self._cmd_lock = threading.Lock()
        self._listeners = []
        self._owner = None

        self.channel = CommandChannel(self._write, timeout=command_timeout)
        self.dispatcher = EventDispatcher(dispatch_workers)

    @property
    def state(self):
        return self._state

    @property
    def identity(self):
        """The transport identity: the USB serial number if known, else the port."""

        if self.serial_number is not None:
            return self.serial_number

        return self.port

    @property
    def owner(self):
        return self._owner

    def claim(self, owner):
        """Mark owner as the only session allowed to drive this connection.

        Events are delivered to every registered handler, so two sessions
        sharing one adapter would each process every event.  The claim is
        released when the connection is closed.

        Raises:
            BusyError: Another owner already claimed the connection.
        """

        with self._lock:
            if self._owner is not None and self._owner is not owner:
                raise BusyError("bled112 connection is already in use by another session", port=self.port)

            self._owner = owner

    def add_listener(self, on_detached=None, on_restored=None):
        """Register callbacks for detach and restore transitions.

        Each callback is called with this connection as its only argument.
        """

        self._listeners.append((on_detached, on_restored))

    def open(self):
        """Open the serial port and start processing packets."""

        with self._lock:
            if self._state is ConnectionState.OPEN:
                return

            if self._state is ConnectionState.AWAITING_RESTORE:
                raise AwaitingRestoreError("Connection is waiting for its adapter to be restored", port=self.port)

            self._attach()

        self._logger.info("Opened bled112 connection on %s", self.port)

    def close(self):
        """Close the connection from any state."""

        with self._lock:
            previous = self._state
            if previous is ConnectionState.CLOSED:
                return

            self._state = ConnectionState.CLOSED
            self._owner = None
            self.channel.mark_unavailable(NotOpenError, "Connection to bled112 was closed")
            reader, serial = self._reader, self._serial
            self._reader = None
            self._serial = None

        if previous is ConnectionState.OPEN:
            self._release(reader, serial)

        self._logger.info("Closed bled112 connection on %s", self.port)

    def detach(self):
        """Mark the adapter as unplugged and wait for it to be restored."""

        with self._lock:
            if self._state is not ConnectionState.OPEN:
                return

            self._state = ConnectionState.AWAITING_RESTORE
            self.channel.mark_unavailable(AwaitingRestoreError, "bled112 adapter was detached")
            reader, serial = self._reader, self._serial
            self._reader = None
            self._serial = None

        self._release(reader, serial)
        self._logger.warning("bled112 adapter on %s was detached, awaiting restore", self.port)

        for on_detached, _ in list(self._listeners):
            if on_detached is not None:
                on_detached(self)

    def reattach(self, port=None, serial_number=None):
        """Reopen a detached connection, possibly under a new port name."""

        with self._lock:
            if self._state is not ConnectionState.AWAITING_RESTORE:
                raise TransportUnavailableError("Only a detached connection can be reattached",
                                                port=self.port, state=self._state.value)

            if port is not None:
                self.port = port
            if serial_number is not None:
                self.serial_number = serial_number

            self._attach()

        self._logger.info("bled112 adapter restored on %s", self.port)

        for _, on_restored in list(self._listeners):
            if on_restored is not None:
                on_restored(self)

    def send_command(self, class_id, command_id, payload=b'', timeout=None):
        """Send a command and wait for its response, failing with BusyError if one is in flight."""

        return self.channel.send(class_id, command_id, payload, timeout)

    def send_command_locked(self, class_id, command_id, payload=b'', timeout=None):
        """Send a command to the BLED112 dongle.

        There can only be one command active at a time so this is locked with
        a mutex to ensure that callers queue up instead of failing with
        BusyError.
        """

        with self._cmd_lock:
            return self.channel.send(class_id, command_id, payload, timeout)

    def post_command_locked(self, class_id, command_id, payload=b''):
        """Send a command that has no response, queueing behind other callers."""

        with self._cmd_lock:
            self.channel.post(class_id, command_id, payload)

    def register_handler(self, class_id, command_id, handler):
        self.dispatcher.register_handler(class_id, command_id, handler)

    def register_class_handler(self, class_id, handler):
        self.dispatcher.register_handler(class_id, WILDCARD, handler)

    def _attach(self):
        serial = self._serial_factory(self.port)

        self._serial = serial
        self.dispatcher.start()
        self.channel.mark_open()
        self._state = ConnectionState.OPEN
        self._reader = PacketReader(serial, self._on_packet, name="bgapi-reader-%s" % self.port)

    def _release(self, reader, serial):
        if reader is not None:
            reader.stop()

        self.dispatcher.stop()

        if serial is not None:
            try:
                serial.close()
            except (IOError, OSError):
                self._logger.debug("Error closing serial port %s", self.port, exc_info=True)

    def _write(self, data):
        serial = self._serial
        if serial is None:
            raise NotOpenError("Connection to bled112 is not open", port=self.port)

        serial.write(data)

    def _on_packet(self, packet):
        if isinstance(packet, HardwareFailurePacket):
            self._logger.error("Fatal bled112 hardware failure on %s: %s", self.port, packet.exception)
            self.detach()
            return

        if packet.event:
            self.dispatcher.dispatch(packet)
        else:
            self.channel.process_response(packet)


class ConnectionRegistry:
    """Tracks every live connection so a transport is never opened twice.

    The registry is owned by the session root.  Hot-plug notifications from
    the platform are fed in through detach() and reattach().

    Reattach policy: a detached connection is matched by USB serial number
    when both the detached connection and the new port report one.
    Otherwise it is matched by port name.
    """

    def __init__(self, connection_factory=BGAPIConnection, **connection_args):
        self._factory = connection_factory
        self._connection_args = connection_args
        self._connections = []
        self._lock = threading.Lock()

        self._logger = logging.getLogger(__name__)

    @property
    def connections(self):
        with self._lock:
            return list(self._connections)

    def open(self, port, serial_number=None):
        """Open a connection to an adapter or return the one already open.

        If the adapter is known but detached, it is reattached instead.
        """

        with self._lock:
            self._prune()

            conn = self._find_live(port, serial_number)
            if conn is None:
                conn = self._factory(port, serial_number, **self._connection_args)
                conn.open()
                self._connections.append(conn)
                return conn

        if conn.state is ConnectionState.AWAITING_RESTORE:
            conn.reattach(port, serial_number)

        return conn

    def detach(self, port=None, serial_number=None):
        """Report that an adapter was unplugged."""

        with self._lock:
            conn = self._find_live(port, serial_number)

        if conn is None:
            return None

        conn.detach()
        return conn

    def reattach(self, port, serial_number=None):
        """Report that an adapter appeared and restore its connection.

        Returns:
            BGAPIConnection: The restored connection or None if no detached
                connection matched.
        """

        with self._lock:
            waiting = [x for x in self._connections if x.state is ConnectionState.AWAITING_RESTORE]
            conn = _match_connection(waiting, port, serial_number)

        if conn is None:
            self._logger.debug("No detached connection matched port=%s, serial=%s", port, serial_number)
            return None

        conn.reattach(port, serial_number)
        return conn

    def shutdown(self):
        """Close every connection."""

        with self._lock:
            conns = self._connections
            self._connections = []

        for conn in conns:
            conn.close()

    def _prune(self):
        self._connections = [x for x in self._connections if x.state is not ConnectionState.CLOSED]

    def _find_live(self, port, serial_number):
        live = [x for x in self._connections if x.state is not ConnectionState.CLOSED]
        return _match_connection(live, port, serial_number)


def _match_connection(conns, port, serial_number):
    if serial_number is not None:
        for conn in conns:
            if conn.serial_number == serial_number:
                return conn

    for conn in conns:
        if conn.port != port:
            continue

        if serial_number is not None and conn.serial_number is not None:
            continue

        return conn

    return None
