"""Synchronous request/response primitive for BGAPI commands.

The BGAPI protocol forbids overlapping commands: the response to a command
is always the next command/response packet sent by the adapter.  The
channel therefore allows exactly one command in flight and fails any
other attempt immediately with BusyError.
"""

import logging
import threading
from serial import SerialException
from ..exceptions import (BusyError, TimeoutExpiredError, ProtocolMismatchError, NotOpenError,
                          TransportUnavailableError)
from .packets import build_command


class _PendingCommand:
    __slots__ = ['class_id', 'command_id', 'response', 'error', 'done']

    def __init__(self, class_id, command_id):
        self.class_id = class_id
        self.command_id = command_id
        self.response = None
        self.error = None
        self.done = False


class CommandChannel:
    """Send one command at a time and block until its response arrives.

    Args:
        write_func (callable): Function that writes a complete packet to the
            transport.
        timeout (float): The default number of seconds to wait for a response.
    """

    def __init__(self, write_func, timeout=10.0):
        self.timeout = timeout

        self._write = write_func
        self._cond = threading.Condition()
        self._pending = None
        self._unavailable = (NotOpenError, "Connection to bled112 is not open")

        self._logger = logging.getLogger(__name__)
        self._logger.addHandler(logging.NullHandler())

    @property
    def in_flight(self):
        with self._cond:
            return self._pending is not None

    def mark_open(self):
        """Allow commands to be sent."""

        with self._cond:
            self._unavailable = None

    def mark_unavailable(self, exc_class, message):
        """Refuse new commands and fail the one in flight, if any.

        Both the in-flight command and every later send() raise exc_class
        until mark_open() is called again.
        """

        with self._cond:
            self._unavailable = (exc_class, message)

            if self._pending is not None and not self._pending.done:
                self._pending.error = exc_class(message, class_id=self._pending.class_id,
                                                command_id=self._pending.command_id)
                self._pending.done = True
                self._cond.notify_all()

    def send(self, class_id, command_id, payload=b'', timeout=None) -> bytes:
        """Send a command and return the payload of its response.

        Args:
            class_id (int): The command class.
            command_id (int): The command id inside its class.
            payload (bytes): The command payload.
            timeout (float): Override the default response timeout.

        Raises:
            PayloadTooLargeError: The payload does not fit in a single packet.
            BusyError: Another command is already in flight.
            NotOpenError: The connection is not open.
            AwaitingRestoreError: The adapter is detached or was detached
                while waiting for the response.
            TimeoutExpiredError: No response arrived in time.
            ProtocolMismatchError: The response was for a different command.
        """

        if timeout is None:
            timeout = self.timeout

        packet = build_command(class_id, command_id, payload)

        with self._cond:
            if self._unavailable is not None:
                exc_class, message = self._unavailable
                raise exc_class(message, class_id=class_id, command_id=command_id)

            if self._pending is not None:
                raise BusyError("Another command is already in flight", class_id=class_id, command_id=command_id,
                                pending_class=self._pending.class_id, pending_command=self._pending.command_id)

            pending = _PendingCommand(class_id, command_id)
            self._pending = pending

        try:
            try:
                self._write(packet)
            except SerialException as err:
                raise TransportUnavailableError("Hardware failure writing command to bled112",
                                                class_id=class_id, command_id=command_id) from err

            with self._cond:
                finished = self._cond.wait_for(lambda: pending.done, timeout)
        finally:
            with self._cond:
                if self._pending is pending:
                    self._pending = None

        if not finished:
            raise TimeoutExpiredError("Timeout waiting for response from bled112", class_id=class_id,
                                      command_id=command_id, timeout=timeout)

        if pending.error is not None:
            raise pending.error

        return pending.response

    def post(self, class_id, command_id, payload=b''):
        """Send a command that the adapter never answers, such as a reset.

        The same availability and Busy checks as send() apply but nothing
        is left pending once the packet is written.
        """

        packet = build_command(class_id, command_id, payload)

        with self._cond:
            if self._unavailable is not None:
                exc_class, message = self._unavailable
                raise exc_class(message, class_id=class_id, command_id=command_id)

            if self._pending is not None:
                raise BusyError("Another command is already in flight", class_id=class_id, command_id=command_id,
                                pending_class=self._pending.class_id, pending_command=self._pending.command_id)

        try:
            self._write(packet)
        except SerialException as err:
            raise TransportUnavailableError("Hardware failure writing command to bled112",
                                            class_id=class_id, command_id=command_id) from err

    def process_response(self, packet):
        """Match a command/response packet against the command in flight.

        This is called from the reader thread for every non-event packet.
        """

        with self._cond:
            pending = self._pending
            if pending is None or pending.done:
                self._logger.warning("Dropping unexpected response with no command in flight, class=%d, cmd=%d",
                                     packet.class_, packet.cmd)
                return

            if (packet.class_, packet.cmd) != (pending.class_id, pending.command_id):
                pending.error = ProtocolMismatchError("Response did not match the command in flight",
                                                      class_id=pending.class_id, command_id=pending.command_id,
                                                      response_class=packet.class_, response_command=packet.cmd)
            else:
                pending.response = packet.payload

            pending.done = True
            self._cond.notify_all()
