"""Shared plumbing for BGAPI command classes."""

import logging
import struct
from ..exceptions import ProtocolMismatchError
from ..hardware.dispatcher import WILDCARD


class BGAPICommandClass:
    """Base class for one BGAPI command class.

    Subclasses set CLASS_ID and EVENTS, a map from event id to a function
    that decodes an event payload into an immutable event tuple.

    Args:
        connection (BGAPIConnection): The connection used to send commands
            and receive events.
    """

    CLASS_ID = None
    EVENTS = {}

    def __init__(self, connection):
        self._conn = connection
        self._logger = logging.getLogger(__name__)
        self._logger.addHandler(logging.NullHandler())

    def subscribe(self, handler, event_id=WILDCARD):
        """Receive decoded events from this command class.

        With the default WILDCARD event id, all events of the class share
        one ordered queue.
        """

        def _decode_and_call(packet):
            decoder = self.EVENTS.get(packet.cmd)
            if decoder is None:
                self._logger.log(5, "Ignoring unknown event class=%d, cmd=%d", packet.class_, packet.cmd)
                return

            handler(decoder(packet.payload))

        self._conn.register_handler(self.CLASS_ID, event_id, _decode_and_call)

    def _send(self, command_id, payload=b'', response_format=None, timeout=None):
        response = self._conn.send_command_locked(self.CLASS_ID, command_id, payload, timeout)
        if response_format is None:
            return response

        try:
            return struct.unpack_from(response_format, response)
        except struct.error as err:
            raise ProtocolMismatchError("Malformed response from bled112", class_id=self.CLASS_ID,
                                        command_id=command_id, response=response.hex()) from err

    def _post(self, command_id, payload=b''):
        self._conn.post_command_locked(self.CLASS_ID, command_id, payload)

    def _send_result(self, command_id, payload=b'', timeout=None):
        """Send a command whose response is a connection handle and a result code."""

        _conn, result = self._send(command_id, payload, "<BH", timeout)
        return result


def unpack_array(payload, offset):
    """Unpack a length-prefixed uint8array starting at offset."""

    length = payload[offset]
    return bytes(payload[offset + 1:offset + 1 + length])
