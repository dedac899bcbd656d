"""BGAPI attribute client command class and events.

Most attribute client commands start a GATT procedure on the remote device.
The response only says whether the procedure started.  The outcome arrives
later as events, terminated by a ProcedureCompleted event or, for plain
reads, a single AttributeValue event.
"""

from collections import namedtuple
import struct
from ..definitions import CommandClass, AttributeValueType
from ..uuids import compact_uuid, to_uuid, expand_uuid
from .base import BGAPICommandClass, unpack_array

Indicated = namedtuple("Indicated", ["connection", "handle"])
ProcedureCompleted = namedtuple("ProcedureCompleted", ["connection", "result", "handle"])
GroupFound = namedtuple("GroupFound", ["connection", "start", "end", "uuid"])
InformationFound = namedtuple("InformationFound", ["connection", "handle", "uuid"])
AttributeValue = namedtuple("AttributeValue", ["connection", "handle", "type", "value"])
TypeFound = namedtuple("TypeFound", ["connection", "handle", "value"])
ReadMultipleResponse = namedtuple("ReadMultipleResponse", ["connection", "handles"])


def _decode_indicated(payload):
    return Indicated(*struct.unpack_from("<BH", payload))


def _decode_completed(payload):
    return ProcedureCompleted(*struct.unpack_from("<BHH", payload))


def _decode_group(payload):
    conn, start, end = struct.unpack_from("<BHH", payload)
    return GroupFound(conn, start, end, expand_uuid(unpack_array(payload, 5)))


def _decode_information(payload):
    conn, handle = struct.unpack_from("<BH", payload)
    return InformationFound(conn, handle, expand_uuid(unpack_array(payload, 3)))


def _decode_value(payload):
    conn, handle, value_type = struct.unpack_from("<BHB", payload)
    value = unpack_array(payload, 4)

    # Characteristic declarations found by read_by_type
    if value_type == AttributeValueType.READ_BY_TYPE:
        return TypeFound(conn, handle, value)

    return AttributeValue(conn, handle, value_type, value)


def _decode_read_multiple(payload):
    return ReadMultipleResponse(payload[0], unpack_array(payload, 1))


def _pack_array(data):
    data = bytes(data)
    return struct.pack("<B", len(data)) + data


class AttributeClientCommands(BGAPICommandClass):
    """GATT client procedures on a connected peripheral.

    Every method returns the 16-bit result code from the adapter; zero means
    that the procedure started.
    """

    CLASS_ID = CommandClass.ATTRIBUTE_CLIENT

    FIND_BY_TYPE_VALUE = 0
    READ_BY_GROUP_TYPE = 1
    READ_BY_TYPE = 2
    FIND_INFORMATION = 3
    READ_BY_HANDLE = 4
    ATTRIBUTE_WRITE = 5
    WRITE_COMMAND = 6
    INDICATE_CONFIRM = 7
    READ_LONG = 8
    PREPARE_WRITE = 9
    EXECUTE_WRITE = 10
    READ_MULTIPLE = 11

    INDICATED_EVENT = 0
    PROCEDURE_COMPLETED_EVENT = 1
    GROUP_FOUND_EVENT = 2
    FIND_INFORMATION_FOUND_EVENT = 4
    ATTRIBUTE_VALUE_EVENT = 5
    READ_MULTIPLE_RESPONSE_EVENT = 6

    EVENTS = {
        INDICATED_EVENT: _decode_indicated,
        PROCEDURE_COMPLETED_EVENT: _decode_completed,
        GROUP_FOUND_EVENT: _decode_group,
        FIND_INFORMATION_FOUND_EVENT: _decode_information,
        ATTRIBUTE_VALUE_EVENT: _decode_value,
        READ_MULTIPLE_RESPONSE_EVENT: _decode_read_multiple
    }

    def find_by_type_value(self, conn, start, end, uuid, value):
        payload = struct.pack("<BHH", conn, start, end) + compact_uuid(to_uuid(uuid)) + _pack_array(value)
        return self._send_result(self.FIND_BY_TYPE_VALUE, payload)

    def read_by_group_type(self, conn, start, end, uuid):
        """Discover groups, such as primary services, in a handle range."""

        payload = struct.pack("<BHH", conn, start, end) + _pack_array(compact_uuid(to_uuid(uuid)))
        return self._send_result(self.READ_BY_GROUP_TYPE, payload)

    def read_by_type(self, conn, start, end, uuid):
        """Read every attribute of a given type, such as characteristic declarations, in a handle range."""

        payload = struct.pack("<BHH", conn, start, end) + _pack_array(compact_uuid(to_uuid(uuid)))
        return self._send_result(self.READ_BY_TYPE, payload)

    def find_information(self, conn, start, end):
        """List the handle and type of every attribute in a handle range."""

        return self._send_result(self.FIND_INFORMATION, struct.pack("<BHH", conn, start, end))

    def read_by_handle(self, conn, handle):
        return self._send_result(self.READ_BY_HANDLE, struct.pack("<BH", conn, handle))

    def read_long(self, conn, handle):
        """Read an attribute value that may be longer than a single packet."""

        return self._send_result(self.READ_LONG, struct.pack("<BH", conn, handle))

    def read_multiple(self, conn, handles):
        payload = struct.pack("<B", conn) + _pack_array(struct.pack("<%dH" % len(handles), *handles))
        return self._send_result(self.READ_MULTIPLE, payload)

    def attribute_write(self, conn, handle, data):
        """Write an attribute with acknowledgement.  ProcedureCompleted follows."""

        return self._send_result(self.ATTRIBUTE_WRITE, struct.pack("<BH", conn, handle) + _pack_array(data))

    def write_command(self, conn, handle, data):
        """Write an attribute without acknowledgement."""

        return self._send_result(self.WRITE_COMMAND, struct.pack("<BH", conn, handle) + _pack_array(data))

    def indicate_confirm(self, conn):
        """Acknowledge an indication that requested a confirmation."""

        result, = self._send(self.INDICATE_CONFIRM, struct.pack("<B", conn), "<H")
        return result

    def prepare_write(self, conn, handle, offset, data):
        """Queue one fragment of a long write on the remote device."""

        payload = struct.pack("<BHH", conn, handle, offset) + _pack_array(data)
        return self._send_result(self.PREPARE_WRITE, payload)

    def execute_write(self, conn, commit):
        """Commit or cancel every queued prepare_write fragment."""

        return self._send_result(self.EXECUTE_WRITE, struct.pack("<BB", conn, int(bool(commit))))
