"""Services and characteristics discovered on a connected peripheral.

Services and characteristics only hold GATT metadata plus whatever values
were last read or received.  All I/O is delegated back to the owning
Device, which serializes procedures on the link.
"""

from collections import namedtuple
import logging
import struct
from typing import List, Optional
from uuid import UUID
from sortedcontainers import SortedDict
from .exceptions import CapabilityUnsupportedError, ResourceNotFoundError
from .uuids import expand_uuid, to_uuid

Descriptor = namedtuple("Descriptor", ["handle", "uuid"])


class CharacteristicProperties:
    """Representation of the properties of a Characteristic.

    This convience class holds all of the permitted actions on a characteristic
    and also allows encoding them into their binary value.
    """

    _BITS = ["broadcast", "read", "write_no_response", "write", "notify", "indicate",
             "write_authenticated", "extended"]

    def __init__(self, *, broadcast=False, read=False, write_no_response=False, write=False,
                 notify=False, indicate=False, write_authenticated=False, extended=False):
        self.broadcast = broadcast
        self.read = read
        self.write_no_response = write_no_response
        self.write = write
        self.notify = notify
        self.indicate = indicate
        self.write_authenticated = write_authenticated
        self.extended = extended

    @classmethod
    def from_int(cls, value):
        """Decode the properties byte of a characteristic declaration."""

        flags = {name: bool(value & (1 << i)) for i, name in enumerate(cls._BITS)}
        return cls(**flags)

    @property
    def int_value(self):
        """The uint8 integer representing these permissions.

        This integer is encoded as specified in the bluetooth standard, mapping
        each permission to its designated bit.
        """

        value = 0
        for i, name in enumerate(self._BITS):
            value |= int(getattr(self, name)) << i

        return value

    def __repr__(self):
        enabled = [name for name in self._BITS if getattr(self, name)]
        return "CharacteristicProperties(%s)" % ", ".join(enabled)


def parse_characteristic_declaration(value):
    """Decode the value of a characteristic declaration attribute.

    Returns:
        (CharacteristicProperties, int, UUID): The properties, the handle of
            the value attribute and the characteristic UUID.
    """

    length = len(value)

    if length == 5:
        uuid_len = 2
    elif length == 19:
        uuid_len = 16
    else:
        raise ValueError("Value has improper length for ble characteristic definition, length was %d" % len(value))

    propval, handle, uuid = struct.unpack("<BH%ds" % uuid_len, value)
    return CharacteristicProperties.from_int(propval), handle, expand_uuid(uuid)


class Characteristic:
    """A GATT characteristic on a connected peripheral.

    Args:
        service: The service that contains this characteristic.
        handle: The handle of the characteristic declaration.
        value_handle: The handle of the value attribute.
        uuid: The UUID of the characteristic.
        properties: The operations the characteristic permits.
    """

    def __init__(self, service: 'Service', handle: int, value_handle: int, uuid: UUID,
                 properties: CharacteristicProperties):
        self.service = service
        self.handle = handle
        self.value_handle = value_handle
        self.uuid = uuid
        self.properties = properties

        self.value = None  # type: Optional[bytes]
        self.client_config = 0

        self._fragments = bytearray()
        self._notify_callbacks = []
        self._indicate_callbacks = []
        self._logger = logging.getLogger(__name__)

    @property
    def device(self):
        return self.service.device

    @property
    def descriptors(self) -> List[Descriptor]:
        """The descriptors that follow this characteristic's value attribute."""

        return self.device.descriptors_for(self)

    def read(self):
        self._require("read")
        return self.device.read(self.value_handle)

    def read_long(self):
        self._require("read")
        return self.device.read_long(self.value_handle)

    def write(self, data):
        self._require("write")
        return self.device.write(self.value_handle, data)

    def write_without_response(self, data):
        self._require("write_no_response")
        return self.device.write_without_response(self.value_handle, data)

    def _require(self, prop):
        if not getattr(self.properties, prop):
            raise CapabilityUnsupportedError("Characteristic does not permit %s" % prop.replace('_', ' '),
                                             characteristic=str(self.uuid), properties=self.properties.int_value)

    def subscribe(self, kind="notify", enabled=True):
        return self.device.subscribe(self, kind, enabled)

    def read_description(self):
        return self.device.read_description(self)

    def add_notification_callback(self, callback):
        """Call callback(characteristic, value) for every notification."""

        self._notify_callbacks.append(callback)

    def add_indication_callback(self, callback):
        """Call callback(characteristic, value) for every indication."""

        self._indicate_callbacks.append(callback)

    def value_read(self, value):
        self.value = bytes(value)

    def fragment_received(self, value):
        self._fragments += value

    def take_fragments(self) -> bytes:
        """Return every long read fragment received so far and reset the buffer."""

        data = bytes(self._fragments)
        self._fragments = bytearray()
        self.value = data
        return data

    def notified(self, value):
        self.value = bytes(value)
        self._fire(self._notify_callbacks, value)

    def indicated(self, value):
        self.value = bytes(value)
        self._fire(self._indicate_callbacks, value)

    def _fire(self, callbacks, value):
        for callback in list(callbacks):
            try:
                callback(self, bytes(value))
            except Exception:  #pylint:disable=broad-except;User callbacks must not break event processing
                self._logger.exception("Error in characteristic callback for %s", self.uuid)

    def __repr__(self):
        return "Characteristic(uuid=%s, handle=0x%04X, value_handle=0x%04X, %r)" % (
            self.uuid, self.handle, self.value_handle, self.properties)


class Service:
    """A primary GATT service covering an immutable range of attribute handles."""

    def __init__(self, device, uuid: UUID, start_handle: int, end_handle: int):
        self.device = device
        self.uuid = uuid
        self.start_handle = start_handle
        self.end_handle = end_handle

        self._characteristics = None  # type: Optional[SortedDict]

    def contains(self, handle: int) -> bool:
        return self.start_handle <= handle <= self.end_handle

    @property
    def discovered(self) -> bool:
        return self._characteristics is not None

    @property
    def characteristics(self) -> List[Characteristic]:
        """Every characteristic in this service, discovered on first access."""

        if self._characteristics is None:
            self.device.discover_characteristics(self)

        if self._characteristics is None:
            return []

        return list(self._characteristics.values())

    def find_characteristic(self, uuid) -> Characteristic:
        """Find a characteristic in this service by UUID.

        Raises:
            ResourceNotFoundError: No characteristic with that UUID exists.
        """

        uuid = to_uuid(uuid)
        for char in self.characteristics:
            if char.uuid == uuid:
                return char

        raise ResourceNotFoundError("Characteristic not found in service", uuid=str(uuid), service=str(self.uuid))

    def begin_discovery(self):
        self._characteristics = SortedDict()

    def abandon_discovery(self):
        self._characteristics = None

    def add_characteristic(self, char: Characteristic):
        if self._characteristics is None:
            self._characteristics = SortedDict()

        self._characteristics[char.handle] = char

    def __repr__(self):
        return "Service(uuid=%s, handles=0x%04X-0x%04X)" % (self.uuid, self.start_handle, self.end_handle)
