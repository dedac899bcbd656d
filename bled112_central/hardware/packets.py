"""Internal packet classes and header codec for BGAPI packets.

Every BGAPI packet starts with a 4 byte header::

    byte0: bit7 = 1 event / 0 command-response
           bit3 = 1 alternate technology (wifi) / 0 bluetooth
           bits2..0 = length high bits
    byte1: length low byte
    byte2: class id
    byte3: command or event id

followed by up to 2047 bytes of payload.
"""

from collections import namedtuple
import struct
from ..definitions import MAX_PAYLOAD_LENGTH
from ..exceptions import PayloadTooLargeError

HEADER_LENGTH = 4

_EVENT_FLAG = 0x80
_WIFI_FLAG = 0x08
_LENGTH_HIGH_MASK = 0x07


PacketHeader = namedtuple("PacketHeader", ["is_event", "is_bluetooth", "class_id", "command_id", "payload_length"])


def encode_header(header: PacketHeader) -> bytes:
    """Serialize a PacketHeader into its 4 byte wire format."""

    if header.payload_length < 0 or header.payload_length > MAX_PAYLOAD_LENGTH:
        raise PayloadTooLargeError("BGAPI payload length does not fit in 11 bits",
                                   length=header.payload_length, max_length=MAX_PAYLOAD_LENGTH)

    flags = (header.payload_length >> 8) & _LENGTH_HIGH_MASK
    if header.is_event:
        flags |= _EVENT_FLAG
    if not header.is_bluetooth:
        flags |= _WIFI_FLAG

    return struct.pack("<BBBB", flags, header.payload_length & 0xFF, header.class_id, header.command_id)


def decode_header(data) -> PacketHeader:
    """Parse the first 4 bytes of data into a PacketHeader."""

    flags, length_low, class_id, command_id = struct.unpack_from("<BBBB", data)

    length = ((flags & _LENGTH_HIGH_MASK) << 8) | length_low
    return PacketHeader(bool(flags & _EVENT_FLAG), not bool(flags & _WIFI_FLAG), class_id, command_id, length)


def build_command(class_id, command_id, payload=b'') -> bytes:
    """Build a complete command packet ready to be written to the adapter."""

    payload = bytes(payload)
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise PayloadTooLargeError("Attempting to send a BGAPI packet with length > %d is not allowed" % MAX_PAYLOAD_LENGTH,
                                   actual_length=len(payload), command=command_id, command_class=class_id)

    header = PacketHeader(False, True, class_id, command_id, len(payload))
    return encode_header(header) + payload


def build_event(class_id, event_id, payload=b'') -> bytes:
    """Build a complete event packet, as the adapter would send it."""

    payload = bytes(payload)
    return encode_header(PacketHeader(True, True, class_id, event_id, len(payload))) + payload


class BGAPIPacket:
    """A complete packet received from the adapter."""

    __slots__ = ['header', 'class_', 'cmd', 'event', 'payload', 'conn', 'type']

    # Events whose first payload byte is a connection handle
    _CONN_EVENTS = frozenset([
        (4, 0), (4, 1), (4, 2), (4, 4), (4, 5), (4, 6), (3, 0), (3, 1), (3, 2), (3, 4)
    ])

    def __init__(self, header: PacketHeader, payload: bytes):
        self.header = header
        self.class_ = header.class_id
        self.cmd = header.command_id
        self.event = header.is_event
        self.payload = payload
        self.type = (self.class_, self.cmd)

        if self.event and self.type in self._CONN_EVENTS and len(payload) > 0:
            self.conn = payload[0]
        else:
            self.conn = None

    def __repr__(self):
        return "BGAPIPacket(class=%d, cmd=%d, event=%s, payload=%s)" % (self.class_, self.cmd, self.event,
                                                                      self.payload.hex())


class HardwareFailurePacket:
    """Special packet to indicate a hardware failure."""

    def __init__(self, exception):
        self.class_ = 0xff
        self.cmd = 0xff
        self.event = False
        self.exception = exception


def create_packet(header: PacketHeader, payload: bytes) -> BGAPIPacket:
    """Build a packet object from a decoded header and its payload."""

    return BGAPIPacket(header, bytes(payload))


class PacketFramer:
    """Incrementally split a byte stream into BGAPI packets.

    Data can be fed in arbitrarily sized pieces.  Partial headers and
    payloads are buffered until the complete packet is available.  Packets
    belonging to the alternate technology domain are consumed so that
    framing stays in sync but they are never returned.
    """

    def __init__(self):
        self._buffer = bytearray()
        self.discarded = 0

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def bytes_needed(self) -> int:
        """The number of bytes needed to finish the current header or packet."""

        if len(self._buffer) < HEADER_LENGTH:
            return HEADER_LENGTH - len(self._buffer)

        header = decode_header(self._buffer)
        return HEADER_LENGTH + header.payload_length - len(self._buffer)

    def feed(self, data):
        """Add data to the stream and return every packet it completed."""

        self._buffer += data

        packets = []
        while len(self._buffer) >= HEADER_LENGTH:
            header = decode_header(self._buffer)
            total_length = HEADER_LENGTH + header.payload_length
            if len(self._buffer) < total_length:
                break

            payload = bytes(self._buffer[HEADER_LENGTH:total_length])
            del self._buffer[:total_length]

            if not header.is_bluetooth:
                self.discarded += 1
                continue

            packets.append(create_packet(header, payload))

        return packets

    def reset(self):
        """Throw away any partially received packet."""

        self._buffer = bytearray()
