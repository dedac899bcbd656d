"""Compact UUIDs allowing 2, 4 and 16 byte UUIDs to be represented in compact form."""

import uuid
import binascii
import struct


_BASE = uuid.UUID("00000000-0000-1000-8000-00805F9B34FB")
_BASE_MASK = (1 << 96) - 1


def expand_uuid(bytes_le: bytes = None, uint16: int = None) -> uuid.UUID:
    """Expand a 2, 4 or 16 byte UUID into a full uuid object.

    The Bluetooth specification allow for compacting UUIDs that have a known
    prefix into shorter versions of either 16 or 32 bits based on how much of
    the prefix matches a single global base UUID.  On the wire every form is
    little endian.
    """

    if bytes_le is None:
        if uint16 is None:
            raise ValueError("One of bytes_le or uint16 must be passed")

        bytes_le = struct.pack("<H", uint16)

    bytes_le = bytes(bytes_le)
    if len(bytes_le) not in (2, 4, 16):
        raise ValueError("Invalid guid length, is not 2, 4 or 16. Data=%s" %
                         binascii.hexlify(bytes_le).decode('utf-8'))

    if len(bytes_le) == 16:
        return uuid.UUID(bytes=bytes_le[::-1])

    short_value = int.from_bytes(bytes_le, 'little')
    return uuid.UUID(int=_BASE.int | (short_value << 96))


def compact_uuid(expanded: uuid.UUID) -> bytes:
    """Represent a 16-byte uuid in its most compacted little endian form."""

    value = expanded.int
    if value & _BASE_MASK != _BASE.int:
        return expanded.bytes[::-1]

    short_value = value >> 96
    if short_value <= 0xFFFF:
        return struct.pack("<H", short_value)

    return struct.pack("<L", short_value)


def short_uuid(expanded: uuid.UUID):
    """Return the 16-bit form of a UUID, or None if it has no 16-bit form."""

    compact = compact_uuid(expanded)
    if len(compact) != 2:
        return None

    return struct.unpack("<H", compact)[0]


def to_uuid(value) -> uuid.UUID:
    """Coerce a 16-bit integer, UUID string or UUID object into a UUID.

    Strings of 4 hex digits, like "2902", are treated as 16-bit UUIDs.
    """

    if isinstance(value, uuid.UUID):
        return value

    if isinstance(value, int):
        return expand_uuid(uint16=value)

    if isinstance(value, str):
        if len(value) == 4:
            return expand_uuid(uint16=int(value, 16))

        return uuid.UUID(value)

    return expand_uuid(bytes(value))
