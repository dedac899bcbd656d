"""BGAPI connection command class and events."""

from collections import namedtuple
import struct
from ..definitions import CommandClass, ConnectionFlags
from ..utilities import format_address
from .base import BGAPICommandClass, unpack_array


class ConnectionStatus(namedtuple("ConnectionStatus", ["connection", "flags", "address", "address_type",
                                                       "interval", "timeout", "latency", "bonding"])):
    """A connection status event."""

    __slots__ = ()

    @property
    def connected(self):
        return bool(self.flags & ConnectionFlags.CONNECTED)

    @property
    def encrypted(self):
        return bool(self.flags & ConnectionFlags.ENCRYPTED)

    @property
    def completed(self):
        return bool(self.flags & ConnectionFlags.COMPLETED)

    @property
    def parameters_changed(self):
        return bool(self.flags & ConnectionFlags.PARAMETERS_CHANGED)


VersionIndication = namedtuple("VersionIndication", ["connection", "version", "company_id", "sub_version"])
FeatureIndication = namedtuple("FeatureIndication", ["connection", "features"])
Disconnected = namedtuple("Disconnected", ["connection", "reason"])


def _decode_status(payload):
    handle, flags, address, address_type, interval, timeout, latency, bonding = \
        struct.unpack_from("<BB6sBHHHB", payload)

    return ConnectionStatus(handle, flags, format_address(address), address_type, interval, timeout, latency, bonding)


def _decode_version(payload):
    return VersionIndication(*struct.unpack_from("<BBHH", payload))


def _decode_features(payload):
    return FeatureIndication(payload[0], unpack_array(payload, 1))


def _decode_disconnected(payload):
    return Disconnected(*struct.unpack_from("<BH", payload))


class ConnectionCommands(BGAPICommandClass):
    """Commands that act on an established BLE link."""

    CLASS_ID = CommandClass.CONNECTION

    DISCONNECT = 0
    GET_RSSI = 1
    UPDATE = 2
    VERSION_UPDATE = 3
    GET_STATUS = 7

    STATUS_EVENT = 0
    VERSION_EVENT = 1
    FEATURE_EVENT = 2
    DISCONNECTED_EVENT = 4

    EVENTS = {
        STATUS_EVENT: _decode_status,
        VERSION_EVENT: _decode_version,
        FEATURE_EVENT: _decode_features,
        DISCONNECTED_EVENT: _decode_disconnected
    }

    def disconnect(self, handle):
        """Start disconnecting a link.  The Disconnected event follows."""

        return self._send_result(self.DISCONNECT, struct.pack("<B", handle))

    def get_rssi(self, handle):
        """Read the signal strength of an established link in dBm."""

        _handle, rssi = self._send(self.GET_RSSI, struct.pack("<B", handle), "<Bb")
        return rssi

    def update(self, handle, interval_min, interval_max, latency, timeout):
        """Request new connection parameters.

        Intervals are in units of 1.25 ms and the timeout in units of 10 ms.
        """

        payload = struct.pack("<BHHHH", handle, interval_min, interval_max, latency, timeout)
        return self._send_result(self.UPDATE, payload)

    def version_update(self, handle):
        """Ask the remote device for its link layer version."""

        return self._send_result(self.VERSION_UPDATE, struct.pack("<B", handle))

    def get_status(self, handle):
        """Ask for a ConnectionStatus event describing a link."""

        self._send(self.GET_STATUS, struct.pack("<B", handle))
