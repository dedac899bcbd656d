"""BGAPI generic access profile command class and scan events."""

from collections import namedtuple
import struct
from ..definitions import CommandClass, DiscoverMode
from ..utilities import format_address, parse_address
from .base import BGAPICommandClass, unpack_array

ScanResult = namedtuple("ScanResult", ["rssi", "packet_type", "address", "address_type", "bond", "data"])


def _decode_scan(payload):
    rssi, packet_type, sender, address_type, bond = struct.unpack_from("<bB6sBB", payload)
    data = unpack_array(payload, 10)

    return ScanResult(rssi, packet_type, format_address(sender), address_type, bond, data)


class GAPCommands(BGAPICommandClass):
    """Commands that discover and connect to peripherals."""

    CLASS_ID = CommandClass.GAP

    SET_MODE = 1
    DISCOVER = 2
    CONNECT_DIRECT = 3
    END_PROCEDURE = 4
    SET_SCAN_PARAMETERS = 7

    SCAN_EVENT = 0

    EVENTS = {
        SCAN_EVENT: _decode_scan
    }

    def set_mode(self, discover_mode, connect_mode):
        """Set the discoverability and connectability of the adapter."""

        result, = self._send(self.SET_MODE, struct.pack("<BB", discover_mode, connect_mode), "<H")
        return result

    def discover(self, mode=DiscoverMode.OBSERVATION):
        """Start scanning.  ScanResult events follow until end_procedure()."""

        result, = self._send(self.DISCOVER, struct.pack("<B", mode), "<H")
        return result

    def end_procedure(self):
        """Stop the current GAP procedure, such as scanning or connecting."""

        result, = self._send(self.END_PROCEDURE, b'', "<H")
        return result

    def set_scan_parameters(self, interval=75, window=50, active=True):
        """Configure scanning.

        Args:
            interval (int): Scan interval in units of 0.625 ms.
            window (int): Scan window in units of 0.625 ms.
            active (bool): Send scan requests to get scan responses.
        """

        payload = struct.pack("<HHB", interval, window, int(bool(active)))
        result, = self._send(self.SET_SCAN_PARAMETERS, payload, "<H")
        return result

    def connect_direct(self, address, address_type, interval_min=60, interval_max=76, timeout=100, latency=0):
        """Start connecting to a peripheral.

        Returns:
            (int, int): The result code and the connection handle assigned by
                the adapter.  The ConnectionStatus event follows once the link
                is established.
        """

        payload = struct.pack("<6sBHHHH", parse_address(address), address_type, interval_min,
                              interval_max, timeout, latency)

        result, handle = self._send(self.CONNECT_DIRECT, payload, "<HB")
        return result, handle
