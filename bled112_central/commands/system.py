"""BGAPI system command class."""

from collections import namedtuple
import struct
from ..definitions import CommandClass
from ..utilities import format_address
from .base import BGAPICommandClass

HardwareInfo = namedtuple("HardwareInfo", ["major", "minor", "patch", "build", "ll_version",
                                           "protocol_version", "hardware"])
PacketCounters = namedtuple("PacketCounters", ["tx_ok", "tx_retry", "rx_ok", "rx_fail", "mbuf"])


class SystemCommands(BGAPICommandClass):
    """Commands that query and control the adapter itself."""

    CLASS_ID = CommandClass.SYSTEM

    RESET = 0
    HELLO = 1
    GET_ADDRESS = 2
    GET_COUNTERS = 5
    GET_CONNECTIONS = 6
    GET_INFO = 8

    def hello(self, timeout=None):
        """Check that the adapter is responsive."""

        self._send(self.HELLO, timeout=timeout)

    def get_address(self):
        """Read the adapter's public Bluetooth address as AA:BB:CC:DD:EE:FF."""

        raw, = self._send(self.GET_ADDRESS, response_format="<6s")
        return format_address(raw)

    def get_connections(self):
        """Read the maximum number of simultaneous connections."""

        maxconn, = self._send(self.GET_CONNECTIONS, response_format="<B")
        return maxconn

    def get_counters(self):
        """Read and reset the adapter's packet counters."""

        return PacketCounters(*self._send(self.GET_COUNTERS, response_format="<BBBBB"))

    def get_info(self):
        """Read the adapter's firmware and hardware versions."""

        return HardwareInfo(*self._send(self.GET_INFO, response_format="<HHHHHBB"))

    def reset(self, dfu=False):
        """Reboot the adapter, optionally into its DFU bootloader.

        The adapter sends no response.  It drops off the USB bus while it
        reboots, so the connection will normally be detached shortly after.
        """

        self._post(self.RESET, struct.pack("<B", int(bool(dfu))))
