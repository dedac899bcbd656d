"""Shared utility functions for finding and opening bled112 adapters."""

from collections import namedtuple
import serial
import serial.tools.list_ports
from .exceptions import TransportUnavailableError

_BAUD_RATE = 230400
_BLED112_VID = 9304
_BLED112_PID = 1

AdapterPort = namedtuple("AdapterPort", ["device", "serial_number"])


def find_bled112_ports(logger):
    """Find every serial port that looks like a bled112 adapter.

    Returns:
        list(AdapterPort): The device name and USB serial number of each
            adapter.  The serial number is None if the platform does not
            report it.
    """

    found_devs = []

    for port in serial.tools.list_ports.comports():
        if not hasattr(port, 'pid') or not hasattr(port, 'vid'):
            continue

        # Check if the device matches the BLED112's PID/VID combination
        if port.pid == _BLED112_PID and port.vid == _BLED112_VID:
            logger.debug("Found BLED112 device at %s", port.device)
            found_devs.append(AdapterPort(port.device, getattr(port, 'serial_number', None)))

    return found_devs


def open_serial(port, baud_rate=_BAUD_RATE):
    """Open a serial port with the settings a bled112 needs."""

    try:
        return serial.Serial(port, baud_rate, timeout=0.01, rtscts=True, exclusive=True)
    except serial.SerialException as err:
        raise TransportUnavailableError("Could not open bled112 serial port", port=port) from err


def _find_available_bled112(logger, baud_rate):
    devices = find_bled112_ports(logger)
    if len(devices) == 0:
        raise TransportUnavailableError("Could not find any BLED112 adapters connected to this computer")

    for port in devices:
        try:
            dev = open_serial(port.device, baud_rate)
            logger.info("Using first available BLED112 adapter at %s", port.device)
            return dev
        except TransportUnavailableError:
            logger.debug("Can't use BLED112 device %s because it's locked", port.device)

    raise TransportUnavailableError("There were %d BLED112 adapters but all were in use." % len(devices))


def open_bled112(port, logger, baud_rate=_BAUD_RATE):
    """Open a BLED112 adapter either by name or the first available."""

    if port is not None and port != '<auto>':
        logger.info("Using BLED112 adapter at %s", port)
        return open_serial(port, baud_rate)

    return _find_available_bled112(logger, baud_rate)


def format_address(raw_address):
    """Format a 6 byte little endian BLE address as AA:BB:CC:DD:EE:FF."""

    return ":".join(["%02X" % x for x in bytearray(raw_address)[::-1]])


def parse_address(address):
    """Convert an AA:BB:CC:DD:EE:FF address into 6 little endian bytes."""

    try:
        raw = bytearray.fromhex(address.replace(':', ''))
    except ValueError as err:
        raise ValueError("Invalid BLE address: %r" % (address,)) from err

    if len(raw) != 6:
        raise ValueError("Invalid BLE address length: %r" % (address,))

    return bytes(raw[::-1])
