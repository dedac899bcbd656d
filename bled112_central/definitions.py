"""Constant values used in the BGAPI protocol.

The error catalogue is built once at import time and exposed through a
read-only mapping.  For discussion and definitions of the error codes, see
the Bluetooth Smart Software API Reference Manual for BLE version 1.8.
"""

from collections import namedtuple
from enum import IntEnum
from types import MappingProxyType


MAX_PAYLOAD_LENGTH = 2047

# Largest value that fits in a single attribute write and the largest
# fragment that fits in a prepare write (3 bytes go to the offset and length)
MAX_ATTRIBUTE_WRITE = 20
MAX_PREPARE_WRITE = 18


class CommandClass(IntEnum):
    """BGAPI command classes."""

    SYSTEM = 0
    PERSISTENT_STORE = 1
    ATTRIBUTE_DATABASE = 2
    CONNECTION = 3
    ATTRIBUTE_CLIENT = 4
    SECURITY_MANAGER = 5
    GAP = 6
    HARDWARE = 7


class AttributeValueType(IntEnum):
    """Why an attribute_value event was sent by the adapter."""

    READ = 0
    NOTIFY = 1
    INDICATE = 2
    READ_BY_TYPE = 3
    READ_BLOB = 4
    INDICATE_RSP_REQ = 5


class DiscoverMode(IntEnum):
    """GAP discovery modes passed to gap_discover."""

    LIMITED = 0
    GENERIC = 1
    OBSERVATION = 2


class ScanPacketType:
    """Packet types reported in GAP scan response events."""

    CONNECTABLE = 0x00
    DIRECTED = 0x01
    NONCONNECTABLE = 0x02
    SCAN_RESPONSE = 0x04
    DISCOVERABLE = 0x06


class AdElementType(IntEnum):
    """Types of data elements that can be found in an advertisement.

    The complete list of such ad elements can be found at:
    https://www.bluetooth.com/specifications/assigned-numbers/generic-access-profile/
    """

    FLAGS = 1
    INCOMPLETE_UUID_16_LIST = 2
    COMPLETE_UUID_16_LIST = 3
    INCOMPLETE_UUID_32_LIST = 4
    COMPLETE_UUID_32_LIST = 5
    INCOMPLETE_UUID_128_LIST = 6
    COMPLETE_UUID_128_LIST = 7
    SHORTENED_LOCAL_NAME = 8
    COMPLETE_LOCAL_NAME = 9
    TX_POWER_LEVEL = 0xA
    SLAVE_CONN_INTERVAL_RANGE = 0x12
    SERVICE_DATA_UUID_16 = 0x16
    MANUFACTURER_DATA = 0xFF


class GAPAdFlags(IntEnum):
    """BLE well known flags indicating device capabilities."""

    LE_LIMITED_DISC_MODE = 0x01
    LE_GENERAL_DISC_MODE = 0x02
    BR_EDR_NOT_SUPPORTED = 0x04
    LE_BR_EDR_CONTROLLER = 0x08
    LE_BR_EDR_HOST = 0x10


class ConnectionFlags:
    """Bits in the flags field of a connection status event."""

    CONNECTED = 0x01
    ENCRYPTED = 0x02
    COMPLETED = 0x04
    PARAMETERS_CHANGED = 0x08


class GattUUID:
    """16-bit UUIDs of the GATT declarations that drive discovery."""

    PRIMARY_SERVICE = 0x2800
    SECONDARY_SERVICE = 0x2801
    INCLUDE = 0x2802
    CHARACTERISTIC = 0x2803
    EXTENDED_PROPERTIES = 0x2900
    USER_DESCRIPTION = 0x2901
    CLIENT_CONFIG = 0x2902


class ClientConfig:
    """Values written to a client characteristic configuration descriptor."""

    NOTIFY = 0x0001
    INDICATE = 0x0002


WRONG_STATE = 0x0181
NOT_CONNECTED = 0x0186
ATTRIBUTE_NOT_FOUND = 0x040A
LOCAL_HOST_TERMINATED = 0x0216


ErrorInfo = namedtuple("ErrorInfo", ["code", "name", "category", "description"])

_ERROR_LIST = [
    (0x0000, "Command Successfully Executed", "General", "Command Successfully Executed"),

    (0x0180, "Invalid Parameter", "API", "Command contained invalid parameter"),
    (0x0181, "Device in Wrong State", "API", "Device is in wrong state to receive command"),
    (0x0182, "Out Of Memory", "API", "Device has run out of memory"),
    (0x0183, "Feature Not Implemented", "API", "Feature is not implemented"),
    (0x0184, "Command Not Recognized", "API", "Command was not recognized"),
    (0x0185, "Timeout", "API", "Command or Procedure failed due to timeout"),
    (0x0186, "Not Connected", "API", "Connection handle passed is to command is not a valid handle"),
    (0x0187, "Flow", "API", "Command would cause either underflow or overflow error"),
    (0x0188, "User Attribute", "API", "User attribute was accessed through API which is not supported"),
    (0x0189, "Invalid License Key", "API", "No valid license key found"),
    (0x018A, "Command Too Long", "API", "Command maximum length exceeded"),
    (0x018B, "Out of Bonds", "API", "Bonding procedure can't be started because device has no space left for bond"),

    (0x0205, "Authentication Failure", "Bluetooth",
     "Pairing or authentication failed due to incorrect results in the pairing or authentication procedure"),
    (0x0206, "Pin or Key Missing", "Bluetooth",
     "Pairing failed because of missing PIN, or authentication failed because of missing Key"),
    (0x0207, "Memory Capacity Exceeded", "Bluetooth", "Controller is out of memory"),
    (0x0208, "Connection Timeout", "Bluetooth", "Link supervision timeout has expired"),
    (0x0209, "Connection Limit Exceeded", "Bluetooth", "Controller is at limit of connections it can support"),
    (0x020C, "Command Disallowed", "Bluetooth",
     "Controller is in a state where it cannot process this command at this time"),
    (0x0212, "Invalid Command Parameters", "Bluetooth", "Command contained invalid parameters"),
    (0x0213, "Remote User Terminated Connection", "Bluetooth", "User on the remote device terminated the connection"),
    (0x0216, "Connection Terminated by Local Host", "Bluetooth", "Local device terminated the connection"),
    (0x0222, "LL Response Timeout", "Bluetooth", "Connection terminated due to link-layer procedure timeout"),
    (0x0228, "LL Instant Passed", "Bluetooth", "Received link-layer control packet where instant was in the past"),
    (0x023A, "Controller Busy", "Bluetooth", "Operation was rejected because the controller is busy"),
    (0x023B, "Unacceptable Connection Interval", "Bluetooth",
     "The remote device terminated the connection because of an unacceptable connection interval"),
    (0x023C, "Directed Advertising Timeout", "Bluetooth",
     "Directed advertising completed without a connection being created"),
    (0x023D, "MIC Failure", "Bluetooth", "The Message Integrity Check failed on a received packet"),
    (0x023E, "Connection Failed to be Established", "Bluetooth",
     "LL initiated a connection but the controller did not receive any packets from the remote end"),

    (0x0301, "Passkey Entry Failed", "Security", "The user input of passkey failed"),
    (0x0302, "OOB Data is not available", "Security", "Out of Band data is not available for authentication"),
    (0x0303, "Authentication Requirements", "Security",
     "Authentication requirements cannot be met due to IO capabilities of one or both devices"),
    (0x0304, "Confirm Value Failed", "Security", "The confirm value does not match the calculated compare value"),
    (0x0305, "Pairing Not Supported", "Security", "Pairing is not supported by the device"),
    (0x0306, "Encryption Key Size", "Security", "The resultant encryption key size is insufficient"),
    (0x0307, "Command Not Supported", "Security", "The SMP command received is not supported on this device"),
    (0x0308, "Unspecified Reason", "Security", "Pairing failed due to an unspecified reason"),
    (0x0309, "Repeated Attempts", "Security", "Too little time has elapsed since last pairing request"),
    (0x030A, "Invalid Parameters", "Security", "The command length is invalid or a parameter is out of range"),

    (0x0401, "Invalid Handle", "AttributeProtocol", "The attribute handle given was not valid on this server"),
    (0x0402, "Read Not Permitted", "AttributeProtocol", "The attribute cannot be read"),
    (0x0403, "Write Not Permitted", "AttributeProtocol", "The attribute cannot be written"),
    (0x0404, "Invalid PDU", "AttributeProtocol", "The attribute PDU was invalid"),
    (0x0405, "Insufficient Authentication", "AttributeProtocol",
     "The attribute requires authentication before it can be read or written"),
    (0x0406, "Request Not Supported", "AttributeProtocol",
     "Attribute Server does not support the request received from the client"),
    (0x0407, "Invalid Offset", "AttributeProtocol", "Offset specified was past the end of the attribute"),
    (0x0408, "Insufficient Authorization", "AttributeProtocol",
     "The attribute requires authorization before it can be read or written"),
    (0x0409, "Prepare Queue Full", "AttributeProtocol", "Too many prepare writes have been queued"),
    (0x040A, "Attribute Not Found", "AttributeProtocol", "No attribute found within the given attribute handle range"),
    (0x040B, "Attribute Not Long", "AttributeProtocol",
     "The attribute cannot be read or written using the Read Blob Request"),
    (0x040C, "Insufficient Encryption Key Size", "AttributeProtocol",
     "The Encryption Key Size used for encrypting this link is insufficient"),
    (0x040D, "Invalid Attribute Value Length", "AttributeProtocol",
     "The attribute value length is invalid for the operation"),
    (0x040E, "Unlikely Error", "AttributeProtocol", "The attribute request encountered an unlikely error"),
    (0x040F, "Insufficient Encryption", "AttributeProtocol",
     "The attribute requires encryption before it can be read or written"),
    (0x0410, "Unsupported Group Type", "AttributeProtocol", "The attribute type is not a supported grouping attribute"),
    (0x0411, "Insufficient Resources", "AttributeProtocol", "Insufficient Resources to complete the request"),
    (0x0480, "Application Error Codes", "AttributeProtocol",
     "Application error code defined by a higher layer specification"),
]

ERRORS = MappingProxyType({code: ErrorInfo(code, name, category, desc) for code, name, category, desc in _ERROR_LIST})


def describe_error(code):
    """Look up a BGAPI result code in the error catalogue.

    Args:
        code (int): The 16-bit result code reported by the adapter.

    Returns:
        ErrorInfo: The catalogue entry, or a generic "Unknown Error" entry if
            the code is not known.
    """

    info = ERRORS.get(code)
    if info is None:
        return ErrorInfo(code, "Unknown Error", "General", "Error code 0x%04X was not found in errors list" % code)

    return info


class GattResult(namedtuple("GattResult", ["code", "value"])):
    """The outcome of a GATT procedure.

    Non-zero codes are remote errors reported by the adapter or the
    peripheral.  They are expected and recoverable so they are returned
    rather than raised.
    """

    __slots__ = ()

    def __new__(cls, code, value=None):
        return super(GattResult, cls).__new__(cls, code, value)

    @property
    def success(self):
        return self.code == 0

    @property
    def error(self):
        """The ErrorInfo describing this result code."""

        return describe_error(self.code)
