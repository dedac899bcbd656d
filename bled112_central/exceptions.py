"""Exceptions that can be thrown by the bled112 central driver.

All exceptions carry a human readable message plus an arbitrary set of
keyword parameters describing the context of the failure, for example::

    raise BusyError("Command already in flight", class_id=4, command_id=5)

Remote GATT errors are not exceptions.  They are returned as GattResult
values since they are an expected part of talking to a peripheral.
"""

from typedargs.exceptions import KeyValueException


class BGAPIError(KeyValueException):
    """Base class for all errors raised by this package."""

    pass


class TransportUnavailableError(BGAPIError):
    """The serial transport to the adapter cannot be used right now."""

    pass


class NotOpenError(TransportUnavailableError):
    """A command was sent on a connection that was never opened or was closed."""

    pass


class AwaitingRestoreError(TransportUnavailableError):
    """The adapter was unplugged and the connection is waiting to be restored.

    This is distinct from TimeoutExpiredError so that callers can tell the
    difference between "retry later" and "request failed".
    """

    pass


class BusyError(BGAPIError):
    """Another command is already in flight on this connection."""

    pass


class PayloadTooLargeError(BGAPIError):
    """A command payload did not fit in an 11-bit length field."""

    pass


class TimeoutExpiredError(BGAPIError):
    """No response or completion event arrived in time.

    This usually means that the adapter is not responding.
    """

    pass


class ProtocolMismatchError(BGAPIError):
    """A response arrived for a different command than the one in flight.

    This is a fatal protocol fault and the command is never retried.
    """

    pass


class CapabilityUnsupportedError(BGAPIError):
    """A characteristic does not declare the property needed for an operation."""

    pass


class ResourceNotFoundError(BGAPIError):
    """A device, service, characteristic or descriptor could not be found."""

    pass


class ConfigError(BGAPIError):
    """A configuration variable was unknown or had an invalid value."""

    pass
