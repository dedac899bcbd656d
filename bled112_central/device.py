"""A session with one connected peripheral.

Every GATT operation follows the same correlate-and-block pattern: a
command starts a procedure on the adapter and returns either "started" or
an error code.  An error code is returned immediately.  Otherwise the
caller blocks on the device's single outstanding procedure slot until the
adapter reports completion for this connection, or until the procedure
timeout expires, which means that the adapter stopped responding.

Only one procedure is ever outstanding per device, so completions are
correlated by connection handle alone.
"""

from enum import Enum
import logging
import struct
import threading
from typing import List
from sortedcontainers import SortedDict
from .commands import (ConnectionStatus, Disconnected, ProcedureCompleted, GroupFound, InformationFound,
                       AttributeValue, TypeFound, Indicated)
from .definitions import (GattResult, GattUUID, ClientConfig, AttributeValueType, MAX_ATTRIBUTE_WRITE,
                          MAX_PREPARE_WRITE, NOT_CONNECTED, ATTRIBUTE_NOT_FOUND)
from .exceptions import (BGAPIError, TimeoutExpiredError, CapabilityUnsupportedError, ResourceNotFoundError,
                         PayloadTooLargeError)
from .gatt import Service, Characteristic, Descriptor, parse_characteristic_declaration
from .uuids import expand_uuid, to_uuid

_CHAR_DECLARATION = expand_uuid(uint16=GattUUID.CHARACTERISTIC)
_PRIMARY_SERVICE = expand_uuid(uint16=GattUUID.PRIMARY_SERVICE)
_CLIENT_CONFIG = expand_uuid(uint16=GattUUID.CLIENT_CONFIG)
_USER_DESCRIPTION = expand_uuid(uint16=GattUUID.USER_DESCRIPTION)

_FIRST_HANDLE = 0x0001
_LAST_HANDLE = 0xFFFF


class DeviceState(Enum):
    """Link states of a Device."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DESCRIPTORS_DISCOVERED = "descriptors_discovered"


class _Procedure:
    """The single outstanding procedure slot of a device."""

    __slots__ = ['handle', 'done', 'result', 'value', 'fragments']

    def __init__(self, handle=None):
        self.handle = handle
        self.done = threading.Event()
        self.result = None
        self.value = None
        self.fragments = bytearray()

    def complete(self, result, value=None):
        if self.done.is_set():
            return

        self.result = result
        if value is not None:
            self.value = value

        self.done.set()


class Device:
    """A connection to a single BLE peripheral.

    Devices are created by Central.device() and share the central's command
    layer.  Connection, attribute client and disconnection events for the
    device's connection handle are routed here by the Central.

    Args:
        central (Central): The central that owns this device.
        record (PeripheralRecord): What is known about the peripheral from
            scanning.
        procedure_timeout (float): How long to wait for a GATT procedure to
            complete before assuming the adapter is unresponsive.
        connect_timeout (float): How long to wait for a link to be
            established.
    """

    def __init__(self, central, record, procedure_timeout=5.0, connect_timeout=5.0):
        self.record = record
        self.procedure_timeout = procedure_timeout
        self.connect_timeout = connect_timeout

        self.handle = None
        self.status = None
        self.disconnect_reason = None

        self._central = central
        self._state = DeviceState.DISCONNECTED
        self._cond = threading.Condition()
        self._procedure_lock = threading.RLock()
        self._procedure = None

        self._descriptors = SortedDict()
        self._services = None
        self._chars_by_value_handle = {}
        self._disconnect_callbacks = []

        self._logger = logging.getLogger(__name__)
        self._logger.addHandler(logging.NullHandler())

    @property
    def address(self):
        return self.record.address

    @property
    def state(self):
        return self._state

    @property
    def connected(self):
        return self._state in (DeviceState.CONNECTED, DeviceState.DESCRIPTORS_DISCOVERED)

    @property
    def _commands(self):
        return self._central.commands

    def add_disconnect_callback(self, callback):
        """Call callback(device, reason) whenever the link is lost."""

        self._disconnect_callbacks.append(callback)

    ## Link management

    def connect(self, timeout=None) -> GattResult:
        """Connect to the peripheral and discover its attribute handles.

        Returns:
            GattResult: The result of connecting, or of the attribute handle
                discovery that follows it.

        Raises:
            TimeoutExpiredError: The link was not established in time.
        """

        if timeout is None:
            timeout = self.connect_timeout

        with self._procedure_lock:
            with self._cond:
                if self._state is not DeviceState.DISCONNECTED:
                    return GattResult(0)

                self._set_state(DeviceState.CONNECTING)
                self.disconnect_reason = None

            self._central.prepare_connection(self)

            try:
                result, handle = self._commands.gap.connect_direct(self.address, self.record.address_type)
            except Exception:
                self._abandon_connection()
                raise

            if result != 0:
                self._abandon_connection()
                return GattResult(result)

            self._central.bind(handle, self)
            with self._cond:
                if self.handle is None:
                    self.handle = handle

                established = self._cond.wait_for(lambda: self._state is not DeviceState.CONNECTING, timeout)

            if not established:
                self._logger.warning("Timeout connecting to %s, cancelling", self.address)
                self._commands.gap.end_procedure()
                self._abandon_connection()
                raise TimeoutExpiredError("Timeout waiting for connection to be established",
                                          address=self.address, timeout=timeout)

            if self._state is DeviceState.DISCONNECTED:
                return GattResult(self.disconnect_reason)

            self._logger.debug("Connected to %s with handle %d", self.address, self.handle)

            discovery = self.discover_descriptors()
            if discovery.success:
                self._set_state(DeviceState.DESCRIPTORS_DISCOVERED)

            return discovery

    def disconnect(self, timeout=None) -> GattResult:
        """Disconnect from the peripheral and wait for the link to close."""

        if timeout is None:
            timeout = self.connect_timeout

        handle = self.handle
        if handle is None or self._state is DeviceState.DISCONNECTED:
            return GattResult(0)

        result = self._commands.conn.disconnect(handle)
        if result != 0:
            return GattResult(result)

        with self._cond:
            closed = self._cond.wait_for(lambda: self._state is DeviceState.DISCONNECTED, timeout)

        if not closed:
            raise TimeoutExpiredError("Timeout waiting for disconnection", address=self.address, timeout=timeout)

        return GattResult(0)

    def get_rssi(self) -> int:
        """Read the signal strength of the link and store it in the record."""

        handle = self._require_handle()
        rssi = self._commands.conn.get_rssi(handle)
        self.record.rssi = rssi
        return rssi

    ## Discovery

    def discover_descriptors(self) -> GattResult:
        """List the type of every attribute handle on the peripheral."""

        self._descriptors.clear()
        return self._run_procedure(lambda conn: self._commands.attclient.find_information(conn, _FIRST_HANDLE,
                                                                                        _LAST_HANDLE))

    @property
    def services(self) -> List[Service]:
        """Every primary service, discovered on first access."""

        with self._procedure_lock:
            if self._services is None:
                result = self.discover_services()
                if not result.success:
                    self._logger.warning("Service discovery on %s failed: %s", self.address, result.error.name)

            if self._services is None:
                return []

            return list(self._services.values())

    def discover_services(self) -> GattResult:
        with self._procedure_lock:
            self._services = SortedDict()
            result = self._run_procedure(lambda conn: self._commands.attclient.read_by_group_type(
                conn, _FIRST_HANDLE, _LAST_HANDLE, _PRIMARY_SERVICE))

            if result.code == ATTRIBUTE_NOT_FOUND:
                result = GattResult(0)

            if not result.success:
                self._services = None

            return result

    def discover_characteristics(self, service: Service) -> GattResult:
        with self._procedure_lock:
            service.begin_discovery()
            result = self._run_procedure(lambda conn: self._commands.attclient.read_by_type(
                conn, service.start_handle, service.end_handle, _CHAR_DECLARATION))

            if result.code == ATTRIBUTE_NOT_FOUND:
                result = GattResult(0)

            if not result.success:
                service.abandon_discovery()

            return result

    def find_service(self, uuid) -> Service:
        uuid = to_uuid(uuid)
        for service in self.services:
            if service.uuid == uuid:
                return service

        raise ResourceNotFoundError("Service not found on device", uuid=str(uuid), address=self.address)

    def find_characteristic(self, uuid) -> Characteristic:
        uuid = to_uuid(uuid)
        for service in self.services:
            for char in service.characteristics:
                if char.uuid == uuid:
                    return char

        raise ResourceNotFoundError("Characteristic not found on device", uuid=str(uuid), address=self.address)

    def descriptors_for(self, char: Characteristic) -> List[Descriptor]:
        """List the descriptors that belong to a characteristic.

        Descriptors are every attribute after the characteristic's value
        attribute, up to the next characteristic declaration or the end of
        the service.
        """

        descriptors = []
        for handle in self._descriptors.irange(char.value_handle + 1, char.service.end_handle):
            uuid = self._descriptors[handle]
            if uuid == _CHAR_DECLARATION:
                break

            descriptors.append(Descriptor(handle, uuid))

        return descriptors

    def find_descriptor(self, char: Characteristic, uuid) -> int:
        uuid = to_uuid(uuid)
        for descriptor in self.descriptors_for(char):
            if descriptor.uuid == uuid:
                return descriptor.handle

        raise ResourceNotFoundError("Descriptor not found for characteristic", uuid=str(uuid),
                                    characteristic=str(char.uuid), address=self.address)

    ## Attribute I/O

    def read(self, handle) -> GattResult:
        """Read an attribute value that fits in a single packet."""

        return self._run_procedure(lambda conn: self._commands.attclient.read_by_handle(conn, handle), handle)

    def read_long(self, handle) -> GattResult:
        """Read an attribute value of any length by reassembling blob fragments."""

        with self._procedure_lock:
            char = self._chars_by_value_handle.get(handle)
            if char is not None:
                char.take_fragments()

            result = self._run_procedure(lambda conn: self._commands.attclient.read_long(conn, handle), handle)
            if not result.success:
                return result

            if char is not None:
                return GattResult(result.code, char.take_fragments())

            return result

    def write(self, handle, data) -> GattResult:
        """Write an attribute with acknowledgement.

        Values longer than a single write are sent as a sequence of prepared
        writes that are committed together.
        """

        data = bytes(data)
        if len(data) <= MAX_ATTRIBUTE_WRITE:
            return self._run_procedure(lambda conn: self._commands.attclient.attribute_write(conn, handle, data),
                                       handle)

        return self._write_long(handle, data)

    def write_without_response(self, handle, data) -> GattResult:
        data = bytes(data)
        if len(data) > MAX_ATTRIBUTE_WRITE:
            raise PayloadTooLargeError("Write without response is limited to a single packet",
                                       length=len(data), max_length=MAX_ATTRIBUTE_WRITE)

        if self.handle is None:
            return GattResult(NOT_CONNECTED)

        return GattResult(self._commands.attclient.write_command(self.handle, handle, data))

    def subscribe(self, char: Characteristic, kind="notify", enabled=True) -> GattResult:
        """Enable or disable notifications or indications on a characteristic.

        Raises:
            CapabilityUnsupportedError: The characteristic does not support
                that kind of subscription.
            ResourceNotFoundError: The characteristic has no client
                configuration descriptor.
        """

        if kind == "notify":
            flag = ClientConfig.NOTIFY
        elif kind == "indicate":
            flag = ClientConfig.INDICATE
        else:
            raise ValueError("Unknown subscription type: %s" % kind)

        if not getattr(char.properties, kind):
            raise CapabilityUnsupportedError("Characteristic does not support %s subscriptions" % kind,
                                             characteristic=str(char.uuid))

        config_handle = self.find_descriptor(char, _CLIENT_CONFIG)

        if enabled:
            value = char.client_config | flag
        else:
            value = char.client_config & ~flag

        result = self.write(config_handle, struct.pack("<H", value))
        if result.success:
            char.client_config = value

        return result

    def read_description(self, char: Characteristic) -> GattResult:
        """Read the user description descriptor of a characteristic as a string."""

        handle = self.find_descriptor(char, _USER_DESCRIPTION)
        result = self.read(handle)
        if not result.success:
            return result

        return GattResult(result.code, result.value.decode('utf-8', errors='replace'))

    def _write_long(self, handle, data):
        with self._procedure_lock:
            failure = None
            try:
                for offset in range(0, len(data), MAX_PREPARE_WRITE):
                    chunk = data[offset:offset + MAX_PREPARE_WRITE]
                    result = self._run_procedure(
                        lambda conn: self._commands.attclient.prepare_write(conn, handle, offset, chunk), handle)

                    if not result.success:
                        self._logger.debug("Prepare write at offset %d failed with 0x%04X, cancelling", offset,
                                           result.code)
                        failure = result
                        break
            except BGAPIError:
                self._cancel_queued_write(handle)
                raise

            commit = failure is None
            finished = self._run_procedure(lambda conn: self._commands.attclient.execute_write(conn, commit), handle)

            if failure is not None:
                return failure

            return finished

    def _cancel_queued_write(self, handle):
        """Best effort discard of prepared writes after a fragment raised."""

        try:
            self._run_procedure(lambda conn: self._commands.attclient.execute_write(conn, False), handle)
        except BGAPIError:
            self._logger.warning("Could not cancel queued write to 0x%04X on %s", handle, self.address,
                                 exc_info=True)

    def _run_procedure(self, start, handle=None) -> GattResult:
        """Start a procedure and block until the adapter reports it complete."""

        with self._procedure_lock:
            conn = self.handle
            if conn is None:
                return GattResult(NOT_CONNECTED)

            procedure = _Procedure(handle)
            self._procedure = procedure

            try:
                result = start(conn)
                if result != 0:
                    return GattResult(result)

                if not procedure.done.wait(self.procedure_timeout):
                    raise TimeoutExpiredError("Timeout waiting for GATT procedure to complete",
                                              address=self.address, handle=handle, timeout=self.procedure_timeout)
            finally:
                self._procedure = None

            return GattResult(procedure.result, procedure.value)

    def _require_handle(self):
        handle = self.handle
        if handle is None:
            raise ResourceNotFoundError("Device is not connected", address=self.address)

        return handle

    ## Event handling, called by the Central in event order

    def handle_event(self, event):
        if isinstance(event, ConnectionStatus):
            self._on_status(event)
        elif isinstance(event, Disconnected):
            self._on_disconnected(event.reason)
        elif isinstance(event, ProcedureCompleted):
            self._on_procedure_completed(event)
        elif isinstance(event, AttributeValue):
            self._on_attribute_value(event)
        elif isinstance(event, TypeFound):
            self._on_type_found(event)
        elif isinstance(event, GroupFound):
            self._on_group_found(event)
        elif isinstance(event, InformationFound):
            self._descriptors[event.handle] = event.uuid
        elif isinstance(event, Indicated):
            self._logger.debug("Indication on handle 0x%04X acknowledged by %s", event.handle, self.address)
        else:
            self._logger.log(5, "Ignoring event %r for %s", event, self.address)

    def link_lost(self, reason):
        """Mark the link as gone without a disconnection event, e.g. when the adapter is unplugged."""

        self._on_disconnected(reason)

    def _on_status(self, event):
        with self._cond:
            self.status = event
            self.record.bond = event.bonding

            if self.handle is None:
                self.handle = event.connection

            if self._state is DeviceState.CONNECTING and event.connected and event.completed:
                self._set_state(DeviceState.CONNECTED)
                self._cond.notify_all()

    def _on_disconnected(self, reason):
        with self._cond:
            if self._state is DeviceState.DISCONNECTED and self.handle is None:
                return

            self._logger.info("Device %s disconnected, reason=0x%04X", self.address, reason)
            self.disconnect_reason = reason
            self.handle = None
            self.status = None
            self._set_state(DeviceState.DISCONNECTED)
            self._clear_caches()
            self._cond.notify_all()

        procedure = self._procedure
        if procedure is not None:
            procedure.complete(reason)

        for callback in list(self._disconnect_callbacks):
            try:
                callback(self, reason)
            except Exception:  #pylint:disable=broad-except;User callbacks must not break event processing
                self._logger.exception("Error in disconnect callback for %s", self.address)

    def _on_procedure_completed(self, event):
        procedure = self._procedure
        if procedure is None:
            self._logger.debug("Dropping procedure completion with no procedure outstanding: %r", event)
            return

        value = None
        if procedure.fragments:
            value = bytes(procedure.fragments)

        procedure.complete(event.result, value)

    def _on_attribute_value(self, event):
        char = self._chars_by_value_handle.get(event.handle)
        procedure = self._procedure

        if event.type == AttributeValueType.READ:
            if char is not None:
                char.value_read(event.value)

            if procedure is not None:
                procedure.complete(0, event.value)
        elif event.type == AttributeValueType.READ_BLOB:
            if char is not None:
                char.fragment_received(event.value)
            elif procedure is not None:
                procedure.fragments += event.value
        elif event.type == AttributeValueType.NOTIFY:
            if char is not None:
                self._deliver(char.notified, event.value)
        elif event.type in (AttributeValueType.INDICATE, AttributeValueType.INDICATE_RSP_REQ):
            if char is not None:
                self._deliver(char.indicated, event.value)

            if event.type == AttributeValueType.INDICATE_RSP_REQ and self.handle is not None:
                self._commands.attclient.indicate_confirm(self.handle)
        else:
            self._logger.debug("Unknown attribute value type %d on %s", event.type, self.address)

    def _deliver(self, callback, value):
        # User callbacks run outside the attribute client queue so they can start procedures
        if not self._central.call_soon(("callbacks", self.address), callback, value):
            self._logger.debug("Dropped characteristic callback on %s, central is stopped", self.address)

    def _on_type_found(self, event):
        try:
            properties, value_handle, uuid = parse_characteristic_declaration(event.value)
        except ValueError:
            self._logger.warning("Invalid characteristic declaration at 0x%04X on %s", event.handle, self.address)
            return

        service = self._service_for_handle(event.handle)
        if service is None:
            self._logger.warning("Characteristic at 0x%04X on %s is outside every known service",
                                 event.handle, self.address)
            return

        char = Characteristic(service, event.handle, value_handle, uuid, properties)
        service.add_characteristic(char)
        self._chars_by_value_handle[value_handle] = char

    def _on_group_found(self, event):
        if self._services is None:
            self._services = SortedDict()

        self._services[event.start] = Service(self, event.uuid, event.start, event.end)

    def _service_for_handle(self, handle):
        if not self._services:
            return None

        index = self._services.bisect_right(handle) - 1
        if index < 0:
            return None

        service = self._services.peekitem(index)[1]
        if not service.contains(handle):
            return None

        return service

    def _abandon_connection(self):
        handle = self.handle
        with self._cond:
            self.handle = None
            self._set_state(DeviceState.DISCONNECTED)
            self._cond.notify_all()

        self._central.unbind(handle, self)

    def _clear_caches(self):
        self._descriptors.clear()
        self._services = None
        self._chars_by_value_handle = {}

    def _set_state(self, state):
        if state is not self._state:
            self._logger.debug("Device %s state %s -> %s", self.address, self._state.value, state.value)

        self._state = state

    def __repr__(self):
        return "Device(address=%s, state=%s, handle=%s)" % (self.address, self._state.value, self.handle)
