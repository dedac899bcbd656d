"""The session root: one adapter, the peripherals it has seen and their links.

A Central opens (or reuses) the connection to a bled112 adapter, brings the
adapter into a known state and then keeps a registry of every peripheral it
hears advertising.  Records are created on the first sighting, updated in
place on every later one and never deleted.  A background liveness thread
ages records that stop advertising::

    ALIVE -> TEMPORARILY_LOST -> UNAVAILABLE -> TOTALLY_LOST

Connection and attribute client events are routed by connection handle to
the Device bound to that handle.
"""

from collections import Counter
from enum import Enum
import logging
import threading
import time
from typing import Dict, List, Optional
from typing_extensions import Protocol
from .advertisement import AdvertisementData
from .commands import BGAPICommands, ConnectionStatus, Disconnected, GAPCommands
from .config import ConfigManager
from .definitions import DiscoverMode, GattResult, NOT_CONNECTED, WRONG_STATE
from .device import Device
from .exceptions import BGAPIError, NotOpenError, ResourceNotFoundError
from .hardware import ConnectionRegistry
from .stoppable_thread import StoppableWorkerThread
from . import utilities


class LivenessState(Enum):
    """How recently a peripheral was heard advertising."""

    ALIVE = 0
    TEMPORARILY_LOST = 1
    UNAVAILABLE = 2
    TOTALLY_LOST = 3

    def next(self):
        if self is LivenessState.TOTALLY_LOST:
            return self

        return LivenessState(self.value + 1)


class PeripheralRecord:
    """Everything learned about a peripheral from its advertisements.

    Args:
        address (str): The peripheral's address as AA:BB:CC:DD:EE:FF.
        address_type (int): 0 for a public address, 1 for a random one.
        now (float): The time of the first sighting.
    """

    def __init__(self, address, address_type=0, now=0.0):
        self.address = address
        self.address_type = address_type
        self.name = ""
        self.rssi = None  # type: Optional[int]
        self.flags = 0
        self.services = []
        self.bond = 0xFF
        self.tx_power = None  # type: Optional[int]
        self.manufacturer_data = b''
        self.interval_min = None  # type: Optional[float]
        self.interval_max = None  # type: Optional[float]

        self.packet_counts = Counter()
        self.seen_count = 0

        self.state = LivenessState.ALIVE
        self.first_seen = now
        self.last_seen = now

    def update(self, scan, advert: AdvertisementData, now: float) -> LivenessState:
        """Merge one sighting into the record.

        Fields the packet does not carry keep their previous values so that
        advertisements and scan responses complement each other.

        Returns:
            LivenessState: The liveness state before this sighting.
        """

        previous = self.state

        self.packet_counts[scan.packet_type] += 1
        self.seen_count += 1
        self.address_type = scan.address_type
        self.bond = scan.bond
        self.rssi = scan.rssi

        flags = advert.flags
        if flags:
            self.flags = flags

        manufacturer_data = advert.manufacturer_data
        if manufacturer_data:
            self.manufacturer_data = manufacturer_data

        interval_range = advert.interval_range
        if interval_range is not None:
            interval_min, interval_max = interval_range
            if interval_min > 0:
                self.interval_min = interval_min
            if interval_max > 0:
                self.interval_max = interval_max

        name = advert.name
        if name:
            self.name = name

        tx_power = advert.tx_power
        if tx_power is not None:
            self.tx_power = tx_power

        for service in advert.services:
            if service not in self.services:
                self.services.append(service)

        self.state = LivenessState.ALIVE
        self.last_seen = now
        return previous

    def __repr__(self):
        return "PeripheralRecord(address=%s, name=%r, rssi=%s, state=%s)" % (
            self.address, self.name, self.rssi, self.state.name)


class CentralDelegate(Protocol):
    """Receiver of peripheral registry notifications.

    A delegate may implement any subset of these methods.
    """

    def on_peripheral_found(self, central: 'Central', record: PeripheralRecord) -> None:
        ...

    def on_peripheral_updated(self, central: 'Central', record: PeripheralRecord) -> None:
        ...

    def on_peripheral_lost(self, central: 'Central', record: PeripheralRecord) -> None:
        ...


class Central:
    """A BLE central built on a bled112 adapter.

    Args:
        port (str): The serial port of the adapter.  None or '<auto>' picks
            the first bled112 that can be opened.
        serial_number (str): The adapter's USB serial number, if known.
        registry (ConnectionRegistry): The registry to open the adapter
            through.  A private one is created if not given.
        config (ConfigManager): Configuration to use.  Defaults are read
            from the environment if not given.
        clock (callable): Monotonic time source used for liveness.
    """

    def __init__(self, port=None, serial_number=None, *, registry=None, config=None, clock=time.monotonic):
        if config is None:
            config = ConfigManager()

        self.port = port
        self.serial_number = serial_number
        self.config = config

        self.commands = None  # type: Optional[BGAPICommands]
        self.connection = None
        self.address = None  # type: Optional[str]
        self.max_connections = None  # type: Optional[int]

        self._logger = logging.getLogger(__name__)
        self._logger.addHandler(logging.NullHandler())

        if registry is None:
            baud_rate = config.get('baud-rate')
            registry = ConnectionRegistry(
                serial_factory=lambda port: utilities.open_bled112(port, self._logger, baud_rate),
                command_timeout=config.get('command-timeout'),
                dispatch_workers=config.get('dispatch-workers'))

        self._registry = registry
        self._clock = clock
        self._lock = threading.RLock()
        self._records = {}  # type: Dict[str, PeripheralRecord]
        self._devices = {}  # type: Dict[str, Device]
        self._bindings = {}  # type: Dict[int, Device]
        self._connecting = {}  # type: Dict[str, Device]
        self._delegates = []
        self._scan_mode = None
        self._liveness_thread = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()

    @property
    def liveness_interval(self) -> float:
        return self.config.get('liveness-interval')

    @property
    def scanning(self) -> bool:
        return self._scan_mode is not None

    @property
    def peripherals(self) -> List[PeripheralRecord]:
        """Every peripheral seen so far, including ones that are lost."""

        with self._lock:
            return list(self._records.values())

    ## Lifecycle

    def start(self):
        """Open the adapter, bring it into a known state and start liveness checks."""

        if self.connection is not None:
            return

        port = self.port
        if port is None:
            port = '<auto>'

        conn = self._registry.open(port, self.serial_number)

        # Raises before touching a connection owned by another central
        conn.claim(self)
        commands = BGAPICommands(conn)

        commands.gap.subscribe(self._on_scan, GAPCommands.SCAN_EVENT)
        commands.conn.subscribe(self._on_connection_event)
        commands.attclient.subscribe(self._on_attclient_event)
        conn.add_listener(on_detached=self._on_detached, on_restored=self._on_restored)

        self.connection = conn
        self.commands = commands

        try:
            self._initialize_adapter()
        except BGAPIError:
            self.connection = None
            self.commands = None
            conn.close()
            raise

        interval = self.liveness_interval
        if interval > 0:
            self._liveness_thread = StoppableWorkerThread(self.tick, timeout=interval, name="bled112-liveness")
            self._liveness_thread.start()

        self._logger.info("Central started on adapter %s (%s), max connections=%d", self.address,
                          conn.port, self.max_connections)

    def stop(self):
        """Stop scanning, drop every link and close the adapter."""

        if self._liveness_thread is not None:
            self._liveness_thread.stop()
            self._liveness_thread = None

        conn = self.connection
        if conn is None:
            return

        with self._lock:
            devices = list(self._bindings.values())

        for device in devices:
            try:
                device.disconnect()
            except BGAPIError:
                self._logger.warning("Error disconnecting from %s during stop", device.address, exc_info=True)

        if self._scan_mode is not None:
            try:
                self.stop_scan()
            except BGAPIError:
                self._logger.warning("Error stopping scan during stop", exc_info=True)

        self.connection = None
        self.commands = None
        conn.close()

    def _initialize_adapter(self):
        commands = self.commands

        commands.system.hello()
        self.address = commands.system.get_address()
        self.max_connections = commands.system.get_connections()

        # Stop any scan or connection attempt left running by a previous session
        result = commands.gap.end_procedure()
        if result not in (0, WRONG_STATE):
            self._logger.warning("Unexpected result ending gap procedure: 0x%04X", result)

        result = commands.gap.set_scan_parameters(active=self.config.get('active-scan'))
        if result != 0:
            self._logger.warning("Could not set scan parameters: 0x%04X", result)

    def _require_commands(self):
        commands = self.commands
        if commands is None:
            raise NotOpenError("Central has not been started")

        return commands

    ## Scanning

    def start_scan(self, mode=DiscoverMode.OBSERVATION) -> GattResult:
        """Start listening for advertisements.  Already scanning counts as success."""

        result = self._require_commands().gap.discover(mode)
        if result == WRONG_STATE:
            result = 0

        if result == 0:
            self._scan_mode = mode

        return GattResult(result)

    def stop_scan(self) -> GattResult:
        result = self._require_commands().gap.end_procedure()
        if result == WRONG_STATE:
            result = 0

        if result == 0:
            self._scan_mode = None

        return GattResult(result)

    ## Peripheral registry

    def add_delegate(self, delegate: CentralDelegate):
        with self._lock:
            self._delegates.append(delegate)

    def remove_delegate(self, delegate: CentralDelegate):
        with self._lock:
            self._delegates.remove(delegate)

    def get_peripheral(self, address) -> Optional[PeripheralRecord]:
        with self._lock:
            return self._records.get(address.upper())

    def device(self, address) -> Device:
        """Get the Device used to connect to a peripheral.

        The same Device object is returned for every call with the same
        address.

        Raises:
            ResourceNotFoundError: The peripheral has never been seen.
        """

        address = address.upper()

        with self._lock:
            device = self._devices.get(address)
            if device is not None:
                return device

            record = self._records.get(address)
            if record is None:
                raise ResourceNotFoundError("Peripheral has not been seen while scanning", address=address)

            device = Device(self, record, procedure_timeout=self.config.get('procedure-timeout'),
                            connect_timeout=self.config.get('connect-timeout'))
            self._devices[address] = device
            return device

    def tick(self, now=None):
        """Age every record that has not been seen for a liveness interval."""

        if now is None:
            now = self._clock()

        interval = self.liveness_interval
        lost = []

        with self._lock:
            for record in self._records.values():
                if record.state is LivenessState.TOTALLY_LOST:
                    continue

                if now - record.last_seen > interval:
                    record.state = record.state.next()
                    self._logger.debug("Peripheral %s is now %s", record.address, record.state.name)

                    if record.state is LivenessState.TOTALLY_LOST:
                        lost.append(record)

        for record in lost:
            self._notify('on_peripheral_lost', record)

    def _on_scan(self, event):
        advert = AdvertisementData(event.data)
        now = self._clock()

        with self._lock:
            record = self._records.get(event.address)
            created = record is None
            if created:
                record = PeripheralRecord(event.address, event.address_type, now)
                self._records[event.address] = record

            previous = record.update(event, advert, now)

        if created:
            self._logger.debug("Found peripheral %s (%r)", record.address, record.name)
            self._notify('on_peripheral_found', record)
        elif previous is not LivenessState.TOTALLY_LOST:
            self._notify('on_peripheral_updated', record)

    def _notify(self, method, record):
        with self._lock:
            delegates = list(self._delegates)

        for delegate in delegates:
            callback = getattr(delegate, method, None)
            if callback is None:
                continue

            try:
                callback(self, record)
            except Exception:  #pylint:disable=broad-except;Delegate errors must not break scanning
                self._logger.exception("Error in delegate %s for %s", method, record.address)

    ## Connection handle bookkeeping, used by Device

    def call_soon(self, key, func, *args) -> bool:
        """Run func(*args) on the event worker pool, ordered with other calls on key."""

        conn = self.connection
        if conn is None:
            return False

        return conn.dispatcher.call_soon(key, func, *args)

    def prepare_connection(self, device: Device):
        with self._lock:
            self._connecting[device.address] = device

    def bind(self, handle: int, device: Device):
        with self._lock:
            self._bindings[handle] = device
            self._connecting.pop(device.address, None)

    def unbind(self, handle: Optional[int], device: Device):
        with self._lock:
            if self._connecting.get(device.address) is device:
                del self._connecting[device.address]

            if handle is not None and self._bindings.get(handle) is device:
                del self._bindings[handle]

    def _on_connection_event(self, event):
        with self._lock:
            device = self._bindings.get(event.connection)

            # The status event can be processed before connect_direct returns the handle
            if device is None and isinstance(event, ConnectionStatus):
                device = self._connecting.pop(event.address, None)
                if device is not None:
                    self._bindings[event.connection] = device

            if isinstance(event, Disconnected):
                self._bindings.pop(event.connection, None)

        if device is None:
            self._logger.log(5, "Ignoring connection event for unbound handle: %r", event)
            return

        device.handle_event(event)

    def _on_attclient_event(self, event):
        with self._lock:
            device = self._bindings.get(event.connection)

        if device is None:
            self._logger.debug("Dropping attribute client event for unbound handle: %r", event)
            return

        device.handle_event(event)

    ## Hot-plug

    def _on_detached(self, _conn):
        with self._lock:
            devices = list(self._bindings.values())
            self._bindings.clear()
            self._connecting.clear()

        for device in devices:
            device.link_lost(NOT_CONNECTED)

    def _on_restored(self, _conn):
        try:
            self._initialize_adapter()

            if self._scan_mode is not None:
                result = self.commands.gap.discover(self._scan_mode)
                if result not in (0, WRONG_STATE):
                    self._logger.warning("Could not resume scanning after restore: 0x%04X", result)
        except BGAPIError:
            self._logger.exception("Error reinitializing bled112 after it was restored")
