"""Configure marks to allow running actual hardware tests on computers with dongles."""

import pytest
from bled112_central import Central, ConfigManager, ConnectionRegistry
from util.mock_bled112 import MockBLED112, MockPeripheral, TEST_SERVICE
from util.recorder import FakeClock
import util.dummy_serial


def pytest_addoption(parser):
    parser.addoption("--hardware", action="store_true", dest="hardware",
                     help="run tests that need access to bled112 hardware")


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "hardware(name): mark test to run only when hardware is available"
    )


def pytest_runtest_setup(item):
    for _ in item.iter_markers(name="hardware"):
        if item.config.getoption('hardware') is False:
            pytest.skip("integration test requires external hardware and --hardware argument")


@pytest.fixture
def adapter():
    return MockBLED112(3)


@pytest.fixture
def serial_factory(adapter):
    """A factory that opens a fresh dummy serial port wired to the mock adapter."""

    ports = []

    def _open(port):
        serial_dev = util.dummy_serial.Serial(port, 230400, timeout=0.05, rtscts=True, exclusive=True)
        adapter.attach(serial_dev)
        ports.append(serial_dev)
        return serial_dev

    _open.ports = ports
    yield _open

    for serial_dev in ports:
        if serial_dev.is_open:
            serial_dev.close()


@pytest.fixture
def registry(serial_factory):
    registry = ConnectionRegistry(serial_factory=serial_factory, command_timeout=1.0, dispatch_workers=2)
    yield registry
    registry.shutdown()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ConfigManager({'liveness-interval': 0, 'procedure-timeout': 1.0, 'connect-timeout': 1.0}, environ={})


@pytest.fixture
def central(registry, config, clock):
    central = Central('test', registry=registry, config=config, clock=clock)
    central.start()
    yield central
    central.stop()


@pytest.fixture
def peripheral(adapter):
    """A peripheral with one service holding a readable, a notifiable and a long characteristic."""

    dev = MockPeripheral("AA:BB:CC:DD:EE:FF", name="TempSensor", rssi=-55)
    handles = dev.add_service(TEST_SERVICE, [
        (0x2A6E, 0x12, b'\x10\x09', [(0x2902, b'\x00\x00'), (0x2901, b'Temperature')]),
        (0x2A00, 0x0E, b'', []),
        (0x2A01, 0x24, b'\x00', [(0x2902, b'\x00\x00')])
    ])
    dev.value_handles = handles
    adapter.add_device(dev)
    return dev
