"""Tests of GATT procedures on a connected peripheral."""

import struct
import threading
import pytest
from bled112_central import DeviceState
from bled112_central.definitions import NOT_CONNECTED
from bled112_central.exceptions import (TimeoutExpiredError, PayloadTooLargeError, CapabilityUnsupportedError,
                                        ResourceNotFoundError)
from bled112_central.uuids import to_uuid
from util.mock_bled112 import TEST_SERVICE
from util.recorder import RecordingDelegate, wait_until


@pytest.fixture
def device(central, adapter, peripheral):
    delegate = RecordingDelegate()
    central.add_delegate(delegate)
    adapter.advertise(peripheral)
    assert delegate.wait_for(1)

    return central.device(peripheral.address)


@pytest.fixture
def connected(device):
    result = device.connect()
    assert result.success
    return device


def test_connect(connected, adapter):
    assert connected.state is DeviceState.DESCRIPTORS_DISCOVERED
    assert connected.connected
    assert connected.handle == 0

    connect, = adapter.sent(6, 3)
    assert connect[:6] == bytes([0xFF, 0xEE, 0xDD, 0xCC, 0xBB, 0xAA])
    assert adapter.sent(4, 3) == [struct.pack("<BHH", 0, 1, 0xFFFF)]

    # Connecting again is a no-op
    assert connected.connect().success
    assert len(adapter.sent(6, 3)) == 1


def test_connect_timeout(device, adapter):
    adapter.auto_connect = False

    with pytest.raises(TimeoutExpiredError):
        device.connect(timeout=0.1)

    assert device.state is DeviceState.DISCONNECTED
    assert device.handle is None
    assert len(adapter.sent(6, 4)) == 2


def test_services_and_characteristics(connected):
    services = connected.services
    assert len(services) == 1

    service = services[0]
    assert service.uuid == TEST_SERVICE
    assert (service.start_handle, service.end_handle) == (1, 10)
    assert connected.find_service(str(TEST_SERVICE)) is service

    chars = service.characteristics
    assert [char.uuid for char in chars] == [to_uuid(0x2A6E), to_uuid(0x2A00), to_uuid(0x2A01)]
    assert [char.value_handle for char in chars] == [3, 7, 9]

    temp = chars[0]
    assert temp.properties.read and temp.properties.notify
    assert not temp.properties.write
    assert temp.properties.int_value == 0x12

    assert [(x.handle, x.uuid) for x in temp.descriptors] == [(4, to_uuid(0x2902)), (5, to_uuid(0x2901))]
    assert chars[1].descriptors == []
    assert [x.handle for x in chars[2].descriptors] == [10]

    assert service.find_characteristic(0x2A00) is chars[1]
    assert connected.find_characteristic("2A01") is chars[2]

    with pytest.raises(ResourceNotFoundError):
        connected.find_characteristic(0x2A19)

    with pytest.raises(ResourceNotFoundError):
        connected.find_service(0x180F)


def test_read(connected):
    temp = connected.find_characteristic(0x2A6E)

    result = temp.read()
    assert result.success
    assert result.value == b'\x10\x09'
    assert temp.value == b'\x10\x09'

    missing = connected.read(0x0050)
    assert missing.code == 0x0401
    assert missing.error.name == "Invalid Handle"


def test_read_description(connected):
    temp = connected.find_characteristic(0x2A6E)

    result = temp.read_description()
    assert result.value == "Temperature"

    with pytest.raises(ResourceNotFoundError):
        connected.find_characteristic(0x2A00).read_description()


def test_long_read_reassembly(connected, adapter, peripheral):
    """A 50 byte value arrives as 22, 22 and 6 byte fragments."""

    value = bytes(range(50))
    peripheral.attributes[7][1] = value

    char = connected.find_characteristic(0x2A00)
    result = char.read_long()

    assert result.success
    assert result.value == value
    assert char.value == value


def test_long_read_unknown_handle(connected, peripheral):
    """Fragments for a handle with no discovered characteristic still reassemble."""

    value = bytes(range(30))
    peripheral.attributes[5][1] = value

    result = connected.read_long(5)
    assert result.value == value


def test_short_write(connected, adapter, peripheral):
    char = connected.find_characteristic(0x2A00)

    assert char.write(b'hello').success
    assert peripheral.value(7) == b'hello'
    assert adapter.sent(4, 9) == []


def test_long_write_chunks(connected, adapter, peripheral):
    """A 45 byte write goes out as 18, 18 and 9 byte fragments and is committed."""

    data = bytes(range(45))
    char = connected.find_characteristic(0x2A00)

    result = char.write(data)
    assert result.success

    fragments = adapter.sent(4, 9)
    assert [struct.unpack_from("<BHHB", x)[2:] for x in fragments] == [(0, 18), (18, 18), (36, 9)]
    assert adapter.sent(4, 10) == [struct.pack("<BB", 0, 1)]
    assert peripheral.committed == [True]
    assert peripheral.value(7) == data


def test_long_write_failure(connected, adapter, peripheral):
    """A failed fragment cancels the queued write and its error is returned."""

    adapter.prepare_write_failures[1] = 0x0403
    char = connected.find_characteristic(0x2A00)

    result = char.write(bytes(45))
    assert result.code == 0x0403

    assert len(adapter.sent(4, 9)) == 2
    assert adapter.sent(4, 10) == [struct.pack("<BB", 0, 0)]
    assert peripheral.committed == [False]
    assert peripheral.value(7) == b''


def test_long_write_cancelled_on_timeout(connected, adapter, peripheral):
    """A fragment that never completes still sends the cancelling execute write."""

    adapter.procedure_silent = True
    char = connected.find_characteristic(0x2A00)

    with pytest.raises(TimeoutExpiredError):
        char.write(bytes(45))

    assert len(adapter.sent(4, 9)) == 1
    assert adapter.sent(4, 10) == [struct.pack("<BB", 0, 0)]
    assert peripheral.committed == [False]


def test_property_checks(connected, adapter):
    """Operations a characteristic does not permit are refused without I/O."""

    indicate_only = connected.find_characteristic(0x2A01)
    notify_only = connected.find_characteristic(0x2A6E)

    with pytest.raises(CapabilityUnsupportedError):
        indicate_only.read()

    with pytest.raises(CapabilityUnsupportedError):
        indicate_only.read_long()

    with pytest.raises(CapabilityUnsupportedError):
        notify_only.write(b'\x01')

    with pytest.raises(CapabilityUnsupportedError):
        notify_only.write_without_response(b'\x01')

    assert adapter.sent(4, 4) == []
    assert adapter.sent(4, 5) == []
    assert adapter.sent(4, 6) == []


def test_write_failure_result(connected, adapter):
    adapter.write_failures[7] = 0x0403

    result = connected.find_characteristic(0x2A00).write(b'\x01')
    assert not result.success
    assert result.code == 0x0403


def test_write_without_response(connected, peripheral):
    char = connected.find_characteristic(0x2A00)

    assert char.write_without_response(b'\x01\x02').success
    assert wait_until(lambda: peripheral.value(7) == b'\x01\x02')

    with pytest.raises(PayloadTooLargeError):
        char.write_without_response(bytes(21))


def test_subscribe_and_notify(connected, adapter, peripheral):
    temp = connected.find_characteristic(0x2A6E)
    received = []
    temp.add_notification_callback(lambda char, value: received.append((char, value)))

    assert temp.subscribe().success
    assert peripheral.value(4) == b'\x01\x00'
    assert temp.client_config == 1

    adapter.notify(connected.handle, 3, b'\x22\x09')
    assert wait_until(lambda: len(received) == 1)
    assert received[0] == (temp, b'\x22\x09')
    assert temp.value == b'\x22\x09'

    assert temp.subscribe(enabled=False).success
    assert peripheral.value(4) == b'\x00\x00'

    with pytest.raises(CapabilityUnsupportedError):
        temp.subscribe("indicate")


def test_read_from_notification_callback(connected, adapter):
    """A notification callback can run a GATT procedure on the same device."""

    temp = connected.find_characteristic(0x2A6E)
    name = connected.find_characteristic(0x2A00)
    results = []
    temp.add_notification_callback(lambda char, value: results.append(name.read()))

    adapter.notify(connected.handle, 3, b'\x22\x09')

    assert wait_until(lambda: len(results) == 1)
    assert results[0].success
    assert results[0].value == b''


def test_indication_is_confirmed(connected, adapter):
    char = connected.find_characteristic(0x2A01)
    received = threading.Event()
    char.add_indication_callback(lambda char, value: received.set())

    assert char.subscribe("indicate").success

    adapter.notify(connected.handle, 9, b'\x01', value_type=5)
    assert received.wait(2.0)
    assert wait_until(lambda: len(adapter.sent(4, 7)) == 1)


def test_get_rssi(connected, peripheral):
    peripheral.rssi = -42

    assert connected.get_rssi() == -42
    assert connected.record.rssi == -42


def test_disconnect(connected, central):
    reasons = []
    connected.add_disconnect_callback(lambda device, reason: reasons.append(reason))

    assert connected.disconnect().success
    assert connected.state is DeviceState.DISCONNECTED
    assert connected.handle is None
    assert wait_until(lambda: reasons == [0x0216])

    assert connected.read(3).code == NOT_CONNECTED
    assert connected.write_without_response(3, b'\x01').code == NOT_CONNECTED

    # Reconnecting works and rediscovers the attribute table
    assert connected.connect().success
    assert connected.state is DeviceState.DESCRIPTORS_DISCOVERED


def test_remote_disconnect_fails_procedure(connected, adapter):
    """Losing the link while a procedure is outstanding completes it with the reason."""

    adapter.procedure_silent = True
    char = connected.find_characteristic(0x2A00)

    result = {}
    thread = threading.Thread(target=lambda: result.setdefault('write', char.write(b'\x01')))
    thread.start()

    assert wait_until(lambda: len(adapter.sent(4, 5)) == 1)
    adapter.drop_connection(0, reason=0x0208)
    thread.join(2.0)

    assert result['write'].code == 0x0208
    assert connected.state is DeviceState.DISCONNECTED
    assert connected.disconnect_reason == 0x0208


def test_procedure_timeout(connected, adapter):
    """An unresponsive adapter raises and leaves the device usable."""

    adapter.procedure_silent = True
    char = connected.find_characteristic(0x2A00)

    with pytest.raises(TimeoutExpiredError):
        char.write(b'\x01')

    adapter.procedure_silent = False
    assert char.write(b'\x02').success


def test_adapter_unplugged(connected, serial_factory):
    reasons = []
    connected.add_disconnect_callback(lambda device, reason: reasons.append(reason))

    serial_factory.ports[-1].unplug()
    assert wait_until(lambda: reasons == [NOT_CONNECTED])
    assert connected.state is DeviceState.DISCONNECTED
