"""Tests of advertisement parsing and compact UUIDs."""

import struct
import uuid
import pytest
from bled112_central.advertisement import AdvertisementData
from bled112_central.uuids import expand_uuid, compact_uuid, short_uuid, to_uuid
from bled112_central.utilities import format_address, parse_address
from util.mock_bled112 import build_advertisement


def test_basic_elements():
    data = build_advertisement(flags=0x06, name="TempSensor", services=[0x180F, 0x181A], tx_power=-4,
                               manufacturer_data=b'\xc0\x03\x01\x02')
    advert = AdvertisementData(data)

    assert advert.flags == 0x06
    assert advert.name == "TempSensor"
    assert advert.services == [expand_uuid(uint16=0x180F), expand_uuid(uint16=0x181A)]
    assert advert.tx_power == -4
    assert advert.manufacturer_data == b'\xc0\x03\x01\x02'
    assert advert.interval_range is None


def test_missing_elements():
    advert = AdvertisementData(b'')

    assert advert.flags == 0
    assert advert.name == ""
    assert advert.services == []
    assert advert.tx_power is None
    assert advert.manufacturer_data == b''


def test_shortened_name_and_interval_range():
    data = b'\x05\x08Temp' + b'\x05\x12' + struct.pack("<HH", 8, 16)
    advert = AdvertisementData(data)

    assert advert.name == "Temp"
    assert advert.interval_range == (10.0, 20.0)


def test_complete_name_preferred():
    data = b'\x05\x08Temp' + b'\x0b\x09TempSensor'
    assert AdvertisementData(data).name == "TempSensor"


def test_manufacturer_data_joined():
    """Repeated manufacturer data elements are joined without their company id."""

    data = b'\x05\xff\xc0\x03\x01\x02' + b'\x04\xff\xc0\x03\x03'
    assert AdvertisementData(data).manufacturer_data == b'\xc0\x03\x01\x02\x03'


def test_truncated_data():
    """A length byte pointing past the end does not crash parsing."""

    data = b'\x02\x01\x06' + b'\x09\x09Tem'
    advert = AdvertisementData(data)

    assert advert.flags == 0x06
    assert advert.name == "Tem"


def test_128bit_services():
    service = uuid.UUID("6e400001-b5a3-f393-e0a9-e50e24dcca9e")
    data = b'\x11\x07' + service.bytes[::-1]

    assert AdvertisementData(data).services == [service]


def test_expand_uuid():
    assert expand_uuid(uint16=0x2902) == uuid.UUID("00002902-0000-1000-8000-00805f9b34fb")
    assert expand_uuid(b'\x00\x28') == uuid.UUID("00002800-0000-1000-8000-00805f9b34fb")
    assert expand_uuid(b'\x78\x56\x34\x12') == uuid.UUID("12345678-0000-1000-8000-00805f9b34fb")

    with pytest.raises(ValueError):
        expand_uuid(b'\x01\x02\x03')


def test_compact_uuid():
    assert compact_uuid(to_uuid(0x2803)) == b'\x03\x28'
    assert compact_uuid(uuid.UUID("12345678-0000-1000-8000-00805f9b34fb")) == b'\x78\x56\x34\x12'

    custom = uuid.UUID("6e400001-b5a3-f393-e0a9-e50e24dcca9e")
    assert compact_uuid(custom) == custom.bytes[::-1]
    assert expand_uuid(compact_uuid(custom)) == custom


def test_to_uuid():
    assert to_uuid("2902") == expand_uuid(uint16=0x2902)
    assert to_uuid(0x2902) == expand_uuid(uint16=0x2902)
    assert to_uuid("00002902-0000-1000-8000-00805f9b34fb") == expand_uuid(uint16=0x2902)
    assert short_uuid(to_uuid(0x2A6E)) == 0x2A6E
    assert short_uuid(uuid.UUID("6e400001-b5a3-f393-e0a9-e50e24dcca9e")) is None


def test_address_formatting():
    raw = bytes([0xFF, 0xEE, 0xDD, 0xCC, 0xBB, 0xAA])

    assert format_address(raw) == "AA:BB:CC:DD:EE:FF"
    assert parse_address("aa:bb:cc:dd:ee:ff") == raw

    with pytest.raises(ValueError):
        parse_address("AA:BB:CC")

    with pytest.raises(ValueError):
        parse_address("not an address")
