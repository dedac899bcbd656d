"""A BLE central for the Silicon Labs BLED112 USB adapter."""

from .central import Central, CentralDelegate, PeripheralRecord, LivenessState
from .device import Device, DeviceState
from .gatt import Service, Characteristic, CharacteristicProperties, Descriptor
from .definitions import GattResult, DiscoverMode, describe_error
from .advertisement import AdvertisementData
from .config import ConfigManager
from .exceptions import (BGAPIError, TransportUnavailableError, NotOpenError, AwaitingRestoreError, BusyError,
                         PayloadTooLargeError, TimeoutExpiredError, ProtocolMismatchError,
                         CapabilityUnsupportedError, ResourceNotFoundError, ConfigError)
from .hardware import BGAPIConnection, ConnectionRegistry

__all__ = ['Central', 'CentralDelegate', 'PeripheralRecord', 'LivenessState', 'Device', 'DeviceState',
           'Service', 'Characteristic', 'CharacteristicProperties', 'Descriptor', 'GattResult', 'DiscoverMode',
           'describe_error', 'AdvertisementData', 'ConfigManager', 'BGAPIError', 'TransportUnavailableError',
           'NotOpenError', 'AwaitingRestoreError', 'BusyError', 'PayloadTooLargeError', 'TimeoutExpiredError',
           'ProtocolMismatchError', 'CapabilityUnsupportedError', 'ResourceNotFoundError', 'ConfigError',
           'BGAPIConnection', 'ConnectionRegistry']
