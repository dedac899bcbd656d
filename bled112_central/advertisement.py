"""Decoding of the data carried in BLE advertisements and scan responses.

All bluetooth advertisements are divided into typed fields called ad
elements.  ``AdvertisementData`` decodes the elements a central cares about
when building up its record of a peripheral.
"""

from typing import Dict, List, Optional, Tuple
import struct
import uuid
from .definitions import AdElementType
from .uuids import expand_uuid

# Connection intervals are expressed in units of 1.25 ms
_INTERVAL_UNIT_MS = 1.25


class AdvertisementData:
    """Decoded ad elements from a single advertisement or scan response packet.

    Args:
        data: The raw advertisement data contents.
    """

    def __init__(self, data: bytes):
        self.raw = bytes(data)
        self._elements = None  # type: Optional[Dict[int, bytes]]

    @property
    def elements(self) -> Dict[int, bytes]:
        """The parsed bluetooth ad elements in the advertisement."""

        if self._elements is None:
            self._elements = {}
            for ad_type, contents in _iter_elements(self.raw):
                if ad_type not in self._elements:
                    self._elements[ad_type] = contents
                else:
                    extra_content = _prepare_join(ad_type, contents)
                    if extra_content is not None:
                        self._elements[ad_type] += extra_content

        return self._elements

    @property
    def flags(self) -> int:
        flags = self.elements.get(AdElementType.FLAGS)
        if not flags:
            return 0

        return flags[0]

    @property
    def name(self) -> str:
        """The complete local name, falling back to the shortened one."""

        name = self.elements.get(AdElementType.COMPLETE_LOCAL_NAME)
        if name is None:
            name = self.elements.get(AdElementType.SHORTENED_LOCAL_NAME)

        if name is None:
            return ""

        return name.decode('utf-8', errors='replace')

    @property
    def services(self) -> List[uuid.UUID]:
        """The service UUIDs listed in the advertisement, in order."""

        services = []
        for service in _extract_services(self.elements):
            if service not in services:
                services.append(service)

        return services

    @property
    def tx_power(self) -> Optional[int]:
        power = self.elements.get(AdElementType.TX_POWER_LEVEL)
        if not power:
            return None

        return struct.unpack_from("<b", power)[0]

    @property
    def interval_range(self) -> Optional[Tuple[float, float]]:
        """The slave's preferred connection interval range in ms."""

        data = self.elements.get(AdElementType.SLAVE_CONN_INTERVAL_RANGE)
        if data is None or len(data) < 4:
            return None

        min_interval, max_interval = struct.unpack_from("<HH", data)
        return min_interval * _INTERVAL_UNIT_MS, max_interval * _INTERVAL_UNIT_MS

    @property
    def manufacturer_data(self) -> bytes:
        return self.elements.get(AdElementType.MANUFACTURER_DATA, b'')


_SERVICE_ELEMENTS = {
    # AD element type: size of each UUID
    AdElementType.INCOMPLETE_UUID_16_LIST: 2,
    AdElementType.COMPLETE_UUID_16_LIST: 2,
    AdElementType.INCOMPLETE_UUID_32_LIST: 4,
    AdElementType.COMPLETE_UUID_32_LIST: 4,
    AdElementType.INCOMPLETE_UUID_128_LIST: 16,
    AdElementType.COMPLETE_UUID_128_LIST: 16
}


def _extract_services(elements):
    for ad_type, contents in elements.items():
        size = _SERVICE_ELEMENTS.get(ad_type)
        if size is None:
            continue

        for compressed_service in _iter_chunks(contents, size):
            yield expand_uuid(compressed_service)


def _iter_chunks(contents, size):
    """Iterate over fixed size chunks of an array."""

    for i in range(0, len(contents), size):
        chunk = contents[i:i + size]
        if len(chunk) != size:
            return

        yield chunk


def _iter_elements(data: bytes):
    i = 0

    while i < len(data):
        length = data[i]

        if length == 0:
            return

        if i == len(data) - 1:
            return

        ad_type = data[i + 1]
        element = data[i + 2: i + length + 1]

        try:
            ad_type = AdElementType(ad_type)
        except ValueError:
            pass

        yield ad_type, element

        i += length + 1


# Map of joinable AD types and the prefix discard length for each one
_JOINABLE_AD_TYPES = {
    AdElementType.INCOMPLETE_UUID_16_LIST: 0,
    AdElementType.COMPLETE_UUID_16_LIST: 0,
    AdElementType.INCOMPLETE_UUID_128_LIST: 0,
    AdElementType.COMPLETE_UUID_128_LIST: 0,
    AdElementType.MANUFACTURER_DATA: 2
}


def _prepare_join(ad_type, contents):
    """Strip redundant information from an ad element for concatenation.

    Not all ad elements are allowed to have multiple copies in a single
    advertisement, so those are discarded if found.
    """

    join_size = _JOINABLE_AD_TYPES.get(ad_type)
    if join_size is None:
        return None

    return contents[join_size:]
