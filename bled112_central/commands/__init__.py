"""Encoders and decoders for the BGAPI command classes used by a central."""

from .base import BGAPICommandClass
from .system import SystemCommands, HardwareInfo, PacketCounters
from .connection import (ConnectionCommands, ConnectionStatus, VersionIndication, FeatureIndication,
                         Disconnected)
from .gap import GAPCommands, ScanResult
from .attribute_client import (AttributeClientCommands, Indicated, ProcedureCompleted, GroupFound,
                               InformationFound, AttributeValue, TypeFound, ReadMultipleResponse)


class BGAPICommands:
    """The four command classes a central needs, bound to one connection."""

    def __init__(self, connection):
        self.connection = connection
        self.system = SystemCommands(connection)
        self.conn = ConnectionCommands(connection)
        self.gap = GAPCommands(connection)
        self.attclient = AttributeClientCommands(connection)


__all__ = ['BGAPICommandClass', 'BGAPICommands', 'SystemCommands', 'HardwareInfo', 'PacketCounters',
           'ConnectionCommands', 'ConnectionStatus', 'VersionIndication', 'FeatureIndication', 'Disconnected',
           'GAPCommands', 'ScanResult', 'AttributeClientCommands', 'Indicated', 'ProcedureCompleted',
           'GroupFound', 'InformationFound', 'AttributeValue', 'TypeFound', 'ReadMultipleResponse']
