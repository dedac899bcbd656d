"""Protocol engine for talking to a bled112 adapter over a serial port."""

from .packets import PacketHeader, PacketFramer, BGAPIPacket, encode_header, decode_header, build_command
from .command_channel import CommandChannel
from .dispatcher import EventDispatcher, WILDCARD
from .connection import BGAPIConnection, ConnectionRegistry, ConnectionState

__all__ = ['PacketHeader', 'PacketFramer', 'BGAPIPacket', 'encode_header', 'decode_header', 'build_command',
           'CommandChannel', 'EventDispatcher', 'WILDCARD', 'BGAPIConnection', 'ConnectionRegistry',
           'ConnectionState']
