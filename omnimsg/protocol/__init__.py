"""
Protocol layer components for Omni Messenger.

This module provides the wire format:
- Packet framing and parsing
- Body sanitization and truncation
"""

from .packet import (
    ChatPacket,
    PacketFormatError,
    BadTagError,
    MalformedPacketError,
    encode_packet,
    decode_packet,
)

__all__ = [
    'ChatPacket',
    'PacketFormatError',
    'BadTagError',
    'MalformedPacketError',
    'encode_packet',
    'decode_packet',
]
