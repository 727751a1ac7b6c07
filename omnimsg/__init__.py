"""
Omni Messenger (omnimsg).

A minimal serverless LAN chat over UDP broadcast. Peers find each other only
by sharing a subnet and port; there is no server, no membership list, and no
delivery guarantee.

Wire format (one datagram per message):

    OM1|<nick>|<body>

Basic Usage:
    >>> from omnimsg import encode_packet, decode_packet
    >>>
    >>> data = encode_packet("alice", "hello")
    >>> data
    b'OM1|alice|hello'
    >>> packet = decode_packet(data)
    >>> (packet.nick, packet.text)
    ('alice', 'hello')
"""

__version__ = "0.1.0"

# Wire format
from .protocol.packet import (
    ChatPacket,
    PacketFormatError,
    BadTagError,
    MalformedPacketError,
    encode_packet,
    decode_packet,
)

# Network receive
from .transport.udp import (
    BroadcastTransport,
    Datagram,
    NonBlockingDatagramSource,
    PolledDatagramSource,
    TransportError,
    create_datagram_source,
)

# Console input and chat loop
from .channel.io import (
    InputError,
    KeypressLineSource,
    LineAccumulator,
    LineStatus,
    StreamLineSource,
    create_line_source,
)
from .channel.chat import ChatLoop, ExitReason

# Configuration
from .config import ConfigError, SessionConfig


__all__ = [
    # Version info
    '__version__',

    # Wire format
    'ChatPacket',
    'PacketFormatError',
    'BadTagError',
    'MalformedPacketError',
    'encode_packet',
    'decode_packet',

    # Network receive
    'BroadcastTransport',
    'Datagram',
    'NonBlockingDatagramSource',
    'PolledDatagramSource',
    'TransportError',
    'create_datagram_source',

    # Console input and chat loop
    'InputError',
    'KeypressLineSource',
    'LineAccumulator',
    'LineStatus',
    'StreamLineSource',
    'create_line_source',
    'ChatLoop',
    'ExitReason',

    # Configuration
    'ConfigError',
    'SessionConfig',
]
