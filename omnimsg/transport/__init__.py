"""
Transport layer components for Omni Messenger.
"""

from .udp import (
    BroadcastTransport,
    Datagram,
    DatagramSource,
    NonBlockingDatagramSource,
    PolledDatagramSource,
    TransportError,
    create_datagram_source,
)

__all__ = [
    'BroadcastTransport',
    'Datagram',
    'DatagramSource',
    'NonBlockingDatagramSource',
    'PolledDatagramSource',
    'TransportError',
    'create_datagram_source',
]
