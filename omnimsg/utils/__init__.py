"""
Utility functions and helpers for Omni Messenger.
"""

from .netinfo import InterfaceAddress, guess_broadcast_address, list_broadcast_addresses

__all__ = [
    'InterfaceAddress',
    'guess_broadcast_address',
    'list_broadcast_addresses',
]
