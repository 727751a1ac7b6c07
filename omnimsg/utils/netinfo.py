"""
Local network interface information.

Used to suggest a directed broadcast address when the limited broadcast
address (255.255.255.255) is not routed on a host.
"""

import socket
from dataclasses import dataclass
from typing import List, Optional

import psutil


@dataclass
class InterfaceAddress:
    """An IPv4 address of a local interface."""
    interface: str
    address: str
    netmask: Optional[str]
    broadcast: Optional[str]


def guess_broadcast_address(address: str, netmask: str) -> str:
    """
    Compute the directed broadcast address of a subnet.

    Args:
        address: Host address, dotted quad
        netmask: Subnet mask, dotted quad

    Returns:
        Broadcast address, dotted quad
    """
    host = int.from_bytes(socket.inet_aton(address), 'big')
    mask = int.from_bytes(socket.inet_aton(netmask), 'big')
    return socket.inet_ntoa(((host & mask) | (~mask & 0xFFFFFFFF)).to_bytes(4, 'big'))


def list_broadcast_addresses(include_loopback: bool = False) -> List[InterfaceAddress]:
    """
    List IPv4 interfaces and their broadcast addresses.

    Interfaces that report a netmask but no broadcast address get one
    computed from the mask.
    """
    results = []
    for name, addresses in psutil.net_if_addrs().items():
        for addr in addresses:
            if addr.family != socket.AF_INET:
                continue
            if addr.address.startswith('127.') and not include_loopback:
                continue

            broadcast = addr.broadcast
            if not broadcast and addr.netmask:
                broadcast = guess_broadcast_address(addr.address, addr.netmask)

            results.append(InterfaceAddress(
                interface=name,
                address=addr.address,
                netmask=addr.netmask,
                broadcast=broadcast,
            ))
    return results
