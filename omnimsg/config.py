"""
Configuration management for Omni Messenger.

A session is described by an immutable SessionConfig built once at startup
(normally from command-line options) and read by the chat loop.
"""

import socket
from dataclasses import dataclass
from typing import Optional, Tuple

from .protocol.packet import MAX_NICK, SEPARATOR
from .transport.udp import RECEIVE_STRATEGIES


DEFAULT_NICK = "anon"
DEFAULT_PORT = 24250
DEFAULT_BROADCAST = "255.255.255.255"
DEFAULT_BIND_ADDRESS = "0.0.0.0"
DEFAULT_RECEIVE_STRATEGY = "nonblocking"
YIELD_MS = 10

QUIT_COMMAND = "/quit"
HELP_COMMAND = "/help"


class ConfigError(Exception):
    """Raised when configuration values are invalid."""
    pass


def validate_nick(nick: str) -> str:
    """
    Check that a nickname can be framed on the wire.

    Args:
        nick: Candidate nickname

    Returns:
        The nickname unchanged

    Raises:
        ConfigError: If the nick is empty, too long, or contains the
            separator or control characters
    """
    if not nick:
        raise ConfigError("Nick must not be empty")
    if SEPARATOR.decode('ascii') in nick:
        raise ConfigError(f"Nick must not contain '{SEPARATOR.decode('ascii')}'")
    if any(not ch.isprintable() for ch in nick):
        raise ConfigError("Nick must not contain control characters")
    if len(nick.encode('utf-8')) > MAX_NICK:
        raise ConfigError(f"Nick must be at most {MAX_NICK} bytes")
    return nick


def parse_ipv4(address: str) -> str:
    """
    Validate a dotted-quad IPv4 address.

    255.255.255.255 is accepted as the limited broadcast address.

    Raises:
        ConfigError: If the address is not a valid IPv4 address
    """
    parts = address.split('.') if address else []
    if len(parts) != 4:
        raise ConfigError(f"Invalid IPv4 address: {address}")
    try:
        socket.inet_aton(address)
    except OSError:
        raise ConfigError(f"Invalid IPv4 address: {address}")
    return address


@dataclass(frozen=True)
class SessionConfig:
    """
    Settings for one chat session.

    Fields:
        nick: Nickname sent with every message
        port: UDP port shared by all peers
        broadcast: Broadcast destination address
        bind_address: Local interface to bind
        receive_strategy: "nonblocking" or "poll"
        yield_ms: Pause between loop iterations
        max_drain: Cap on datagrams handled per iteration (None = drain all)
    """
    nick: str = DEFAULT_NICK
    port: int = DEFAULT_PORT
    broadcast: str = DEFAULT_BROADCAST
    bind_address: str = DEFAULT_BIND_ADDRESS
    receive_strategy: str = DEFAULT_RECEIVE_STRATEGY
    yield_ms: int = YIELD_MS
    max_drain: Optional[int] = None

    def __post_init__(self):
        """Validate fields."""
        validate_nick(self.nick)
        if not (1 <= self.port <= 65535):
            raise ConfigError("Port must be 1-65535")
        parse_ipv4(self.broadcast)
        parse_ipv4(self.bind_address)
        if self.receive_strategy not in RECEIVE_STRATEGIES:
            raise ConfigError(f"Unknown receive strategy: {self.receive_strategy}")
        if self.yield_ms < 0:
            raise ConfigError("Yield delay must not be negative")
        if self.max_drain is not None and self.max_drain < 1:
            raise ConfigError("Drain cap must be at least 1")

    @property
    def destination(self) -> Tuple[str, int]:
        """Broadcast (host, port) that messages are sent to."""
        return (self.broadcast, self.port)
