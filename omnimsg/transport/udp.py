"""
UDP Transport for Omni Messenger.

Provides the broadcast socket and a non-blocking receive interface with two
interchangeable strategies:

- "nonblocking": the socket is put into non-blocking mode once and a
  would-block failure means "nothing yet".
- "poll": an availability check runs first and the read only happens when
  data is known to be pending. Error causes are never inspected, for stacks
  where per-call errors are not diagnostic.
"""

import logging
import select
import socket
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..protocol.packet import MAX_PACKET


logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when transport operations fail."""
    pass


@dataclass
class Datagram:
    """
    One received datagram.

    Fields:
        data: Raw payload
        address: Sender address, passed through unparsed
    """
    data: bytes
    address: Tuple[str, int]


class DatagramSource:
    """
    Non-blocking datagram receiver.

    ``try_receive`` returns a Datagram when one was read, None when nothing is
    pending, and raises TransportError on failure. It never blocks, so it is
    safe to call in a loop until it returns None.
    """

    def __init__(self, sock: socket.socket, buffer_size: int = MAX_PACKET):
        self.sock = sock
        self.buffer_size = buffer_size

    def try_receive(self) -> Optional[Datagram]:
        """Return the next queued datagram, or None if receiving would block."""
        raise NotImplementedError


class NonBlockingDatagramSource(DatagramSource):
    """Receive using a socket in non-blocking mode."""

    def __init__(self, sock: socket.socket, buffer_size: int = MAX_PACKET):
        super().__init__(sock, buffer_size)
        try:
            self.sock.setblocking(False)
        except OSError as e:
            raise TransportError(f"Failed to set non-blocking mode: {e}") from e

    def try_receive(self) -> Optional[Datagram]:
        try:
            data, address = self.sock.recvfrom(self.buffer_size)
        except BlockingIOError:
            return None
        except OSError as e:
            raise TransportError(f"recvfrom() failed: {e}") from e

        return Datagram(data=data, address=address)


def socket_has_data(sock: socket.socket) -> int:
    """
    Report whether the socket has data pending, without reading.

    Returns:
        1 if a read would not block, 0 otherwise
    """
    readable, _, _ = select.select([sock], [], [], 0)
    return 1 if readable else 0


class PolledDatagramSource(DatagramSource):
    """
    Receive by checking availability first, then reading.

    The read only happens after the availability check reported pending data,
    so any failure or empty result at that point is an error.
    """

    def __init__(self, sock: socket.socket, buffer_size: int = MAX_PACKET,
                 pending: Callable[[socket.socket], int] = socket_has_data):
        super().__init__(sock, buffer_size)
        self.pending = pending

    def try_receive(self) -> Optional[Datagram]:
        try:
            available = self.pending(self.sock)
        except (OSError, ValueError) as e:
            logger.debug(f"Availability check failed: {e}")
            return None

        if available <= 0:
            return None

        try:
            data, address = self.sock.recvfrom(self.buffer_size)
        except OSError as e:
            raise TransportError(f"recvfrom() failed: {e}") from e

        if len(data) <= 0:
            raise TransportError("recvfrom() returned no data after availability check")

        return Datagram(data=data, address=address)


RECEIVE_STRATEGIES: Dict[str, type] = {
    'nonblocking': NonBlockingDatagramSource,
    'poll': PolledDatagramSource,
}


def create_datagram_source(sock: socket.socket, strategy: str = 'nonblocking',
                           buffer_size: int = MAX_PACKET) -> DatagramSource:
    """
    Create a datagram source for a bound socket.

    Args:
        sock: Bound UDP socket
        strategy: "nonblocking" or "poll"
        buffer_size: Largest datagram to read

    Returns:
        Configured DatagramSource

    Raises:
        ValueError: If the strategy is unknown
    """
    try:
        source_cls = RECEIVE_STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown receive strategy: {strategy}")
    return source_cls(sock, buffer_size)


class BroadcastTransport:
    """
    UDP broadcast socket for Omni Messenger.

    Every peer binds the same port and sends to the broadcast address.
    """

    def __init__(self, port: int, bind_address: str = "0.0.0.0"):
        """
        Initialize broadcast transport.

        Args:
            port: Local port to bind to (0 = auto-assign)
            bind_address: Local interface to bind to
        """
        self.port = port
        self.bind_address = bind_address
        self._socket: Optional[socket.socket] = None

    @property
    def socket(self) -> socket.socket:
        if self._socket is None:
            raise TransportError("Socket not bound")
        return self._socket

    @property
    def is_bound(self) -> bool:
        return self._socket is not None

    def bind(self) -> None:
        """
        Create the socket, enable reuse and broadcast, and bind it.

        Raises:
            TransportError: If the socket cannot be created or bound
        """
        if self._socket is not None:
            return

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise TransportError(f"socket() failed: {e}") from e

        # Options are best effort; some stacks lack them
        for option in ('SO_REUSEADDR', 'SO_REUSEPORT', 'SO_BROADCAST'):
            if hasattr(socket, option):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, getattr(socket, option), 1)
                except OSError as e:
                    logger.debug(f"setsockopt({option}) failed: {e}")

        try:
            sock.bind((self.bind_address, self.port))
        except OSError as e:
            sock.close()
            raise TransportError(f"bind() failed: {e}") from e

        if self.port == 0:
            self.port = sock.getsockname()[1]

        self._socket = sock
        logger.info(f"Broadcast socket bound on {self.bind_address}:{self.port}")

    def send(self, data: bytes, destination: Tuple[str, int]) -> int:
        """
        Send a datagram.

        Args:
            data: Payload
            destination: (host, port) tuple

        Returns:
            Number of bytes sent

        Raises:
            TransportError: If sending fails
        """
        try:
            return self.socket.sendto(data, destination)
        except OSError as e:
            raise TransportError(f"sendto() failed: {e}") from e

    def receiver(self, strategy: str = 'nonblocking') -> DatagramSource:
        """Create a non-blocking datagram source on this socket."""
        return create_datagram_source(self.socket, strategy)

    def get_local_address(self) -> Tuple[str, int]:
        return self.socket.getsockname()

    def close(self) -> None:
        """Close the socket."""
        if self._socket is not None:
            self._socket.close()
            self._socket = None
            logger.info("Broadcast socket closed")

    def __repr__(self):
        status = "bound" if self.is_bound else "unbound"
        return f"BroadcastTransport({self.bind_address}:{self.port}, {status})"

    def __enter__(self):
        """Context manager entry."""
        self.bind()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
