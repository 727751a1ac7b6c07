"""
Chat loop for Omni Messenger.

A single-threaded polling scheduler. Each iteration drains every datagram
that is already queued, polls the keyboard once, dispatches local commands or
broadcasts the typed line, and then sleeps briefly. Nothing in an iteration
blocks except the final fixed pause.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from ..config import HELP_COMMAND, QUIT_COMMAND, SessionConfig
from ..protocol.packet import PacketFormatError, decode_packet, encode_packet
from ..transport.udp import DatagramSource, TransportError
from .io import InputError, LineSource, LineStatus


logger = logging.getLogger(__name__)

HELP_TEXT = f"Commands: {QUIT_COMMAND}, {HELP_COMMAND}"


@dataclass
class MessageEvent:
    """A chat line received from a peer."""
    address: Tuple[str, int]
    nick: str
    text: str


@dataclass
class RawEvent:
    """A datagram that did not decode as a chat packet."""
    address: Tuple[str, int]
    data: bytes


@dataclass
class StatusEvent:
    """A local status, error or help line."""
    text: str


ChatEvent = Union[MessageEvent, RawEvent, StatusEvent]


class LoopState(Enum):
    RUNNING = "running"
    TERMINATING = "terminating"


class ExitReason(Enum):
    QUIT = "quit"
    CANCELLED = "cancelled"
    INPUT_ERROR = "input_error"


class ChatLoop:
    """
    Interleaves network receive and keyboard input for one session.

    The loop owns the datagram source and line source for its lifetime; the
    caller creates them beforehand and releases the socket and input mode
    after ``run`` returns.
    """

    def __init__(self, config: SessionConfig, source: DatagramSource,
                 lines: LineSource, transport,
                 render: Callable[[ChatEvent], None],
                 sleep: Callable[[float], None] = time.sleep,
                 max_drain: Optional[int] = None,
                 prompt: Optional[Callable[[], None]] = None):
        """
        Initialize chat loop.

        Args:
            config: Session configuration (nick, destination, yield delay)
            source: Non-blocking datagram source
            lines: Non-blocking line source
            transport: Object with ``send(data, destination)``
            render: Called with every event to display
            sleep: Pause function taking seconds
            max_drain: Cap on datagrams per iteration (default: config value)
            prompt: Called after a sent or empty line to re-show the prompt
        """
        self.config = config
        self.source = source
        self.lines = lines
        self.transport = transport
        self.render = render
        self.sleep = sleep
        self.max_drain = max_drain if max_drain is not None else config.max_drain
        self.prompt = prompt or (lambda: None)

        self.state = LoopState.RUNNING
        self.exit_reason: Optional[ExitReason] = None
        self.stats = {
            'received': 0,
            'malformed': 0,
            'sent': 0,
            'send_errors': 0,
            'receive_errors': 0,
        }

    @property
    def running(self) -> bool:
        return self.state is LoopState.RUNNING

    def terminate(self, reason: ExitReason) -> None:
        self.state = LoopState.TERMINATING
        if self.exit_reason is None:
            self.exit_reason = reason

    def drain(self) -> int:
        """
        Handle every datagram that is already queued.

        Returns:
            Number of datagrams handled
        """
        handled = 0
        while self.max_drain is None or handled < self.max_drain:
            try:
                datagram = self.source.try_receive()
            except TransportError as e:
                # Network errors do not end the session; retry next iteration
                self.stats['receive_errors'] += 1
                logger.error(f"Receive failed: {e}")
                self.render(StatusEvent(str(e)))
                break

            if datagram is None:
                break

            handled += 1
            self.stats['received'] += 1
            try:
                packet = decode_packet(datagram.data)
            except PacketFormatError as e:
                self.stats['malformed'] += 1
                logger.warning(f"Undecodable datagram from {datagram.address}: {e}")
                self.render(RawEvent(datagram.address, datagram.data))
                continue

            self.render(MessageEvent(datagram.address, packet.nick, packet.text))

        return handled

    def handle_line(self, line: str) -> None:
        """Dispatch one completed input line."""
        command = line.strip()

        if command == QUIT_COMMAND:
            self.terminate(ExitReason.QUIT)
            return

        if command == HELP_COMMAND:
            self.render(StatusEvent(HELP_TEXT))
            return

        if not command:
            self.prompt()
            return

        # A failed send is reported through render instead
        if self.send_text(line):
            self.prompt()

    def send_text(self, text: str) -> bool:
        """
        Broadcast a chat line.

        Returns:
            True if the datagram was handed to the network
        """
        packet = encode_packet(self.config.nick, text)
        try:
            self.transport.send(packet, self.config.destination)
        except TransportError as e:
            self.stats['send_errors'] += 1
            logger.error(f"Send to {self.config.destination} failed: {e}")
            self.render(StatusEvent(str(e)))
            return False

        self.stats['sent'] += 1
        return True

    def poll_input(self) -> None:
        """Poll the line source once and act on the result."""
        try:
            event = self.lines.poll()
        except InputError as e:
            logger.error(f"Input failed: {e}")
            self.render(StatusEvent(str(e)))
            self.terminate(ExitReason.INPUT_ERROR)
            return

        if event.status is LineStatus.CANCELLED:
            self.terminate(ExitReason.CANCELLED)
        elif event.status is LineStatus.LINE_READY:
            self.handle_line(event.text)

    def step(self) -> bool:
        """
        Run one iteration without the trailing pause.

        Returns:
            True while the loop should keep running
        """
        if not self.running:
            return False

        self.drain()
        self.poll_input()
        return self.running

    def run(self) -> ExitReason:
        """
        Run until quit, cancellation or input failure.

        Returns:
            Why the loop stopped
        """
        logger.info(f"Chat loop started as '{self.config.nick}' -> {self.config.destination}")
        delay = self.config.yield_ms / 1000.0

        while self.step():
            self.sleep(delay)

        logger.info(f"Chat loop stopped: {self.exit_reason.value}")
        return self.exit_reason
