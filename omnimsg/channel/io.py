"""
Console line input for Omni Messenger.

This module turns interactively typed characters into complete lines without
ever blocking the caller, so keyboard input can be interleaved with socket
polling in a single thread. Two input models are supported:

- Character polling (Windows console): check whether a key is ready, then
  read exactly one key.
- Byte-stream polling (POSIX): read whatever a non-blocking descriptor holds.
"""

import codecs
import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..protocol.packet import MAX_BODY


CTRL_C = '\x03'
BACKSPACE_KEYS = ('\x08', '\x7f')
PREFIX_KEYS = ('\x00', '\xe0')  # function and arrow keys send a scan code next


class InputError(Exception):
    """Raised when the input stream fails."""
    pass


class LineStatus(Enum):
    NO_LINE = "no_line"
    LINE_READY = "line_ready"
    CANCELLED = "cancelled"


@dataclass
class LineEvent:
    """Result of one input poll."""
    status: LineStatus
    text: str = ""


NO_LINE = LineEvent(LineStatus.NO_LINE)
CANCELLED = LineEvent(LineStatus.CANCELLED)


class LineAccumulator:
    """
    Bounded buffer of characters typed but not yet terminated.

    Owned by exactly one line source; cleared whenever a line is taken.
    """

    def __init__(self, max_length: int = MAX_BODY):
        self.max_length = max_length
        self._chars: List[str] = []

    def append(self, ch: str) -> bool:
        """
        Add a character.

        Returns:
            False if the buffer is full and the character was dropped
        """
        if len(self._chars) >= self.max_length:
            return False
        self._chars.append(ch)
        return True

    def backspace(self) -> bool:
        """Remove the last character; False if there was nothing to remove."""
        if not self._chars:
            return False
        self._chars.pop()
        return True

    def take(self) -> str:
        """Return the accumulated line and clear the buffer."""
        line = self.text
        self.clear()
        return line

    def clear(self) -> None:
        self._chars.clear()

    @property
    def text(self) -> str:
        return ''.join(self._chars)

    def __len__(self) -> int:
        return len(self._chars)


class LineSource:
    """
    Non-blocking source of complete input lines.

    ``poll`` returns a LineEvent and raises InputError if the underlying
    stream fails. State persists between polls.
    """

    def __init__(self, max_length: int = MAX_BODY):
        self.accumulator = LineAccumulator(max_length)

    def poll(self) -> LineEvent:
        """Return the current line status without blocking."""
        raise NotImplementedError


class KeypressLineSource(LineSource):
    """
    Character-polling line source.

    Uses a "key ready" check and a read-one-key call that is only made once a
    key is known to be ready. The console does not echo, so this source
    echoes typed characters and erasures itself.
    """

    def __init__(self, kbhit: Optional[Callable[[], bool]] = None,
                 getch: Optional[Callable[[], str]] = None,
                 echo: Optional[Callable[[str], None]] = None,
                 max_length: int = MAX_BODY):
        super().__init__(max_length)
        if kbhit is None or getch is None:
            import msvcrt
            kbhit = kbhit or msvcrt.kbhit
            getch = getch or msvcrt.getwch
        self.kbhit = kbhit
        self.getch = getch
        self.echo = echo or _console_echo

    def poll(self) -> LineEvent:
        try:
            while self.kbhit():
                ch = self.getch()

                if ch == CTRL_C:
                    return CANCELLED

                if ch in ('\r', '\n'):
                    self.echo('\n')
                    return LineEvent(LineStatus.LINE_READY, self.accumulator.take())

                if ch in BACKSPACE_KEYS:
                    if self.accumulator.backspace():
                        self.echo('\b \b')
                    continue

                if ch in PREFIX_KEYS:
                    self.getch()
                    continue

                if ch.isprintable() and self.accumulator.append(ch):
                    self.echo(ch)
        except OSError as e:
            raise InputError(f"Console read failed: {e}") from e

        return NO_LINE


def _console_echo(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class StreamLineSource(LineSource):
    """
    Byte-stream line source over a non-blocking file descriptor.

    Reads whatever is available, decodes it as UTF-8 and completes a line on
    LF (CR is ignored). Text after the terminator is kept for the next poll.
    """

    def __init__(self, fd: int = 0, chunk_size: int = 128,
                 eof_cancels: bool = False, max_length: int = MAX_BODY):
        super().__init__(max_length)
        self.fd = fd
        self.chunk_size = chunk_size
        self.eof_cancels = eof_cancels
        self._decoder = codecs.getincrementaldecoder('utf-8')('replace')
        self._pending = ""
        self._eof = False

    def _read_chunk(self) -> Optional[bytes]:
        try:
            return os.read(self.fd, self.chunk_size)
        except BlockingIOError:
            return None
        except OSError as e:
            raise InputError(f"stdin read failed: {e}") from e

    def poll(self) -> LineEvent:
        if not self._eof:
            chunk = self._read_chunk()
            if chunk:
                self._pending += self._decoder.decode(chunk)
            elif chunk == b"" and self.eof_cancels:
                self._eof = True
                self._pending += self._decoder.decode(b"", final=True)

        event = self._scan()
        if event is not None:
            return event

        if self._eof:
            if len(self.accumulator):
                return LineEvent(LineStatus.LINE_READY, self.accumulator.take())
            return CANCELLED

        return NO_LINE

    def _scan(self) -> Optional[LineEvent]:
        pending, self._pending = self._pending, ""
        for index, ch in enumerate(pending):
            if ch == '\n':
                self._pending = pending[index + 1:]
                return LineEvent(LineStatus.LINE_READY, self.accumulator.take())
            if ch == '\r':
                continue
            self.accumulator.append(ch)
        return None


@contextmanager
def nonblocking_fd(fd: int):
    """
    Put a file descriptor into non-blocking mode for the duration.

    The previous mode is restored on exit.
    """
    was_blocking = os.get_blocking(fd)
    os.set_blocking(fd, False)
    try:
        yield fd
    finally:
        os.set_blocking(fd, was_blocking)


def create_line_source(stream=None, max_length: int = MAX_BODY) -> LineSource:
    """
    Create the line source suited to this platform.

    Args:
        stream: Input stream (default: sys.stdin)
        max_length: Longest line to accumulate

    Returns:
        KeypressLineSource on Windows, StreamLineSource elsewhere
    """
    if sys.platform == 'win32':
        return KeypressLineSource(max_length=max_length)

    stream = stream if stream is not None else sys.stdin
    fd = stream.fileno()
    return StreamLineSource(fd, eof_cancels=not os.isatty(fd), max_length=max_length)
