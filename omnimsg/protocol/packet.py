"""
Packet structure and parsing for Omni Messenger.

This module defines the wire format and provides functions to build and parse
chat packets:

packet = "OM1" || "|" || nick || "|" || body

There is no length prefix; the datagram boundary is the message boundary.
The nick never contains the separator, the body may, since it is the last
field and consumes the rest of the payload verbatim.
"""

from dataclasses import dataclass


# Constants
PROTOCOL_TAG = b"OM1"
SEPARATOR = b"|"
HEADER = PROTOCOL_TAG + SEPARATOR
MAX_NICK = 32  # bytes
MAX_BODY = 512  # bytes
MAX_PACKET = 768  # receive buffer size


class PacketFormatError(Exception):
    """Raised when packet format is invalid."""
    pass


class BadTagError(PacketFormatError):
    """Raised when the protocol tag or version does not match."""
    pass


class MalformedPacketError(PacketFormatError):
    """Raised when the nick field is missing, unterminated or empty."""
    pass


def truncate_utf8(text: str, limit: int) -> bytes:
    """
    Encode text as UTF-8, cut to at most ``limit`` bytes.

    The cut never splits a multi-byte character.
    """
    data = text.encode('utf-8')
    if len(data) <= limit:
        return data
    return data[:limit].decode('utf-8', 'ignore').encode('utf-8')


def sanitize_text(text: str) -> str:
    """Remove every CR and LF, keeping the order of the remaining characters."""
    return text.replace('\r', '').replace('\n', '')


@dataclass
class ChatPacket:
    """
    A single chat line as carried on the wire.

    Fields:
        nick: Sender nickname (no separator, no control characters)
        text: Message body (CR/LF removed)
    """
    nick: str
    text: str

    def to_bytes(self) -> bytes:
        """Serialize packet to wire bytes."""
        return encode_packet(self.nick, self.text)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ChatPacket':
        """Deserialize packet from wire bytes."""
        return decode_packet(data)


def encode_packet(nick: str, text: str) -> bytes:
    """
    Build the wire form of a chat line.

    Oversized input is truncated silently; this never raises for length.

    Args:
        nick: Sender nickname, cut to MAX_NICK bytes
        text: Message body, CR/LF stripped and cut to MAX_BODY bytes

    Returns:
        Encoded packet bytes
    """
    if nick is None:
        nick = "anon"
    if text is None:
        text = ""

    body = truncate_utf8(sanitize_text(text), MAX_BODY)
    return HEADER + truncate_utf8(nick, MAX_NICK) + SEPARATOR + body


def _decode_field(raw: bytes, limit: int) -> str:
    return truncate_utf8(raw.decode('utf-8', 'replace'), limit).decode('utf-8')


def decode_packet(data: bytes) -> ChatPacket:
    """
    Parse raw bytes into a chat packet.

    Fields longer than their bounds are truncated rather than rejected, so a
    peer running a newer or buggy version cannot break this one.

    Args:
        data: Raw datagram payload

    Returns:
        Parsed ChatPacket

    Raises:
        BadTagError: If the payload does not start with the protocol tag
        MalformedPacketError: If the nick is empty or not terminated
    """
    data = bytes(data)
    if not data.startswith(HEADER):
        raise BadTagError(f"Unknown protocol tag: {data[:len(HEADER)]!r}")

    rest = data[len(HEADER):]
    nick_raw, sep, body_raw = rest.partition(SEPARATOR)
    if not sep:
        raise MalformedPacketError("Missing separator after nick")
    if not nick_raw:
        raise MalformedPacketError("Empty nick field")

    return ChatPacket(
        nick=_decode_field(nick_raw, MAX_NICK),
        text=_decode_field(body_raw, MAX_BODY),
    )


def validate_packet_format(data: bytes) -> bool:
    """
    Check whether bytes decode as a chat packet.

    Args:
        data: Raw datagram payload

    Returns:
        True if the payload is a well-formed packet
    """
    try:
        decode_packet(data)
        return True
    except PacketFormatError:
        return False


def format_raw(data: bytes) -> str:
    """Render an undecodable payload as printable text for fallback display."""
    text = bytes(data).decode('utf-8', 'replace')
    return ''.join(ch if ch.isprintable() else '?' for ch in text)
