"""
Interactive command-line interface for Omni Messenger.

Serverless LAN chat: every peer binds the same UDP port and broadcasts each
typed line to the subnet.
"""

import argparse
import logging
import sys
from typing import Optional, TextIO

from ..config import (
    DEFAULT_BIND_ADDRESS,
    DEFAULT_BROADCAST,
    DEFAULT_NICK,
    DEFAULT_PORT,
    DEFAULT_RECEIVE_STRATEGY,
    YIELD_MS,
    ConfigError,
    SessionConfig,
)
from ..protocol.packet import encode_packet, format_raw
from ..transport.udp import RECEIVE_STRATEGIES, BroadcastTransport, TransportError
from ..utils.netinfo import list_broadcast_addresses
from .chat import HELP_TEXT, ChatEvent, ChatLoop, ExitReason, MessageEvent, RawEvent
from .io import StreamLineSource, create_line_source, nonblocking_fd


logger = logging.getLogger(__name__)

PROMPT = "> "


class ConsoleRenderer:
    """
    Prints chat events to a console stream.

    Each event is printed on its own line and followed by a fresh prompt, so
    incoming messages do not run into a half-typed line.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def __call__(self, event: ChatEvent) -> None:
        if isinstance(event, MessageEvent):
            line = f"[{event.address[0]}] {event.nick}: {event.text}"
        elif isinstance(event, RawEvent):
            line = f"[{event.address[0]}] {format_raw(event.data)}"
        else:
            line = event.text
        self.stream.write(f"\n{line}\n{PROMPT}")
        self.stream.flush()

    def prompt(self) -> None:
        self.stream.write(PROMPT)
        self.stream.flush()


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="omnimsg",
        description="Omni Messenger (omnimsg) - minimal serverless LAN chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Join the default channel as alice:
  omnimsg --nick alice

  # Send one message and exit:
  omnimsg --nick bob --send "lunch?"

  # Use a subnet broadcast address instead of 255.255.255.255:
  omnimsg --list-interfaces
  omnimsg --nick carol --broadcast 192.168.1.255
        """
    )

    parser.add_argument('-n', '--nick', default=DEFAULT_NICK,
                        help=f'nickname (default: {DEFAULT_NICK})')
    parser.add_argument('-p', '--port', type=int, default=DEFAULT_PORT,
                        help=f'UDP port (default: {DEFAULT_PORT})')
    parser.add_argument('-b', '--broadcast', default=DEFAULT_BROADCAST,
                        help=f'broadcast IP (default: {DEFAULT_BROADCAST})')
    parser.add_argument('--bind', default=DEFAULT_BIND_ADDRESS, metavar='IP',
                        help=f'local address to bind (default: {DEFAULT_BIND_ADDRESS})')
    parser.add_argument('--send', metavar='TEXT',
                        help='send one message and exit')
    parser.add_argument('--receive-strategy', choices=sorted(RECEIVE_STRATEGIES),
                        default=DEFAULT_RECEIVE_STRATEGY,
                        help=f'how to poll the socket (default: {DEFAULT_RECEIVE_STRATEGY})')
    parser.add_argument('--yield-ms', type=int, default=YIELD_MS,
                        help=f'pause between polls in milliseconds (default: {YIELD_MS})')
    parser.add_argument('--max-drain', type=int, default=None, metavar='N',
                        help='handle at most N datagrams per poll (default: all)')
    parser.add_argument('--list-interfaces', action='store_true',
                        help='list local IPv4 interfaces and broadcast addresses')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='enable debug logging')
    return parser


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr, quiet unless verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )


def config_from_args(args: argparse.Namespace) -> SessionConfig:
    """
    Build a session configuration from parsed options.

    Raises:
        ConfigError: If any option value is invalid
    """
    return SessionConfig(
        nick=args.nick,
        port=args.port,
        broadcast=args.broadcast,
        bind_address=args.bind,
        receive_strategy=args.receive_strategy,
        yield_ms=args.yield_ms,
        max_drain=args.max_drain,
    )


def list_interfaces(stream: Optional[TextIO] = None) -> int:
    """Print local interfaces with their broadcast addresses."""
    stream = stream or sys.stdout
    interfaces = list_broadcast_addresses()
    if not interfaces:
        stream.write("No IPv4 interfaces found\n")
        return 1
    for entry in interfaces:
        stream.write(f"  {entry.interface:<12} {entry.address:<15} broadcast {entry.broadcast or '-'}\n")
    return 0


def send_once(config: SessionConfig, text: str) -> int:
    """
    Broadcast a single message.

    Returns:
        Process exit status (0 on success)
    """
    try:
        with BroadcastTransport(config.port, config.bind_address) as transport:
            transport.send(encode_packet(config.nick, text), config.destination)
    except TransportError as e:
        logger.error(f"Send-once failed: {e}")
        print(str(e), file=sys.stderr)
        return 1
    return 0


def print_banner(config: SessionConfig, stream: TextIO) -> None:
    stream.write("Omni Messenger (omnimsg) - LAN chat (UDP broadcast)\n")
    stream.write(f"  nick      : {config.nick}\n")
    stream.write(f"  port      : {config.port}\n")
    stream.write(f"  broadcast : {config.broadcast}\n")
    stream.write("\nType a message and press Enter to broadcast.\n")
    stream.write(f"{HELP_TEXT}\n\n")
    stream.flush()


def run_session(config: SessionConfig, stream: Optional[TextIO] = None,
                stdin=None) -> int:
    """
    Run an interactive chat session until the user leaves.

    Binds the socket, switches stdin to non-blocking mode where needed, runs
    the chat loop and restores everything afterwards.

    Args:
        config: Session configuration
        stream: Console output (default: sys.stdout)
        stdin: Input stream with a file descriptor (default: sys.stdin)

    Returns:
        Process exit status
    """
    stream = stream or sys.stdout
    renderer = ConsoleRenderer(stream)

    try:
        transport = BroadcastTransport(config.port, config.bind_address)
        transport.bind()
    except TransportError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        source = transport.receiver(config.receive_strategy)
        lines = create_line_source(stdin if stdin is not None else sys.stdin)
        loop = ChatLoop(config, source, lines, transport, renderer,
                        prompt=renderer.prompt)

        print_banner(config, stream)
        renderer.prompt()

        try:
            if isinstance(lines, StreamLineSource):
                with nonblocking_fd(lines.fd):
                    reason = loop.run()
            else:
                reason = loop.run()
        except KeyboardInterrupt:
            reason = ExitReason.CANCELLED
    except TransportError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        transport.close()

    logger.info(f"Session ended: {reason.value}")
    stream.write("\nBye.\n")
    stream.flush()
    return 1 if reason is ExitReason.INPUT_ERROR else 0


def main(argv=None) -> int:
    """Main entry point for the omnimsg command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.list_interfaces:
        return list_interfaces()

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.send is not None:
        return send_once(config, args.send)

    return run_session(config)


if __name__ == '__main__':
    sys.exit(main())
