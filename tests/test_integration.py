"""
Integration Tests for Omni Messenger.

Tests the chat loop against scripted sources and end-to-end over loopback UDP.
"""

import io
import time

import pytest
from omnimsg.channel.chat import (
    HELP_TEXT,
    ChatLoop,
    ExitReason,
    LoopState,
    MessageEvent,
    RawEvent,
    StatusEvent,
)
from omnimsg.channel.interactive import ConsoleRenderer
from omnimsg.channel.io import CANCELLED, NO_LINE, InputError, LineEvent, LineStatus
from omnimsg.config import SessionConfig
from omnimsg.protocol.packet import decode_packet, encode_packet
from omnimsg.transport.udp import BroadcastTransport, Datagram, TransportError


PEER = ("192.168.1.20", 24250)


class ScriptedDatagramSource:
    """Datagram source returning queued datagrams, then None."""

    def __init__(self, items=()):
        self.items = list(items)
        self.calls = 0

    def queue(self, *items):
        self.items.extend(items)

    def try_receive(self):
        self.calls += 1
        if not self.items:
            return None
        item = self.items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class ScriptedLineSource:
    """Line source returning scripted events, then no line."""

    def __init__(self, *events):
        self.events = list(events)
        self.polls = 0

    def poll(self):
        self.polls += 1
        if not self.events:
            return NO_LINE
        event = self.events.pop(0)
        if isinstance(event, BaseException):
            raise event
        return event


class RecordingTransport:
    """Transport that records sends, optionally failing."""

    def __init__(self, journal=None, fail=False):
        self.sent = []
        self.journal = journal if journal is not None else []
        self.fail = fail

    def send(self, data, destination):
        if self.fail:
            raise TransportError("sendto() failed: Network is unreachable")
        self.sent.append((data, destination))
        self.journal.append(('send', data))
        return len(data)


def line(text):
    return LineEvent(LineStatus.LINE_READY, text)


def make_loop(datagrams=(), lines=(), fail_send=False, config=None, **kwargs):
    journal = []
    source = ScriptedDatagramSource(datagrams)
    line_source = ScriptedLineSource(*lines)
    transport = RecordingTransport(journal, fail=fail_send)
    rendered = []

    def render(event):
        rendered.append(event)
        journal.append(('render', event))

    loop = ChatLoop(config or SessionConfig(nick="alice"), source, line_source,
                    transport, render, sleep=lambda s: None, **kwargs)
    return loop, source, line_source, transport, rendered, journal


class TestDrainPhase:
    """Test receiving and rendering."""

    def test_message_rendered(self):
        loop, _, _, _, rendered, _ = make_loop(
            datagrams=[Datagram(b"OM1|bob|hi there", PEER)])

        assert loop.drain() == 1
        assert rendered == [MessageEvent(PEER, "bob", "hi there")]

    def test_undecodable_rendered_raw(self):
        """Test a datagram that fails to decode is still shown."""
        loop, _, _, _, rendered, _ = make_loop(
            datagrams=[Datagram(b"not a chat packet", PEER)])

        loop.drain()

        assert rendered == [RawEvent(PEER, b"not a chat packet")]
        assert loop.stats['malformed'] == 1

    def test_drains_until_nothing_pending(self):
        datagrams = [Datagram(encode_packet("bob", f"m{i}"), PEER) for i in range(5)]
        loop, source, _, _, rendered, _ = make_loop(datagrams=datagrams)

        assert loop.drain() == 5
        assert [e.text for e in rendered] == ["m0", "m1", "m2", "m3", "m4"]
        assert source.calls == 6

    def test_receive_error_reported_not_fatal(self):
        """Test a receive failure ends the drain but not the session."""
        loop, source, _, _, rendered, _ = make_loop(datagrams=[
            TransportError("recvfrom() failed: Connection reset"),
            Datagram(b"OM1|bob|later", PEER),
        ])

        assert loop.step() is True
        assert rendered == [StatusEvent("recvfrom() failed: Connection reset")]
        assert loop.state is LoopState.RUNNING

        loop.step()
        assert rendered[-1] == MessageEvent(PEER, "bob", "later")

    def test_drain_cap(self):
        """Test the optional per-iteration cap leaves the rest for later."""
        datagrams = [Datagram(encode_packet("bob", str(i)), PEER) for i in range(5)]
        loop, _, _, _, rendered, _ = make_loop(datagrams=datagrams, max_drain=2)

        assert loop.drain() == 2
        assert loop.drain() == 2
        assert loop.drain() == 1
        assert len(rendered) == 5

    def test_drain_cap_from_config(self):
        config = SessionConfig(nick="alice", max_drain=1)
        loop, _, _, _, _, _ = make_loop(
            datagrams=[Datagram(b"OM1|bob|a", PEER), Datagram(b"OM1|bob|b", PEER)],
            config=config)

        assert loop.drain() == 1


class TestInputPhase:
    """Test command dispatch and sending."""

    def test_line_is_broadcast(self):
        loop, _, _, transport, _, _ = make_loop(lines=[line("hello")])

        loop.step()

        assert transport.sent == [(b"OM1|alice|hello", ("255.255.255.255", 24250))]
        assert loop.stats['sent'] == 1

    def test_quit_command(self):
        loop, _, _, transport, _, _ = make_loop(lines=[line("/quit")])

        assert loop.step() is False
        assert loop.state is LoopState.TERMINATING
        assert loop.exit_reason is ExitReason.QUIT
        assert transport.sent == []

    def test_help_command(self):
        loop, _, _, transport, rendered, _ = make_loop(lines=[line("/help")])

        assert loop.step() is True
        assert rendered == [StatusEvent(HELP_TEXT)]
        assert transport.sent == []

    @pytest.mark.parametrize("text", ["", "   ", "\t"])
    def test_blank_line_not_sent(self, text):
        loop, _, _, transport, rendered, _ = make_loop(lines=[line(text)])

        assert loop.step() is True
        assert transport.sent == []
        assert rendered == []

    def test_cancel_terminates(self):
        loop, _, _, _, _, _ = make_loop(lines=[CANCELLED])

        assert loop.step() is False
        assert loop.exit_reason is ExitReason.CANCELLED

    def test_input_error_terminates(self):
        """Test a broken input stream ends the loop instead of spinning."""
        loop, _, _, _, rendered, _ = make_loop(lines=[InputError("stdin read failed")])

        assert loop.step() is False
        assert loop.exit_reason is ExitReason.INPUT_ERROR
        assert rendered == [StatusEvent("stdin read failed")]

    def test_send_failure_not_fatal(self):
        """Test a failed broadcast is reported and the session continues."""
        loop, _, _, _, rendered, _ = make_loop(lines=[line("hello")], fail_send=True)

        assert loop.step() is True
        assert isinstance(rendered[0], StatusEvent)
        assert loop.stats['send_errors'] == 1

    def test_prompt_after_sent_and_empty_lines(self):
        """Test the prompt is re-shown after a sent line and after an empty line."""
        prompts = []
        loop, _, _, _, _, _ = make_loop(
            lines=[line("hello"), line(""), line("/help"), line("/quit")],
            prompt=lambda: prompts.append(len(prompts)))

        loop.step()
        assert len(prompts) == 1
        loop.step()
        assert len(prompts) == 2
        loop.step()
        loop.step()
        assert len(prompts) == 2

    def test_no_prompt_after_failed_send(self):
        prompts = []
        loop, _, _, _, rendered, _ = make_loop(
            lines=[line("hello")], fail_send=True, prompt=lambda: prompts.append(1))

        loop.step()

        assert prompts == []
        assert isinstance(rendered[0], StatusEvent)

    def test_input_polled_once_per_iteration(self):
        loop, _, lines, transport, _, _ = make_loop(lines=[line("one"), line("two")])

        loop.step()

        assert lines.polls == 1
        assert [data for data, _ in transport.sent] == [b"OM1|alice|one"]


class TestOrdering:
    """Test the per-iteration schedule."""

    def test_drain_before_input(self):
        """Test queued datagrams are all rendered before the input line is handled."""
        datagrams = [Datagram(encode_packet("bob", f"m{i}"), PEER) for i in range(3)]
        loop, _, _, _, _, journal = make_loop(datagrams=datagrams, lines=[line("reply")])

        loop.step()

        assert [kind for kind, _ in journal] == ['render', 'render', 'render', 'send']

    def test_messages_rendered_even_when_quitting(self):
        datagrams = [Datagram(b"OM1|bob|bye", PEER)]
        loop, _, _, _, rendered, _ = make_loop(datagrams=datagrams, lines=[line("/quit")])

        loop.step()

        assert rendered == [MessageEvent(PEER, "bob", "bye")]
        assert loop.exit_reason is ExitReason.QUIT


class TestRun:
    """Test the full loop with its pause."""

    def test_sleeps_between_iterations(self):
        """Test every iteration that continues is followed by the yield delay."""
        delays = []
        loop, _, _, _, _, _ = make_loop(lines=[NO_LINE, NO_LINE, NO_LINE, line("/quit")])
        loop.sleep = delays.append

        assert loop.run() is ExitReason.QUIT
        assert delays == [0.01, 0.01, 0.01]

    def test_custom_yield(self):
        delays = []
        config = SessionConfig(nick="alice", yield_ms=50)
        loop, _, _, _, _, _ = make_loop(lines=[NO_LINE, CANCELLED], config=config)
        loop.sleep = delays.append

        assert loop.run() is ExitReason.CANCELLED
        assert delays == [0.05]

    def test_step_after_termination(self):
        loop, source, _, _, _, _ = make_loop(lines=[line("/quit")])
        loop.run()
        calls = source.calls

        assert loop.step() is False
        assert source.calls == calls


class TestConsoleRenderer:
    """Test console output format."""

    def test_message_format(self):
        out = io.StringIO()
        ConsoleRenderer(out)(MessageEvent(("10.0.0.7", 24250), "alice", "hello"))

        assert out.getvalue() == "\n[10.0.0.7] alice: hello\n> "

    def test_raw_format(self):
        out = io.StringIO()
        ConsoleRenderer(out)(RawEvent(("10.0.0.7", 24250), b"junk\x01"))

        assert out.getvalue() == "\n[10.0.0.7] junk?\n> "

    def test_status_format(self):
        out = io.StringIO()
        ConsoleRenderer(out)(StatusEvent(HELP_TEXT))

        assert out.getvalue() == f"\n{HELP_TEXT}\n> "


class TestEndToEnd:
    """Two sessions exchanging a message over loopback UDP."""

    def test_alice_to_bob(self):
        """Test A sends 'hello' and B renders it tagged with A's address."""
        with BroadcastTransport(0, "127.0.0.1") as bob_transport, \
                BroadcastTransport(0, "127.0.0.1") as alice_transport:
            bob_port = bob_transport.port
            alice_config = SessionConfig(nick="alice", port=bob_port, broadcast="127.0.0.1")
            bob_config = SessionConfig(nick="bob", port=bob_port, broadcast="127.0.0.1")

            alice = ChatLoop(alice_config, alice_transport.receiver(),
                             ScriptedLineSource(line("hello")), alice_transport,
                             render=lambda event: None)
            received = []
            bob = ChatLoop(bob_config, bob_transport.receiver(),
                           ScriptedLineSource(), bob_transport, render=received.append)

            alice.step()

            deadline = time.monotonic() + 2.0
            while not received and time.monotonic() < deadline:
                bob.step()
                time.sleep(0.01)

            alice_address = alice_transport.get_local_address()

        assert received == [MessageEvent(alice_address, "alice", "hello")]

    def test_raw_bytes_on_the_wire(self):
        """Test the datagram payload decodes to the sender's nick and text."""
        with BroadcastTransport(0, "127.0.0.1") as receiver, \
                BroadcastTransport(0, "127.0.0.1") as sender:
            config = SessionConfig(nick="alice", port=receiver.port, broadcast="127.0.0.1")
            loop = ChatLoop(config, sender.receiver(), ScriptedLineSource(),
                            sender, render=lambda event: None)
            loop.send_text("hello")

            source = receiver.receiver("poll")
            deadline = time.monotonic() + 2.0
            datagram = None
            while datagram is None and time.monotonic() < deadline:
                datagram = source.try_receive()
                time.sleep(0.005)

        packet = decode_packet(datagram.data)
        assert (packet.nick, packet.text) == ("alice", "hello")
