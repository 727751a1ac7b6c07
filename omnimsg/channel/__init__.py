"""
Channel layer components for Omni Messenger.

This module provides the interactive side of a session:
- Non-blocking console line input
- The single-threaded chat loop
- The command-line interface
"""

from .io import (
    InputError,
    KeypressLineSource,
    LineAccumulator,
    LineEvent,
    LineSource,
    LineStatus,
    StreamLineSource,
    create_line_source,
)
from .chat import ChatLoop, ExitReason, LoopState, MessageEvent, RawEvent, StatusEvent

__all__ = [
    'InputError',
    'KeypressLineSource',
    'LineAccumulator',
    'LineEvent',
    'LineSource',
    'LineStatus',
    'StreamLineSource',
    'create_line_source',
    'ChatLoop',
    'ExitReason',
    'LoopState',
    'MessageEvent',
    'RawEvent',
    'StatusEvent',
]
