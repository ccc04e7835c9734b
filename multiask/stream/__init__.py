"""Streaming answer ingestion: bytes to lines to events to answer state."""

from .decoder import FrameDecoder, iter_lines
from .events import (
    AnswerDoneEvent,
    Event,
    ProgressEvent,
    RECORD_PREFIX,
    StreamErrorEvent,
    TokenEvent,
    iter_events,
    parse_line,
)
from .progress import ProgressTracker
from .reducer import AnswerCollection, AnswerReducer, AnswerSlot
from .session import StreamSession, StreamSnapshot, TRANSPORT_FAILURE_MESSAGE

__all__ = [
    "AnswerCollection",
    "AnswerDoneEvent",
    "AnswerReducer",
    "AnswerSlot",
    "Event",
    "FrameDecoder",
    "ProgressEvent",
    "ProgressTracker",
    "RECORD_PREFIX",
    "StreamErrorEvent",
    "StreamSession",
    "StreamSnapshot",
    "TRANSPORT_FAILURE_MESSAGE",
    "TokenEvent",
    "iter_events",
    "iter_lines",
    "parse_line",
]
