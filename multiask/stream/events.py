"""Typed events carried by the answer stream and the line parser for them."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)


RECORD_PREFIX = "data: "


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Processing of the question at ``index`` has started."""

    index: int
    total: int
    current: int
    question: str


@dataclass(frozen=True, slots=True)
class TokenEvent:
    """A fragment of text to append to the answer at ``index``."""

    index: int
    chunk: str


@dataclass(frozen=True, slots=True)
class AnswerDoneEvent:
    """The answer at ``index`` is final.

    When ``error`` is true, ``answer`` carries a user-facing error message
    instead of content.
    """

    index: int
    question: str
    answer: str
    error: bool


@dataclass(frozen=True, slots=True)
class StreamErrorEvent:
    """A terminal message for the whole stream, not tied to one question."""

    error: str


Event = Union[ProgressEvent, TokenEvent, AnswerDoneEvent, StreamErrorEvent]


class MalformedRecordError(ValueError):
    """Raised internally when a record has the right prefix but a bad shape."""


def _require_index(payload: dict[str, Any]) -> int:
    value = payload.get("index")
    # bool is an int subclass; true/false are never valid positions.
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedRecordError(f"invalid index {value!r}")
    return value


def _optional_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecordError(f"invalid {key} {value!r}")
    # json.loads accepts NaN and Infinity.
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedRecordError(f"invalid {key} {value!r}")
    return int(value)


def _optional_text(payload: dict[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise MalformedRecordError(f"invalid {key} {value!r}")
    return value


def _optional_flag(payload: dict[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise MalformedRecordError(f"invalid {key} {value!r}")
    return value


def _build_progress(payload: dict[str, Any]) -> ProgressEvent:
    return ProgressEvent(
        index=_require_index(payload),
        total=_optional_int(payload, "total"),
        current=_optional_int(payload, "current"),
        question=_optional_text(payload, "question"),
    )


def _build_token(payload: dict[str, Any]) -> TokenEvent:
    chunk = payload.get("chunk")
    if not isinstance(chunk, str):
        raise MalformedRecordError(f"invalid chunk {chunk!r}")
    return TokenEvent(index=_require_index(payload), chunk=chunk)


def _build_answer_done(payload: dict[str, Any]) -> AnswerDoneEvent:
    return AnswerDoneEvent(
        index=_require_index(payload),
        question=_optional_text(payload, "question"),
        answer=_optional_text(payload, "answer"),
        error=_optional_flag(payload, "error"),
    )


def _build_stream_error(payload: dict[str, Any]) -> StreamErrorEvent:
    value = payload.get("error")
    if value is None or value == "":
        return StreamErrorEvent(error="Unknown error")
    return StreamErrorEvent(error=str(value))


_BUILDERS: dict[str, Callable[[dict[str, Any]], Event]] = {
    "progress": _build_progress,
    "token": _build_token,
    "answer_done": _build_answer_done,
    "error": _build_stream_error,
}


def parse_payload(payload: Any) -> Event | None:
    """Classify a decoded JSON record.

    Returns ``None`` for unknown ``type`` values so newer producers can add
    event kinds without breaking older clients. Raises
    :class:`MalformedRecordError` for known kinds with an invalid shape.
    """

    if not isinstance(payload, dict):
        raise MalformedRecordError("record is not a JSON object")
    kind = payload.get("type")
    builder = _BUILDERS.get(kind) if isinstance(kind, str) else None
    if builder is None:
        logger.debug("Ignoring record with unknown type", extra={"type": kind})
        return None
    return builder(payload)


def parse_line(line: str, *, prefix: str = RECORD_PREFIX) -> Event | None:
    """Return the event carried by ``line`` or ``None`` if it carries none.

    Keep-alives, comments and any other unprefixed lines, unparsable JSON and
    malformed records all yield ``None``; a single bad record never stops the
    stream.
    """

    if not line.startswith(prefix):
        return None
    body = line[len(prefix) :]
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        logger.debug(
            "Skipping unparsable record",
            extra={"error": str(exc), "record_preview": body[:120]},
        )
        return None
    try:
        return parse_payload(payload)
    except MalformedRecordError as exc:
        logger.debug(
            "Skipping malformed record",
            extra={"error": str(exc), "record_preview": body[:120]},
        )
        return None


def iter_events(lines: Iterable[str], *, prefix: str = RECORD_PREFIX) -> Iterator[Event]:
    """Lazily yield the events found in ``lines``."""

    for line in lines:
        event = parse_line(line, prefix=prefix)
        if event is not None:
            yield event


__all__ = [
    "AnswerDoneEvent",
    "Event",
    "MalformedRecordError",
    "ProgressEvent",
    "RECORD_PREFIX",
    "StreamErrorEvent",
    "TokenEvent",
    "iter_events",
    "parse_line",
    "parse_payload",
]
