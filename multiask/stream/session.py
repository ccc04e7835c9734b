"""Drive one submission's byte stream through decoding and reduction."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .decoder import FrameDecoder
from .events import Event, iter_events
from .progress import ProgressTracker
from .reducer import AnswerCollection, AnswerReducer

logger = logging.getLogger(__name__)


TRANSPORT_FAILURE_MESSAGE = "Failed to process questions. Please try again."


@dataclass(frozen=True, slots=True)
class StreamSnapshot:
    """Read-only view of a session handed to observers."""

    answers: AnswerCollection
    percent: float
    error: str | None
    loading: bool
    question_count: int

    @property
    def current_index(self) -> int:
        return self.answers.current_index()

    @property
    def answered_count(self) -> int:
        return self.answers.answered_count()


class StreamSession:
    """State for one submission of questions.

    The session is the single writer of its answer collection. Each chunk is
    fully decoded and its events applied before the next chunk is pulled from
    the source, so observers see events strictly in arrival order.
    """

    def __init__(
        self,
        question_count: int,
        *,
        reducer: AnswerReducer | None = None,
        tracker: ProgressTracker | None = None,
    ) -> None:
        self._reducer = reducer or AnswerReducer()
        self._tracker = tracker or ProgressTracker()
        self._tracker.start(question_count)
        self._question_count = max(question_count, 0)
        self._answers = AnswerCollection()
        self._error: str | None = None
        self._loading = True
        self._cancelled = False
        self._event_count = 0

    # ------------------------------------------------------------------
    @property
    def answers(self) -> AnswerCollection:
        return self._answers

    @property
    def percent(self) -> float:
        return self._tracker.percent

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def event_count(self) -> int:
        return self._event_count

    def snapshot(self) -> StreamSnapshot:
        return StreamSnapshot(
            answers=self._answers,
            percent=self._tracker.percent,
            error=self._error,
            loading=self._loading,
            question_count=self._question_count,
        )

    # ------------------------------------------------------------------
    def apply(self, event: Event) -> None:
        """Apply a single event to the answers, error channel and progress."""

        self._event_count += 1
        self._answers = self._reducer.apply(event, self._answers)
        message = self._reducer.stream_error(event)
        if message is not None:
            logger.warning("Stream reported an error", extra={"error": message})
            self._error = message
        self._tracker.observe(event)

    def consume(
        self,
        chunks: Iterable[bytes],
        *,
        on_event: Callable[[Event, StreamSnapshot], None] | None = None,
    ) -> StreamSnapshot:
        """Read ``chunks`` to the end (or until cancelled) and apply their events.

        Exceptions raised by the chunk source propagate to the caller, which
        is expected to record them with :meth:`fail`. Slots already reduced
        are left as they are.
        """

        decoder = FrameDecoder()
        chunk_count = 0
        iterator = iter(chunks)
        try:
            for chunk in iterator:
                if self._cancelled:
                    break
                chunk_count += 1
                for event in iter_events(decoder.feed(chunk)):
                    self.apply(event)
                    if on_event is not None:
                        on_event(event, self.snapshot())
                if self._cancelled:
                    break
            else:
                decoder.finish()
        finally:
            close = getattr(iterator, "close", None)
            if self._cancelled and callable(close):
                close()
        logger.debug(
            "Stream consumed",
            extra={
                "chunks": chunk_count,
                "events": self._event_count,
                "cancelled": self._cancelled,
            },
        )
        return self.snapshot()

    def fail(self, message: str = TRANSPORT_FAILURE_MESSAGE) -> None:
        """Record a terminal transport-level failure."""

        self._error = message

    def cancel(self) -> None:
        self._cancelled = True

    def finish(self) -> StreamSnapshot:
        """End the session; progress is forced to 100 on every path."""

        self._loading = False
        self._tracker.finish()
        return self.snapshot()


__all__ = ["StreamSession", "StreamSnapshot", "TRANSPORT_FAILURE_MESSAGE"]
