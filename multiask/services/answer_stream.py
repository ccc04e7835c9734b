"""Qt-facing service that streams answers for a batch of questions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence

from PyQt6.QtCore import QObject, pyqtSignal

from ..logging import log_call
from ..questions import EMPTY_SUBMISSION_MESSAGE, parse_questions
from ..stream import (
    AnswerCollection,
    Event,
    StreamErrorEvent,
    StreamSession,
    StreamSnapshot,
    TRANSPORT_FAILURE_MESSAGE,
)
from .backend_client import BackendClient, BackendError
from .progress_service import ProgressService


logger = logging.getLogger(__name__)


PROGRESS_TASK_ID = "answer-stream"

ChunkSource = Callable[[Sequence[str]], Iterable[bytes]]


class AnswerStreamService(QObject):
    """Submit questions and publish the evolving answers.

    The service owns at most one :class:`StreamSession` at a time. Observers
    receive :class:`StreamSnapshot` objects; the answer collection inside a
    snapshot is immutable, so it is safe to read from any thread.
    """

    answers_changed = pyqtSignal(object)
    progress_changed = pyqtSignal(float)
    error_changed = pyqtSignal(str)
    loading_changed = pyqtSignal(bool)
    finished = pyqtSignal(object)

    def __init__(
        self,
        client: BackendClient | None = None,
        *,
        progress_service: ProgressService | None = None,
        chunk_source: ChunkSource | None = None,
    ) -> None:
        super().__init__()
        self.client = client or BackendClient()
        self.progress_service = progress_service
        self._chunk_source = chunk_source
        self._session: StreamSession | None = None
        self._questions: list[str] = []
        self._error: str | None = None
        self._lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._reported_percent = 0.0

    # ------------------------------------------------------------------
    @property
    def questions(self) -> list[str]:
        return list(self._questions)

    @property
    def answers(self) -> AnswerCollection:
        if self._session is None:
            return AnswerCollection()
        return self._session.answers

    @property
    def percent(self) -> float:
        if self._session is None:
            return 0.0
        return self._session.percent

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def loading(self) -> bool:
        return self._session is not None and self._session.loading

    def snapshot(self) -> StreamSnapshot:
        if self._session is None:
            return StreamSnapshot(
                answers=AnswerCollection(),
                percent=0.0,
                error=self._error,
                loading=False,
                question_count=0,
            )
        return self._session.snapshot()

    # ------------------------------------------------------------------
    @log_call(logger=logger, include_args=False)
    def submit(self, text: str) -> StreamSnapshot:
        """Parse ``text`` into questions and stream their answers to completion.

        Blocks until the stream ends. Transport failures are recorded as a
        stream-level error; already reduced answers are kept and progress is
        always finished at 100.
        """

        questions = parse_questions(text)
        if not questions:
            self._set_error(EMPTY_SUBMISSION_MESSAGE)
            return self.snapshot()

        with self._lock:
            if self.loading:
                logger.warning("Submission ignored while another stream is active")
                return self.snapshot()
            session = StreamSession(len(questions))
            self._session = session
            self._questions = questions
            self._reported_percent = 0.0

        self._set_error(None)
        self.loading_changed.emit(True)
        self.answers_changed.emit(session.snapshot())
        self.progress_changed.emit(0.0)
        if self.progress_service is not None:
            self.progress_service.start(
                PROGRESS_TASK_ID, f"Processing {len(questions)} question(s)"
            )
        logger.info("Streaming answers", extra={"question_count": len(questions)})

        try:
            session.consume(
                self._open_stream(questions),
                on_event=lambda event, snapshot: self._publish(session, event, snapshot),
            )
        except (BackendError, OSError) as exc:
            logger.error(
                "Answer stream failed",
                extra={"error": str(exc), "events_applied": session.event_count},
            )
            session.fail(TRANSPORT_FAILURE_MESSAGE)
            self._set_error(TRANSPORT_FAILURE_MESSAGE)
        finally:
            final = session.finish()
            self.progress_changed.emit(final.percent)
            if self.progress_service is not None:
                self.progress_service.finish(
                    PROGRESS_TASK_ID, final.error or "All questions processed"
                )
            self.loading_changed.emit(False)
            self.answers_changed.emit(final)
            self.finished.emit(final)

        logger.info(
            "Answer stream finished",
            extra={
                "answered": final.answered_count,
                "slots": len(final.answers),
                "error": final.error,
                "cancelled": session.cancelled,
            },
        )
        return final

    def start(self, text: str) -> threading.Thread | None:
        """Run :meth:`submit` on a worker thread.

        Returns ``None`` when a stream is already running.
        """

        if self.loading or (self._worker is not None and self._worker.is_alive()):
            logger.warning("Background submission ignored while another stream is active")
            return None
        worker = threading.Thread(
            target=self.submit, args=(text,), name="answer-stream", daemon=True
        )
        self._worker = worker
        worker.start()
        return worker

    def cancel(self) -> None:
        """Stop consuming the active stream after the current chunk."""

        session = self._session
        if session is not None and session.loading:
            logger.info("Cancelling answer stream")
            session.cancel()

    def clear(self) -> None:
        """Forget the current answers, questions and error."""

        self.cancel()
        with self._lock:
            self._session = None
            self._questions = []
        self._set_error(None)
        self.answers_changed.emit(self.snapshot())
        self.progress_changed.emit(0.0)

    # ------------------------------------------------------------------
    def _open_stream(self, questions: Sequence[str]) -> Iterator[bytes]:
        if self._chunk_source is not None:
            return iter(self._chunk_source(questions))
        return self.client.stream_questions(questions)

    def _publish(self, session: StreamSession, event: Event, snapshot: StreamSnapshot) -> None:
        if session is not self._session:
            return
        if isinstance(event, StreamErrorEvent):
            self._set_error(event.error)
            return
        self.answers_changed.emit(snapshot)
        if snapshot.percent == self._reported_percent:
            return
        self._reported_percent = snapshot.percent
        self.progress_changed.emit(snapshot.percent)
        if self.progress_service is not None:
            self.progress_service.update(
                PROGRESS_TASK_ID,
                message=f"{round(snapshot.percent)}% Complete",
                percent=snapshot.percent,
            )

    def _set_error(self, message: str | None) -> None:
        if message == self._error:
            return
        self._error = message
        self.error_changed.emit(message or "")


__all__ = ["AnswerStreamService", "PROGRESS_TASK_ID"]
