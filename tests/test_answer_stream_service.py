"""Tests for the Qt answer streaming service."""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterator, Sequence

import pytest

pytest.importorskip("PyQt6", reason="PyQt6 is required for service tests", exc_type=ImportError)

from PyQt6.QtCore import QCoreApplication

from multiask.questions import EMPTY_SUBMISSION_MESSAGE
from multiask.services.answer_stream import PROGRESS_TASK_ID, AnswerStreamService
from multiask.services.backend_client import BackendConnectionError
from multiask.services.progress_service import ProgressService, ProgressUpdate
from multiask.stream import TRANSPORT_FAILURE_MESSAGE


os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qt_app() -> QCoreApplication:
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


def record(payload: dict[str, object]) -> bytes:
    return ("data: " + json.dumps(payload) + "\n").encode("utf-8")


def scripted_stream(questions: Sequence[str]) -> list[bytes]:
    chunks: list[bytes] = []
    for index, question in enumerate(questions):
        chunks.append(
            record(
                {
                    "type": "progress",
                    "index": index,
                    "total": len(questions),
                    "current": index + 1,
                    "question": question,
                }
            )
        )
        chunks.append(record({"type": "token", "index": index, "chunk": "ans "}))
        chunks.append(record({"type": "token", "index": index, "chunk": question}))
        chunks.append(
            record(
                {
                    "type": "answer_done",
                    "index": index,
                    "question": question,
                    "answer": f"ans {question}",
                    "error": False,
                }
            )
        )
    return chunks


class Recorder:
    def __init__(self, service: AnswerStreamService) -> None:
        self.snapshots: list[object] = []
        self.percents: list[float] = []
        self.errors: list[str] = []
        self.loading: list[bool] = []
        self.finished: list[object] = []
        service.answers_changed.connect(self.snapshots.append)
        service.progress_changed.connect(self.percents.append)
        service.error_changed.connect(self.errors.append)
        service.loading_changed.connect(self.loading.append)
        service.finished.connect(self.finished.append)


def test_submit_streams_answers_and_emits_signals(qt_app) -> None:
    service = AnswerStreamService(chunk_source=scripted_stream)
    recorder = Recorder(service)

    final = service.submit("  Why?\n\nHow?  \n")

    assert service.questions == ["Why?", "How?"]
    assert [slot.answer for slot in final.answers.values()] == ["ans Why?", "ans How?"]
    assert final.percent == 100.0
    assert final.loading is False
    assert recorder.loading == [True, False]
    assert recorder.percents[0] == 0.0
    assert recorder.percents[-1] == 100.0
    assert recorder.percents == sorted(recorder.percents)
    assert recorder.finished == [final]
    streaming_texts = [
        snapshot.answers[0].answer
        for snapshot in recorder.snapshots
        if 0 in snapshot.answers and snapshot.answers[0].is_streaming
    ]
    assert streaming_texts == ["", "ans ", "ans Why?"]
    assert service.loading is False


def test_empty_submission_sets_error_without_streaming(qt_app) -> None:
    calls: list[Sequence[str]] = []

    def source(questions: Sequence[str]) -> list[bytes]:
        calls.append(questions)
        return []

    service = AnswerStreamService(chunk_source=source)
    recorder = Recorder(service)

    snapshot = service.submit(" \n\n   ")

    assert calls == []
    assert service.error == EMPTY_SUBMISSION_MESSAGE
    assert recorder.errors == [EMPTY_SUBMISSION_MESSAGE]
    assert recorder.loading == []
    assert len(snapshot.answers) == 0


def test_transport_failure_keeps_answers_and_finishes_progress(qt_app) -> None:
    def failing(questions: Sequence[str]) -> Iterator[bytes]:
        yield from scripted_stream(questions)[:4]
        raise BackendConnectionError("connection reset")

    service = AnswerStreamService(chunk_source=failing)
    recorder = Recorder(service)

    final = service.submit("First\nSecond")

    assert final.error == TRANSPORT_FAILURE_MESSAGE
    assert service.error == TRANSPORT_FAILURE_MESSAGE
    assert final.answers[0].answer == "ans First"
    assert 1 not in final.answers
    assert final.percent == 100.0
    assert recorder.loading == [True, False]
    assert TRANSPORT_FAILURE_MESSAGE in recorder.errors


def test_stream_error_record_surfaces_message(qt_app) -> None:
    def source(questions: Sequence[str]) -> list[bytes]:
        return scripted_stream(questions)[:2] + [record({"type": "error", "error": "Rate limited"})]

    service = AnswerStreamService(chunk_source=source)

    final = service.submit("Only")

    assert service.error == "Rate limited"
    assert final.error == "Rate limited"
    assert final.answers[0].is_streaming is True


def test_new_submission_clears_previous_error(qt_app) -> None:
    service = AnswerStreamService(chunk_source=scripted_stream)
    service.submit("")
    assert service.error == EMPTY_SUBMISSION_MESSAGE

    service.submit("Again?")

    assert service.error is None


def test_submission_is_rejected_while_loading(qt_app) -> None:
    release = threading.Event()
    entered = threading.Event()

    def slow(questions: Sequence[str]) -> Iterator[bytes]:
        entered.set()
        release.wait(5)
        yield from scripted_stream(questions)

    service = AnswerStreamService(chunk_source=slow)
    worker = service.start("One")
    assert worker is not None
    assert entered.wait(5)

    assert service.loading is True
    assert service.start("Two") is None
    rejected = service.submit("Two")

    release.set()
    worker.join(5)

    assert rejected.loading is True
    assert service.questions == ["One"]
    assert service.loading is False
    assert service.answers[0].answer == "ans One"


def test_clear_resets_state(qt_app) -> None:
    service = AnswerStreamService(chunk_source=scripted_stream)
    service.submit("Q")
    recorder = Recorder(service)

    service.clear()

    assert len(service.answers) == 0
    assert service.questions == []
    assert service.percent == 0.0
    assert service.error is None
    assert recorder.percents == [0.0]


def test_progress_service_receives_task_updates(qt_app) -> None:
    progress = ProgressService()
    updates: list[ProgressUpdate] = []
    progress.subscribe(updates.append)
    service = AnswerStreamService(progress_service=progress, chunk_source=scripted_stream)

    service.submit("A\nB\nC\nD")

    assert all(update.task_id == PROGRESS_TASK_ID for update in updates)
    assert updates[0].percent == 0.0
    assert updates[-1].percent == 100.0
    assert updates[-1].message == "All questions processed"
    assert progress.latest(PROGRESS_TASK_ID) == updates[-1]
    assert [update.percent for update in updates[1:-1]] == [25.0, 50.0, 75.0, 100.0]
