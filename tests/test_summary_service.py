from __future__ import annotations

from multiask.services.backend_client import BackendConnectionError, SummaryReply
from multiask.services.summary_service import SummaryService
from multiask.stream import AnswerSlot


class FakeSummaryClient:
    def __init__(self, replies: list[object] | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[tuple[str, str]] = []

    def summarize(self, question: str, answer: str):
        self.calls.append((question, answer))
        reply = self.replies.pop(0) if self.replies else SummaryReply(True, "short")
        if isinstance(reply, Exception):
            raise reply
        return reply


def ready_slot(index: int = 0) -> AnswerSlot:
    return AnswerSlot(
        index=index,
        question=f"Q{index}",
        answer="A long and detailed answer.",
        is_error=False,
        is_streaming=False,
    )


def test_first_request_caches_and_shows_summary() -> None:
    client = FakeSummaryClient([SummaryReply(True, "Brief.")])
    service = SummaryService(client)

    assert service.summarize(ready_slot()) == "Brief."

    assert client.calls == [("Q0", "A long and detailed answer.")]
    assert service.summary(0) == "Brief."
    assert service.is_shown(0)
    assert service.summarizing_index is None


def test_repeat_request_toggles_without_calling_backend() -> None:
    client = FakeSummaryClient()
    service = SummaryService(client)
    slot = ready_slot()

    service.summarize(slot)
    service.summarize(slot)
    assert not service.is_shown(0)
    service.summarize(slot)

    assert service.is_shown(0)
    assert len(client.calls) == 1


def test_streaming_or_failed_answers_cannot_be_summarized() -> None:
    client = FakeSummaryClient()
    service = SummaryService(client)
    streaming = AnswerSlot(index=0, question="Q", answer="par", is_error=False, is_streaming=True)
    failed = AnswerSlot(index=1, question="Q", answer="Error", is_error=True, is_streaming=False)

    assert service.summarize(streaming) is None
    assert service.summarize(failed) is None
    assert service.summarize(None) is None
    assert client.calls == []


def test_failed_requests_leave_cache_untouched() -> None:
    client = FakeSummaryClient(
        [BackendConnectionError("refused"), SummaryReply(False, ""), SummaryReply(True, "ok")]
    )
    service = SummaryService(client)
    slot = ready_slot(2)

    assert service.summarize(slot) is None
    assert service.summarize(slot) is None
    assert service.summary(2) is None
    assert not service.is_shown(2)

    assert service.summarize(slot) == "ok"
    assert len(client.calls) == 3


def test_set_shown_and_clear() -> None:
    service = SummaryService(FakeSummaryClient())
    service.set_shown(0, True)
    assert not service.is_shown(0)

    service.summarize(ready_slot())
    service.set_shown(0, False)
    assert not service.is_shown(0)

    service.clear()
    assert service.summary(0) is None
