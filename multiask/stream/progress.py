"""Completion percentage derived from stream events."""

from __future__ import annotations

from .events import AnswerDoneEvent, Event, ProgressEvent


def _clamp(value: float, *, low: float = 0.0, high: float = 100.0) -> float:
    return float(min(high, max(low, value)))


class ProgressTracker:
    """Track the completion percentage of one submission.

    Progress events report "question N has started" and answer_done events
    report "question N has finished". The reported value never moves
    backwards within a run and always ends at 100.
    """

    def __init__(self, question_count: int = 0) -> None:
        self._question_count = max(question_count, 0)
        self._percent = 0.0
        self._finished = False

    @property
    def percent(self) -> float:
        return self._percent

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def question_count(self) -> int:
        return self._question_count

    def start(self, question_count: int) -> float:
        self._question_count = max(question_count, 0)
        self._percent = 0.0
        self._finished = False
        return self._percent

    def observe(self, event: Event) -> float:
        """Update from ``event`` and return the current percentage."""

        candidate: float | None = None
        if isinstance(event, ProgressEvent):
            if event.total > 0:
                candidate = event.current / event.total * 100
        elif isinstance(event, AnswerDoneEvent):
            if self._question_count > 0:
                candidate = (event.index + 1) / self._question_count * 100
        if candidate is not None:
            self._percent = max(self._percent, _clamp(candidate))
        return self._percent

    def finish(self) -> float:
        self._percent = 100.0
        self._finished = True
        return self._percent


__all__ = ["ProgressTracker"]
