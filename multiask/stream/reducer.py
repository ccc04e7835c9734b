"""Reduce stream events into the per-question answer collection."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace

from .events import (
    AnswerDoneEvent,
    Event,
    ProgressEvent,
    StreamErrorEvent,
    TokenEvent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AnswerSlot:
    """Answer state for one question of a submission."""

    index: int
    question: str
    answer: str = ""
    is_error: bool = False
    is_streaming: bool = False

    @property
    def ready(self) -> bool:
        """Finished without an error; the answer can be summarized or discussed."""

        return not self.is_error and not self.is_streaming


class AnswerCollection(Mapping[int, AnswerSlot]):
    """Immutable mapping from question index to :class:`AnswerSlot`.

    Indexes may arrive out of allocation order, so slots are stored by key
    rather than position; absent indexes are simply missing. Iteration
    follows ascending index order.
    """

    __slots__ = ("_slots",)

    def __init__(self, slots: Mapping[int, AnswerSlot] | None = None) -> None:
        self._slots: dict[int, AnswerSlot] = dict(sorted((slots or {}).items()))

    def __getitem__(self, index: int) -> AnswerSlot:
        return self._slots[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AnswerCollection):
            return self._slots == other._slots
        return super().__eq__(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"AnswerCollection({list(self._slots.values())!r})"

    def with_slot(self, slot: AnswerSlot) -> "AnswerCollection":
        """Return a copy with ``slot`` stored at ``slot.index``."""

        updated = dict(self._slots)
        updated[slot.index] = slot
        return AnswerCollection(updated)

    def slots(self) -> list[AnswerSlot]:
        return list(self._slots.values())

    # ------------------------------------------------------------------
    # Derived queries. Nothing here is cached so the slots stay the only
    # source of truth.
    def answered_count(self) -> int:
        """Number of present slots that are not marked as errors."""

        return sum(1 for slot in self._slots.values() if not slot.is_error)

    def error_count(self) -> int:
        return sum(1 for slot in self._slots.values() if slot.is_error)

    def current_index(self) -> int:
        """Highest index that has started, or ``-1`` before the first progress."""

        if not self._slots:
            return -1
        return max(self._slots)

    def is_visible(self, index: int) -> bool:
        """Whether the slot at ``index`` has been reached by the stream."""

        return index in self._slots and index <= self.current_index()

    def streaming_indexes(self) -> list[int]:
        return [index for index, slot in self._slots.items() if slot.is_streaming]

    def is_complete(self, expected: int) -> bool:
        """Whether all ``expected`` questions have a finalised slot."""

        return all(
            index in self._slots and not self._slots[index].is_streaming
            for index in range(expected)
        )


class AnswerReducer:
    """Apply events to an :class:`AnswerCollection` without mutating it."""

    def apply(self, event: Event, answers: AnswerCollection) -> AnswerCollection:
        if isinstance(event, ProgressEvent):
            return answers.with_slot(
                AnswerSlot(
                    index=event.index,
                    question=event.question,
                    answer="",
                    is_error=False,
                    is_streaming=True,
                )
            )
        if isinstance(event, TokenEvent):
            slot = answers.get(event.index)
            if slot is None or not slot.is_streaming:
                logger.debug(
                    "Dropping token for inactive slot",
                    extra={"index": event.index, "slot_present": slot is not None},
                )
                return answers
            return answers.with_slot(replace(slot, answer=slot.answer + event.chunk))
        if isinstance(event, AnswerDoneEvent):
            return answers.with_slot(
                AnswerSlot(
                    index=event.index,
                    question=event.question,
                    answer=event.answer,
                    is_error=event.error,
                    is_streaming=False,
                )
            )
        if isinstance(event, StreamErrorEvent):
            return answers
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def apply_all(
        self, events: Iterable[Event], answers: AnswerCollection | None = None
    ) -> AnswerCollection:
        current = answers if answers is not None else AnswerCollection()
        for event in events:
            current = self.apply(event, current)
        return current

    @staticmethod
    def stream_error(event: Event) -> str | None:
        """Return the stream-scoped error message carried by ``event``, if any."""

        if isinstance(event, StreamErrorEvent):
            return event.error
        return None


__all__ = ["AnswerCollection", "AnswerReducer", "AnswerSlot"]
