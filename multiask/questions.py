"""Helpers for turning free-form input into a list of questions."""

from __future__ import annotations

from dataclasses import dataclass

MAX_CHARS = 5000

EMPTY_SUBMISSION_MESSAGE = "Please enter at least one question"


def clamp_input(text: str, *, max_chars: int = MAX_CHARS) -> str:
    """Truncate ``text`` to the input limit."""

    return text[:max_chars]


def parse_questions(text: str) -> list[str]:
    """Split ``text`` into questions, one per line, dropping blank lines."""

    return [line.strip() for line in text.split("\n") if line.strip()]


@dataclass(frozen=True, slots=True)
class QuestionStats:
    """Counters shown next to the question input."""

    characters: int
    words: int
    lines: int
    questions: int

    @classmethod
    def from_text(cls, text: str) -> "QuestionStats":
        return cls(
            characters=len(text),
            words=len(text.split()),
            lines=len(text.split("\n")),
            questions=len(parse_questions(text)),
        )


__all__ = [
    "EMPTY_SUBMISSION_MESSAGE",
    "MAX_CHARS",
    "QuestionStats",
    "clamp_input",
    "parse_questions",
]
