from __future__ import annotations

import pytest

from multiask.stream.events import (
    AnswerDoneEvent,
    ProgressEvent,
    StreamErrorEvent,
    TokenEvent,
    iter_events,
    parse_line,
)


def test_parse_line_classifies_each_event_kind() -> None:
    assert parse_line(
        'data: {"type":"progress","index":0,"total":2,"current":1,"question":"Q1"}'
    ) == ProgressEvent(index=0, total=2, current=1, question="Q1")
    assert parse_line('data: {"type":"token","index":0,"chunk":"Hel"}') == TokenEvent(
        index=0, chunk="Hel"
    )
    assert parse_line(
        'data: {"type":"answer_done","index":1,"question":"Q2","answer":"Oops","error":true}'
    ) == AnswerDoneEvent(index=1, question="Q2", answer="Oops", error=True)
    assert parse_line('data: {"type":"error","error":"quota exceeded"}') == StreamErrorEvent(
        error="quota exceeded"
    )


@pytest.mark.parametrize(
    "line",
    [
        "",
        ": keep-alive",
        "event: message",
        'data:{"type":"token","index":0,"chunk":"x"}',
        ' data: {"type":"token","index":0,"chunk":"x"}',
    ],
)
def test_lines_without_prefix_are_skipped(line: str) -> None:
    assert parse_line(line) is None


@pytest.mark.parametrize(
    "line",
    [
        "data: ",
        "data: {not json",
        "data: [1, 2, 3]",
        'data: "just a string"',
        'data: {"type":"token","index":"0","chunk":"x"}',
        'data: {"type":"token","index":-1,"chunk":"x"}',
        'data: {"type":"token","index":true,"chunk":"x"}',
        'data: {"type":"token","index":0}',
        'data: {"type":"progress","total":2}',
        'data: {"type":"answer_done","index":0,"answer":42}',
        'data: {"type":"progress","index":0,"total":NaN,"current":1}',
        'data: {"type":"progress","index":0,"total":2,"current":Infinity}',
        'data: {"type":"progress","index":0,"total":-Infinity}',
        'data: {"type":"answer_done","index":0,"error":"false"}',
        'data: {"type":"answer_done","index":0,"error":1}',
    ],
)
def test_malformed_records_are_skipped(line: str) -> None:
    assert parse_line(line) is None


def test_unknown_type_is_ignored() -> None:
    assert parse_line('data: {"type":"heartbeat","index":0}') is None
    assert parse_line('data: {"index":0,"chunk":"x"}') is None


def test_optional_fields_fall_back_to_defaults() -> None:
    assert parse_line('data: {"type":"answer_done","index":3}') == AnswerDoneEvent(
        index=3, question="", answer="", error=False
    )
    assert parse_line('data: {"type":"progress","index":2}') == ProgressEvent(
        index=2, total=0, current=0, question=""
    )
    assert parse_line('data: {"type":"error"}') == StreamErrorEvent(error="Unknown error")


def test_trailing_carriage_return_is_tolerated() -> None:
    assert parse_line('data: {"type":"token","index":0,"chunk":"a"}\r') == TokenEvent(
        index=0, chunk="a"
    )


def test_iter_events_skips_bad_lines_and_continues() -> None:
    lines = [
        'data: {"type":"progress","index":0,"total":1,"current":1,"question":"Q"}',
        "data: {broken",
        'data: {"type":"progress","index":1,"total":NaN,"current":1}',
        ": comment",
        'data: {"type":"token","index":0,"chunk":"ok"}',
    ]

    events = list(iter_events(lines))

    assert events == [
        ProgressEvent(index=0, total=1, current=1, question="Q"),
        TokenEvent(index=0, chunk="ok"),
    ]
