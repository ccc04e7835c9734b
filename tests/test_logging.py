from __future__ import annotations

import logging

import pytest

from multiask.logging import get_log_file_path, log_call


def test_log_call_records_arguments_and_result(caplog) -> None:
    @log_call(logger="multiask.test", include_result=True)
    def add(left: int, right: int) -> int:
        return left + right

    with caplog.at_level(logging.DEBUG, logger="multiask.test"):
        assert add(2, right=3) == 5

    messages = [record.getMessage() for record in caplog.records]
    assert any("add(left=2, right=3)" in message for message in messages)
    assert any("returned 5" in message for message in messages)


def test_log_call_logs_and_reraises_failures(caplog) -> None:
    @log_call
    def explode() -> None:
        raise ValueError("boom")

    with caplog.at_level(logging.DEBUG):
        with pytest.raises(ValueError):
            explode()

    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].exc_info is not None


def test_get_log_file_path_reads_file_handler(tmp_path) -> None:
    logger = logging.getLogger("multiask.test.file")
    handler = logging.FileHandler(tmp_path / "run.log", encoding="utf-8")
    logger.addHandler(handler)
    try:
        assert get_log_file_path(logger) == tmp_path / "run.log"
    finally:
        logger.removeHandler(handler)
        handler.close()
