from typing import Any

import pytest
from loguru import logger

from imbue.git_push.logging import log_span
from imbue.git_push.logging import setup_logging
from imbue.git_push.primitives import LogLevel


@pytest.fixture
def records() -> Any:
    collected: list[tuple[str, dict[str, Any]]] = []
    handler_id = logger.add(
        lambda message: collected.append((message.record["message"], dict(message.record["extra"]))),
        level="TRACE",
    )
    yield collected
    logger.remove(handler_id)


def test_log_span_logs_entry_and_carries_context(records: list[tuple[str, dict[str, Any]]]) -> None:
    with log_span("Pushing {}", "main", remote="origin"):
        logger.info("inside")

    messages = [message for message, _ in records]
    assert messages[0] == "Pushing main"
    assert ("inside", {"remote": "origin"}) in records
    assert messages[-1].startswith("Pushing main [done in ")


def test_log_span_marks_failures(records: list[tuple[str, dict[str, Any]]]) -> None:
    with pytest.raises(ValueError):
        with log_span("Fetching"):
            raise ValueError("boom")

    assert records[-1][0].startswith("Fetching [failed after ")


def test_setup_logging_filters_below_the_level(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging(LogLevel.WARNING)
    logger.info("hidden message")
    logger.warning("shown message")

    captured = capsys.readouterr()
    assert "hidden message" not in captured.err
    assert "shown message" in captured.err
