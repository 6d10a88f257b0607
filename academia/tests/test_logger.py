"""
Tests for the application logger helpers.
"""

import json
import logging

import pytest

from academia.common.logger import JsonFormatter, app_logger, configure_logger, log_execution_time, with_context


def _record(logger: logging.Logger, message: str, **kwargs) -> logging.LogRecord:
    captured = []

    class _Capture(logging.Handler):
        def emit(self, record):
            captured.append(record)

    handler = _Capture()
    logger.addHandler(handler)
    try:
        with_context(logger, **kwargs).warning(message)
    finally:
        logger.removeHandler(handler)
    return captured[0]


def test_json_formatter_merges_context():
    logger = configure_logger("academia-test-json", console_output=False)

    record = _record(logger, "streak updated", user_id="alice", streak=7)
    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "streak updated"
    assert payload["level"] == "WARNING"
    assert payload["user_id"] == "alice"
    assert payload["streak"] == 7


def test_adapter_context_can_be_extended():
    adapter = with_context(app_logger, user_id="alice").with_context(badge="first_steps")
    assert adapter.extra == {"user_id": "alice", "badge": "first_steps"}


@pytest.mark.asyncio
async def test_log_execution_time_wraps_coroutines():
    @log_execution_time()
    async def compute(value):
        return value * 2

    assert await compute(21) == 42


def test_log_execution_time_reraises():
    @log_execution_time()
    def explode():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        explode()
