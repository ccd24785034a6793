"""
Unit tests for the logging subsystem.

Test Coverage
-------------
- LogContext scoping (sync and async)
- set/get/clear helpers
- ContextFilter record enrichment
- JSONFormatter output
"""

import json
import logging

import pytest

from progression.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    get_logging_health,
    set_log_context,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord(
        name="progression.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.mark.unit
class TestLogContext:
    """Test context propagation."""

    def test_scoped_context_is_reset(self):
        with LogContext(user_id="user-a", operation="redeem") as ctx:
            inside = get_log_context()

        assert inside["user_id"] == "user-a"
        assert inside["operation"] == "redeem"
        assert inside["correlation_id"] == ctx.context["correlation_id"]
        assert get_log_context() == {}

    def test_request_id_doubles_as_correlation_id(self):
        with LogContext(request_id="req-1"):
            context = get_log_context()

        assert context["correlation_id"] == "req-1"
        assert context["request_id"] == "req-1"

    def test_nested_contexts_restore_outer(self):
        with LogContext(user_id="outer"):
            with LogContext(user_id="inner"):
                assert get_log_context()["user_id"] == "inner"
            assert get_log_context()["user_id"] == "outer"

    async def test_async_context(self):
        async with LogContext(user_id="user-a", component="activity_hook"):
            context = get_log_context()

        assert context["component"] == "activity_hook"
        assert get_log_context() == {}

    def test_set_merges_and_clear_resets(self):
        set_log_context(user_id="user-a")
        set_log_context(operation="check_in", request_id="req-9")

        context = get_log_context()
        assert context["user_id"] == "user-a"
        assert context["operation"] == "check_in"
        assert context["correlation_id"] == "req-9"

        clear_log_context()
        assert get_log_context() == {}


@pytest.mark.unit
class TestFormatting:
    """Test record enrichment and JSON output."""

    def test_filter_defaults_without_context(self):
        record = _record()

        assert ContextFilter().filter(record) is True
        assert record.user_id == "N/A"
        assert record.correlation_id == "N/A"
        assert record.component == "progression"

    def test_filter_copies_context(self):
        record = _record()
        with LogContext(user_id="user-a", correlation_id="corr-1", operation="award"):
            ContextFilter().filter(record)

        assert record.user_id == "user-a"
        assert record.correlation_id == "corr-1"
        assert record.operation == "award"

    def test_json_formatter_includes_context_and_extra(self):
        record = _record(msg="Points awarded", points=50)
        with LogContext(user_id="user-a", correlation_id="corr-1"):
            ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Points awarded"
        assert payload["level"] == "INFO"
        assert payload["user_id"] == "user-a"
        assert payload["correlation_id"] == "corr-1"
        assert "source" not in payload
        assert payload["extra"] == {"points": 50}

    def test_json_formatter_stringifies_unknown_types(self):
        record = _record(when=object)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["extra"]["when"] == str(object)

    def test_logging_health_reports_queue(self):
        health = get_logging_health()

        assert health.initialized is True
        assert health.queue_max_size > 0
