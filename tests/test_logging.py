"""
Tests for structured logging helpers.
"""
import json
import logging

import pytest

from postrelay.logging_config import JsonFormatter, get_logger, timed


def _record(message="Post scheduled", **context):
    record = logging.LogRecord("postrelay.test", logging.INFO, __file__, 1, message, None, None)
    record.context = context
    record.logger_name = "postrelay.test"
    return record


class TestJsonFormatter:

    def test_context_is_merged_into_the_line(self):
        line = json.loads(JsonFormatter().format(_record(job_id="job-1", delay_seconds=60)))

        assert line["message"] == "Post scheduled"
        assert line["level"] == "INFO"
        assert line["logger"] == "postrelay.test"
        assert line["job_id"] == "job-1"
        assert line["delay_seconds"] == 60

    def test_credentials_are_redacted(self):
        line = json.loads(JsonFormatter().format(_record(access_token="tw-access-token", signature="eyJ...")))

        assert line["access_token"] == "[redacted]"
        assert line["signature"] == "[redacted]"


class TestStructuredLogger:

    def test_loggers_are_shared(self):
        assert get_logger("store") is get_logger("store")
        assert len(logging.getLogger("postrelay.store").handlers) == 1

    def test_bind_adds_fields_to_every_record(self, caplog):
        log = get_logger("executor").bind(job_id="job-1", platform="twitter")

        with caplog.at_level(logging.INFO, logger="postrelay.executor"):
            log.info("Post delivered", platform_post_id="1790")

        record = caplog.records[-1]
        assert record.context == {"job_id": "job-1", "platform": "twitter", "platform_post_id": "1790"}

    def test_error_records_exception_details(self, caplog):
        with caplog.at_level(logging.ERROR, logger="postrelay.scheduler"):
            try:
                raise RuntimeError("disk full")
            except RuntimeError as e:
                get_logger("scheduler").error("Persisting job failed", error=e, job_id="job-1")

        context = caplog.records[-1].context
        assert context["error_type"] == "RuntimeError"
        assert context["error_message"] == "disk full"
        assert "disk full" in context["traceback"]


def test_timed_logs_failure_and_reraises(caplog):
    @timed(get_logger("broker"))
    def publish():
        raise ValueError("rejected")

    with caplog.at_level(logging.WARNING, logger="postrelay.broker"):
        with pytest.raises(ValueError):
            publish()

    context = caplog.records[-1].context
    assert context["function"] == "publish"
    assert context["error_message"] == "rejected"
