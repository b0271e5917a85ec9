"""Tests for error helpers and logging setup."""

from __future__ import annotations

import io
import json
import logging

import pytest

from MediaVault.config import LoggingConfig
from MediaVault.errors import (
    AssetNotFoundError,
    NotInitializedError,
    StorageError,
    TransportError,
    get_actionable_error_message,
    log_sync_failure,
)
from MediaVault.logging_config import ROOT_LOGGER_NAME, mask_sensitive_data, setup_logging


class TestActionableMessages:
    """HTTP status and reason mapping."""

    @pytest.mark.parametrize(
        ("status", "fragment"),
        [
            (401, "Authentication"),
            (403, "forbidden"),
            (404, "not found"),
            (413, "too large"),
            (503, "temporarily unavailable"),
            (418, "HTTP error 418"),
        ],
    )
    def test_status_messages(self, status, fragment):
        message, _ = get_actionable_error_message(status)

        assert fragment in message

    def test_reason_codes(self):
        assert get_actionable_error_message(None, "timeout")[0] == "Request timed out"
        assert "connection" in get_actionable_error_message(None, "connection_error")[0]
        assert get_actionable_error_message(None)[0] == "Sync failed"

    def test_exception_messages(self):
        assert "ContentStore used before init()" in str(NotInitializedError())
        assert "in project p1" in str(AssetNotFoundError("abc", project_id="p1"))
        assert StorageError("boom", operation="put").operation == "put"


class TestLogSyncFailure:
    """Structured failure records."""

    def test_transport_failure_fields(self, caplog):
        logger = logging.getLogger("MediaVault.tests")
        exc = TransportError("gone", url="https://h/a", http_status=404)

        with caplog.at_level(logging.INFO, logger="MediaVault.tests"):
            log_sync_failure(logger, "fetch", "abc", exc)

        error = [r for r in caplog.records if r.levelno == logging.ERROR][0]
        assert error.extra_fields["http_status"] == 404
        assert error.extra_fields["url"] == "https://h/a"
        assert error.extra_fields["exception_type"] == "TransportError"
        assert any("Suggestion" in r.getMessage() for r in caplog.records)


class TestSetupLogging:
    """Handler installation and JSON output."""

    def test_json_output_masks_secrets(self):
        stream = io.StringIO()
        logger = setup_logging(LoggingConfig(level="DEBUG", json_format=True), stream=stream)

        logging.getLogger(f"{ROOT_LOGGER_NAME}.sync").info(
            "sync done", extra={"extra_fields": {"token": "abc", "count": 2}}
        )

        line = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert line["message"] == "sync done"
        assert line["token"] == "***masked***"
        assert line["count"] == 2
        assert logger.level == logging.DEBUG

    def test_repeated_setup_replaces_handler(self):
        setup_logging(LoggingConfig())
        logger = setup_logging(LoggingConfig())

        managed = [h for h in logger.handlers if getattr(h, "_mediavault_managed", False)]
        assert len(managed) == 1

    def test_mask_sensitive_data(self):
        assert mask_sensitive_data({"Authorization": "x", "ok": 1}) == {
            "Authorization": "***masked***",
            "ok": 1,
        }
