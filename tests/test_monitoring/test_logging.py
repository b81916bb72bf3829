"""
Tests for folio.monitoring.logging.

Tests cover:
- Custom processors (timestamp, service info, sanitization)
- Logging configuration
- Context management (bind, unbind, clear)
- Performance logging (log_duration)
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest
import structlog

from folio import __version__
from folio.monitoring.logging import (
    add_service_info,
    add_timestamp,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_context,
    log_duration,
    sanitize_sensitive_data,
    unbind_context,
)


class TestProcessors:
    """Tests for the custom processors."""

    def test_adds_timestamp(self) -> None:
        result = add_timestamp(None, "info", {"event": "x"})  # type: ignore[arg-type]
        assert "T" in result["timestamp"]
        assert result["timestamp"].endswith("+00:00")

    def test_adds_service_info(self) -> None:
        result = add_service_info(None, "info", {"event": "x"})  # type: ignore[arg-type]
        assert result["service"] == "folio"
        assert result["version"] == __version__

    def test_redacts_catalog_key(self) -> None:
        event: dict[str, Any] = {"event": "x", "books_api_key": "AIza-secret", "term": "Dune"}
        result = sanitize_sensitive_data(None, "info", event)  # type: ignore[arg-type]
        assert result["books_api_key"] == "[REDACTED]"
        assert result["term"] == "Dune"

    def test_redacts_nested_and_lists(self) -> None:
        event: dict[str, Any] = {
            "event": "x",
            "config": {"redis_url": "redis://:pw@host", "backend": "redis"},
            "items": [{"token": "t"}, {"name": "n"}],
        }
        result = sanitize_sensitive_data(None, "info", event)  # type: ignore[arg-type]
        assert result["config"]["redis_url"] == "[REDACTED]"
        assert result["config"]["backend"] == "redis"
        assert result["items"][0]["token"] == "[REDACTED]"
        assert result["items"][1]["name"] == "n"

    def test_case_insensitive(self) -> None:
        result = sanitize_sensitive_data(None, "info", {"Authorization": "Bearer x"})  # type: ignore[arg-type]
        assert result["Authorization"] == "[REDACTED]"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_output(self) -> None:
        configure_logging(level="DEBUG")
        assert structlog.is_configured()

    def test_json_output(self) -> None:
        configure_logging(json_output=True)
        assert structlog.is_configured()

    def test_reduces_third_party_noise(self) -> None:
        configure_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_get_logger(self) -> None:
        configure_logging()
        assert get_logger("folio.test") is not None


class TestContext:
    """Tests for context variable helpers."""

    def teardown_method(self) -> None:
        clear_context()

    def test_bind_and_unbind(self) -> None:
        bind_context(operation="fetch_users", key="allUsers")
        assert structlog.contextvars.get_contextvars() == {
            "operation": "fetch_users",
            "key": "allUsers",
        }

        unbind_context("key")
        assert structlog.contextvars.get_contextvars() == {"operation": "fetch_users"}

    def test_log_context_binds_for_block_and_restores(self) -> None:
        bind_context(operation="outer")

        with log_context(operation="add_book_review", key="books:b1"):
            assert structlog.contextvars.get_contextvars() == {
                "operation": "add_book_review",
                "key": "books:b1",
            }

        assert structlog.contextvars.get_contextvars() == {"operation": "outer"}

    def test_log_context_unbinds_on_error(self) -> None:
        with pytest.raises(RuntimeError):
            with log_context(operation="fetch_users"):
                raise RuntimeError("boom")

        assert structlog.contextvars.get_contextvars() == {}

    def test_clear(self) -> None:
        bind_context(operation="x")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestLogDuration:
    """Tests for log_duration."""

    def test_logs_completion(self) -> None:
        logger = MagicMock()
        with log_duration(logger, "book_search_strategy", strategy="strict"):
            pass

        logger.debug.assert_called_once()
        args, kwargs = logger.debug.call_args
        assert args[0] == "book_search_strategy_completed"
        assert kwargs["strategy"] == "strict"
        assert kwargs["duration_ms"] >= 0

    def test_logs_failure_and_reraises(self) -> None:
        logger = MagicMock()
        with pytest.raises(TimeoutError):
            with log_duration(logger, "book_search_strategy", level="info"):
                raise TimeoutError("slow catalog")

        logger.info.assert_not_called()
        args, kwargs = logger.warning.call_args
        assert args[0] == "book_search_strategy_failed"
        assert kwargs["error"] == "slow catalog"
