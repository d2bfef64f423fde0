"""
Unit tests for the logging helpers and request counters.
"""

from unittest.mock import patch

import pytest

from portfolio_api.core import log as app_log
from portfolio_api.core.log import LogStats


class TestCategories:
    @pytest.mark.parametrize(
        "operation,expected",
        [
            ("SELECT executed", "SELECT"),
            ("INSERT executed", "INSERT"),
            ("update project", "UPDATE"),
            ("DELETE executed", "DELETE"),
            ("query failed", "ERROR"),
        ],
    )
    def test_database_category(self, operation, expected):
        assert app_log.database_category(operation) == expected

    @pytest.mark.parametrize(
        "action,expected",
        [
            ("login attempt", "auth"),
            ("logout", "auth"),
            ("admin request", "admin"),
            ("data: project created", "data"),
            ("error while saving", "error"),
            ("performance report", "performance"),
            ("security alert", "security"),
            ("page visit", "general"),
        ],
    )
    def test_activity_category(self, action, expected):
        assert app_log.activity_category(action) == expected

    @pytest.mark.parametrize(
        "endpoint,expected",
        [
            ("/api/admin/projects", "ADMIN"),
            ("/api/auth/login", "AUTH"),
            ("/api/projects", "PUBLIC"),
        ],
    )
    def test_api_category(self, endpoint, expected):
        assert app_log.api_category(endpoint) == expected

    @pytest.mark.parametrize(
        "response_time_ms,expected",
        [
            (None, "NORMAL"),
            (20, "FAST"),
            (100, "NORMAL"),
            (1000, "NORMAL"),
            (1500, "MODERATE"),
            (2500, "SLOW"),
        ],
    )
    def test_performance_grade(self, response_time_ms, expected):
        assert app_log.performance_grade(response_time_ms) == expected


class TestHelpers:
    def test_api_usage_logs_category_and_grade(self):
        with patch.object(app_log, "logger") as logger:
            app_log.api_usage("/api/admin/projects", "POST", 2500.0)

        logger.info.assert_called_once()
        kwargs = logger.info.call_args.kwargs
        assert kwargs["category"] == "ADMIN"
        assert kwargs["performance"] == "SLOW"

    def test_security_logs_at_warning(self):
        with patch.object(app_log, "logger") as logger:
            app_log.security("Rejected admin request", path="/api/admin")

        logger.warning.assert_called_once()
        logger.info.assert_not_called()

    def test_user_is_reduced_to_identity_fields(self):
        with patch.object(app_log, "logger") as logger:
            app_log.auth("login success", {"id": 1, "username": "kim", "role": "admin", "password": "x"})

        assert logger.info.call_args.kwargs["user"] == {"id": 1, "username": "kim", "role": "admin"}


class TestLogStats:
    def test_increment_known_counter(self):
        stats = LogStats()
        stats.increment("total_requests")
        stats.increment("total_requests", 2)
        assert stats.snapshot()["total_requests"] == 3

    def test_unknown_counter_is_ignored(self):
        stats = LogStats()
        stats.increment("bogus")
        assert "bogus" not in stats.snapshot()

    def test_log_and_reset(self):
        stats = LogStats()
        stats.increment("errors")

        with patch.object(app_log, "logger") as logger:
            snapshot = stats.log_and_reset()

        assert snapshot["errors"] == 1
        assert stats.snapshot()["errors"] == 0
        logger.info.assert_called_once()

    @pytest.mark.asyncio
    async def test_periodic_task(self):
        import asyncio

        stats = LogStats()
        stats.increment("slow_requests")

        with patch.object(app_log, "logger"):
            stats.start(0.01)
            await asyncio.sleep(0.05)
            await stats.stop()

        assert stats.snapshot()["slow_requests"] == 0


class TestConfigureLogging:
    def test_file_handler_writes_to_log_dir(self, settings, tmp_path):
        handler = app_log._build_file_handler(settings)
        try:
            assert handler is not None
            assert (tmp_path / "logs").is_dir()
        finally:
            handler.close()
