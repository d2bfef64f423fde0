"""
Unit tests for the query execution wrapper against a real SQLite database.
"""

from unittest.mock import patch

import pytest
from sqlalchemy import insert, select, text
from sqlalchemy.exc import OperationalError

from portfolio_api.db.query_executor import (
    BatchQuery,
    QueryExecutor,
    QueryOptions,
    WriteResult,
    driver_error_code,
)
from portfolio_api.models import Interest

interests = Interest.__table__


async def _add_interest(executor, title, category="general"):
    return await executor.execute(
        insert(interests).values(title=title, category=category)
    )


class TestExecute:
    """Single query execution."""

    @pytest.mark.asyncio
    async def test_select_returns_row_dicts(self, executor):
        await _add_interest(executor, "Photography")

        rows = await executor.execute("SELECT title, category FROM interests")

        assert rows == [{"title": "Photography", "category": "general"}]

    @pytest.mark.asyncio
    async def test_write_returns_affected_rows(self, executor):
        await _add_interest(executor, "Hiking")
        await _add_interest(executor, "Chess")

        result = await executor.execute(
            "UPDATE interests SET category = :category", {"category": "hobby"}
        )

        assert result == WriteResult(affected_rows=2)

    @pytest.mark.asyncio
    async def test_core_statements_and_params(self, executor):
        await _add_interest(executor, "Running", category="sport")

        rows = await executor.execute(
            select(interests.c.title).where(interests.c.category == "sport")
        )
        single = await executor.execute_single(
            "SELECT title FROM interests WHERE category = :category", {"category": "sport"}
        )

        assert rows == [{"title": "Running"}]
        assert single == {"title": "Running"}

    @pytest.mark.asyncio
    async def test_execute_single_returns_none_when_empty(self, executor):
        assert await executor.execute_single("SELECT id FROM interests") is None

    @pytest.mark.asyncio
    async def test_each_execute_commits(self, executor, database):
        await _add_interest(executor, "Cooking")

        async with database.engine.connect() as conn:
            count = (await conn.execute(text("SELECT COUNT(*) FROM interests"))).scalar()

        assert count == 1


class TestReadThroughCache:
    """Optional caching keyed by the caller."""

    @pytest.mark.asyncio
    async def test_cached_query_hits_database_once(self, executor):
        await _add_interest(executor, "Music")

        with patch.object(QueryExecutor, "_run", wraps=QueryExecutor._run) as run:
            first = await executor.execute(
                "SELECT title FROM interests", use_cache=True, cache_key="interests:titles"
            )
            second = await executor.execute(
                "SELECT title FROM interests", use_cache=True, cache_key="interests:titles"
            )

        assert first == second == [{"title": "Music"}]
        assert run.call_count == 1
        assert executor.metrics.snapshot()["portfolio_db_cache_hits_total"] == 1

    @pytest.mark.asyncio
    async def test_cache_requires_a_key(self, executor, memory_cache):
        await executor.execute("SELECT 1", use_cache=True)
        assert len(memory_cache) == 0

    @pytest.mark.asyncio
    async def test_cached_result_uses_given_ttl(self, executor, memory_cache):
        await executor.execute(
            "SELECT 1 AS one", use_cache=True, cache_key="one", cache_ttl=300
        )
        entry = memory_cache._entries["one"]
        assert entry.ttl == 300


class TestObservability:
    """Slow-query warnings and failure logging."""

    @pytest.mark.asyncio
    async def test_slow_query_warning(self, database, memory_cache):
        executor = QueryExecutor(
            database.engine, memory_cache, slow_query_threshold_ms=-1, metrics=database.metrics
        )

        with patch("portfolio_api.db.query_executor.logger") as logger:
            await executor.execute("SELECT 1")

        logger.warning.assert_called_once()
        args, kwargs = logger.warning.call_args
        assert args[0] == "Slow query detected"
        assert kwargs["query"] == "SELECT 1"
        assert kwargs["threshold_ms"] == -1

    @pytest.mark.asyncio
    async def test_fast_query_no_warning(self, executor):
        with patch("portfolio_api.db.query_executor.logger") as logger:
            await executor.execute("SELECT 1")

        logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_log_helper_records_success(self, executor):
        with patch("portfolio_api.db.query_executor.app_log") as app_log:
            await executor.execute("SELECT 1")

        app_log.database.assert_called_once()
        assert app_log.database.call_args.kwargs["query_type"] == "SELECT"
        assert app_log.database.call_args.kwargs["row_count"] == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_reraised(self, executor):
        with patch("portfolio_api.db.query_executor.logger") as logger:
            with pytest.raises(OperationalError):
                await executor.execute(
                    "SELECT * FROM no_such_table WHERE id = :id", {"id": 7}
                )

        logger.error.assert_called_once()
        kwargs = logger.error.call_args.kwargs
        assert kwargs["params"] == {"id": 7}
        assert "no_such_table" in kwargs["query"]
        assert "duration_ms" in kwargs
        assert executor.metrics.snapshot()["portfolio_db_failed_queries_total"] == 1

    @pytest.mark.asyncio
    async def test_failed_query_is_not_cached(self, executor, memory_cache):
        with pytest.raises(OperationalError):
            await executor.execute(
                "SELECT * FROM no_such_table", use_cache=True, cache_key="broken"
            )
        assert not memory_cache.has("broken")

    def test_driver_error_code_falls_back_to_none(self):
        assert driver_error_code(ValueError("plain")) is None


class TestBatch:
    """Sequential batch execution."""

    @pytest.mark.asyncio
    async def test_results_in_order(self, executor):
        results = await executor.execute_batch(
            [
                BatchQuery(insert(interests).values(title="A")),
                BatchQuery(insert(interests).values(title="B")),
                BatchQuery("SELECT title FROM interests ORDER BY title"),
            ]
        )

        assert results[0] == WriteResult(1)
        assert results[1] == WriteResult(1)
        assert results[2] == [{"title": "A"}, {"title": "B"}]

    @pytest.mark.asyncio
    async def test_batch_items_can_use_cache(self, executor, memory_cache):
        await executor.execute_batch(
            [BatchQuery("SELECT 1 AS one", options=QueryOptions(use_cache=True, cache_key="b1"))]
        )
        assert memory_cache.get("b1").value == [{"one": 1}]

    @pytest.mark.asyncio
    async def test_first_failure_aborts_remaining(self, executor):
        with pytest.raises(OperationalError):
            await executor.execute_batch(
                [
                    BatchQuery(insert(interests).values(title="kept")),
                    BatchQuery("SELECT * FROM no_such_table"),
                    BatchQuery(insert(interests).values(title="never")),
                ]
            )

        rows = await executor.execute("SELECT title FROM interests")
        assert rows == [{"title": "kept"}]


class TestTransaction:
    """Atomic multi-statement work."""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, executor):
        async def work(conn):
            await executor.execute_on(conn, insert(interests).values(title="one"))
            await executor.execute_on(conn, insert(interests).values(title="two"))
            return "done"

        assert await executor.execute_transaction(work) == "done"
        rows = await executor.execute("SELECT COUNT(*) AS n FROM interests")
        assert rows == [{"n": 2}]

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, executor):
        async def work(conn):
            await executor.execute_on(conn, insert(interests).values(title="one"))
            raise ValueError("abort")

        with pytest.raises(ValueError, match="abort"):
            await executor.execute_transaction(work)

        rows = await executor.execute("SELECT COUNT(*) AS n FROM interests")
        assert rows == [{"n": 0}]

    @pytest.mark.asyncio
    async def test_connection_returned_after_failure(self, executor, database):
        async def work(conn):
            await executor.execute_on(conn, "SELECT * FROM no_such_table")

        for _ in range(3):
            with pytest.raises(OperationalError):
                await executor.execute_transaction(work)

        assert database.engine.pool.checkedout() == 0

    @pytest.mark.asyncio
    async def test_ping_reports_latency(self, executor):
        assert await executor.ping() >= 0
