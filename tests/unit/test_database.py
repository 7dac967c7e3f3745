from decimal import Decimal
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg
import pytest
from psycopg.types.json import Jsonb
from psycopg_pool import PoolTimeout

from fraud_graph.database import GraphDatabase, _plain_value, _wrap_params
from fraud_graph.exceptions import GraphQueryError


class TestPlainValue:
    """Test conversion of driver values into JSON-friendly ones."""

    def test_plain_values_pass_through(self):
        row = {"props": {"id": "txn-001"}, "type": "SENT_TO", "count": 3}
        assert _plain_value(row) == row

    def test_driver_scalars_are_converted(self):
        row = {
            "total": Decimal("150"),
            "average": Decimal("75.5"),
            "seen": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        }
        assert _plain_value(row) == {
            "total": 150,
            "average": 75.5,
            "seen": "2024-01-02T03:04:05+00:00",
        }

    def test_graph_element_like_strings_are_left_alone(self):
        row = {"from_user_id": 'acct[1.1]{"a": 1}'}
        assert _plain_value(row) == {"from_user_id": 'acct[1.1]{"a": 1}'}

    def test_recurses_into_containers(self):
        value = {"amounts": [Decimal("1.5"), Decimal("2")], "nested": {"n": Decimal("3")}}
        assert _plain_value(value) == {"amounts": [1.5, 2], "nested": {"n": 3}}


class TestWrapParams:
    def test_empty_params(self):
        assert _wrap_params(None) is None
        assert _wrap_params({}) is None

    def test_values_are_wrapped_once(self):
        already = Jsonb("x")
        wrapped = _wrap_params({"id": "user-001", "tags": ["a"], "pre": already})
        assert isinstance(wrapped["id"], Jsonb)
        assert wrapped["id"].obj == "user-001"
        assert wrapped["tags"].obj == ["a"]
        assert wrapped["pre"] is already


def _mock_pool(cursor):
    """Build a pool whose connection yields the given cursor."""
    cursor_cm = MagicMock()
    cursor_cm.__aenter__.return_value = cursor
    cursor_cm.__aexit__.return_value = False

    connection = MagicMock()
    connection.cursor = MagicMock(return_value=cursor_cm)
    connection.commit = AsyncMock()
    connection.rollback = AsyncMock()

    pool = MagicMock()
    pool.getconn = AsyncMock(return_value=connection)
    pool.putconn = AsyncMock()
    pool.close = AsyncMock()
    return pool, connection


@pytest.fixture
def cursor():
    cursor = MagicMock()
    cursor.execute = AsyncMock()
    cursor.fetchall = AsyncMock(return_value=[])
    return cursor


@pytest.fixture
def database():
    return GraphDatabase("postgresql://u:p@localhost:5432/db", "fraud_test")


class TestRunQuery:
    """Test query execution against a mocked connection pool."""

    @pytest.mark.asyncio
    async def test_requires_connection(self, database):
        with pytest.raises(GraphQueryError, match="has not been opened"):
            await database.run_query("MATCH (n) RETURN n")

    @pytest.mark.asyncio
    async def test_sets_graph_path_and_returns_rows(self, database, cursor):
        cursor.fetchall.return_value = [{"props": {"id": "user-001"}}]
        pool, connection = _mock_pool(cursor)
        database.pool = pool

        rows = await database.run_query(
            'MATCH (u:"User" {id: %(id)s}) RETURN properties(u) AS props',
            {"id": "user-001"},
        )

        assert rows == [{"props": {"id": "user-001"}}]
        first_call, second_call = cursor.execute.await_args_list
        assert first_call.args == ("SET graph_path = fraud_test",)
        assert isinstance(second_call.args[1]["id"], Jsonb)
        connection.commit.assert_awaited_once()
        pool.putconn.assert_awaited_once_with(connection)

    @pytest.mark.asyncio
    async def test_write_query_without_result_set(self, database, cursor):
        cursor.fetchall.side_effect = psycopg.ProgrammingError("the last operation didn't produce a result")
        pool, _ = _mock_pool(cursor)
        database.pool = pool

        assert await database.run_query("MATCH (n) DETACH DELETE n") == []

    @pytest.mark.asyncio
    async def test_driver_error_rolls_back_and_raises(self, database, cursor):
        cursor.execute.side_effect = [None, psycopg.Error("syntax error")]
        pool, connection = _mock_pool(cursor)
        database.pool = pool

        with pytest.raises(GraphQueryError) as exc_info:
            await database.run_query("MATCH (n RETURN n")

        assert exc_info.value.get_details() == "syntax error"
        connection.rollback.assert_awaited_once()
        connection.commit.assert_not_awaited()
        pool.putconn.assert_awaited_once_with(connection)

    @pytest.mark.asyncio
    async def test_pool_timeout_workaround(self, database, cursor):
        pool, connection = _mock_pool(cursor)
        pool.getconn = AsyncMock(side_effect=[PoolTimeout("timeout"), connection])
        pool._add_connection = AsyncMock()
        database.pool = pool

        await database.run_query("MATCH (n) RETURN n")

        pool._add_connection.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_connection_acquisition_failure_is_wrapped(self, database, cursor):
        pool, _ = _mock_pool(cursor)
        pool.getconn = AsyncMock(side_effect=PoolTimeout("pool exhausted"))
        pool._add_connection = AsyncMock()
        database.pool = pool

        with pytest.raises(GraphQueryError) as exc_info:
            await database.run_query("MATCH (n) RETURN n")

        assert exc_info.value.get_details() == "pool exhausted"
        pool.putconn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_is_returned_to_pool_open(self, database, cursor):
        pool, connection = _mock_pool(cursor)
        database.pool = pool

        await database.run_query("MATCH (n) RETURN n")
        await database.run_query("MATCH (n) RETURN n")

        connection.__aexit__.assert_not_awaited()
        connection.close.assert_not_called()
        assert pool.putconn.await_count == 2

    @pytest.mark.asyncio
    async def test_clear_detaches_everything(self, database):
        database.run_query = AsyncMock(return_value=[])
        await database.clear()
        database.run_query.assert_awaited_once_with("MATCH (n) DETACH DELETE n")


class TestConnect:
    """Test the startup connection retry."""

    @pytest.mark.asyncio
    async def test_retries_until_pool_opens(self):
        failing = MagicMock()
        failing.open = AsyncMock(side_effect=PoolTimeout("pool initialization incomplete"))
        failing.close = AsyncMock()
        working = MagicMock()
        working.open = AsyncMock()

        database = GraphDatabase("postgresql://localhost/db", "g", max_retries=3, retry_delay=0)
        with patch(
            "fraud_graph.database.AsyncConnectionPool", side_effect=[failing, working]
        ) as pool_class:
            await database.connect()

        assert pool_class.call_count == 2
        failing.close.assert_awaited_once()
        assert database.pool is working
        assert database.connected

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        def make_failing_pool(*args, **kwargs):
            pool = MagicMock()
            pool.open = AsyncMock(side_effect=psycopg.OperationalError("connection refused"))
            pool.close = AsyncMock()
            return pool

        database = GraphDatabase("postgresql://localhost/db", "g", max_retries=2, retry_delay=0)
        with patch(
            "fraud_graph.database.AsyncConnectionPool", side_effect=make_failing_pool
        ) as pool_class:
            with pytest.raises(psycopg.OperationalError):
                await database.connect()

        assert pool_class.call_count == 2
        assert database.pool is None

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_not_retried(self):
        broken = MagicMock()
        broken.open = AsyncMock(side_effect=ValueError("bad conninfo"))
        broken.close = AsyncMock()

        database = GraphDatabase("postgresql://localhost/db", "g", max_retries=5, retry_delay=0)
        with patch(
            "fraud_graph.database.AsyncConnectionPool", side_effect=[broken]
        ) as pool_class:
            with pytest.raises(ValueError):
                await database.connect()

        assert pool_class.call_count == 1

    @pytest.mark.asyncio
    async def test_close_releases_pool(self, database):
        pool = MagicMock()
        pool.close = AsyncMock()
        database.pool = pool

        await database.close()

        pool.close.assert_awaited_once()
        assert database.pool is None


class TestInitializeSchema:
    @pytest.mark.asyncio
    async def test_creates_graph_labels_and_indexes(self, database):
        database._execute_ddl = AsyncMock(return_value=True)

        await database.initialize_schema()

        statements = [call.args[0] for call in database._execute_ddl.await_args_list]
        assert statements[0] == "CREATE GRAPH IF NOT EXISTS fraud_test"
        assert database._execute_ddl.await_args_list[0].kwargs == {"set_graph_path": False}
        assert 'CREATE VLABEL IF NOT EXISTS "User"' in statements
        assert 'CREATE VLABEL IF NOT EXISTS "Transaction"' in statements
        assert 'CREATE ELABEL IF NOT EXISTS "SHARED_DEVICE"' in statements
        assert (
            'CREATE PROPERTY INDEX IF NOT EXISTS user_email_idx ON "User" (email)'
            in statements
        )
        assert (
            'CREATE CONSTRAINT transaction_id_unique ON "Transaction" ASSERT id IS UNIQUE'
            in statements
        )

    @pytest.mark.asyncio
    async def test_failed_statement_is_rolled_back(self, database, cursor):
        cursor.execute.side_effect = [None, psycopg.Error("constraint already exists")]
        pool, connection = _mock_pool(cursor)
        database.pool = pool

        assert await database._execute_ddl("CREATE CONSTRAINT c ON \"User\" ASSERT id IS UNIQUE") is False
        connection.rollback.assert_awaited_once()
