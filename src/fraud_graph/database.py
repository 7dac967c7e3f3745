"""AgensGraph gateway: pooled connections, schema setup and query execution."""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .exceptions import GraphQueryError
from .models import EDGE_TYPES, TRANSACTION_LABEL, USER_LABEL

logger = logging.getLogger("fraud_graph")

PROPERTY_INDEXES = [
    ("user_id_idx", USER_LABEL, "id"),
    ("user_email_idx", USER_LABEL, "email"),
    ("user_phone_idx", USER_LABEL, "phone"),
    ("user_address_idx", USER_LABEL, "address"),
    ("transaction_id_idx", TRANSACTION_LABEL, "id"),
    ("transaction_ip_address_idx", TRANSACTION_LABEL, "ip_address"),
    ("transaction_device_id_idx", TRANSACTION_LABEL, "device_id"),
    ("transaction_amount_idx", TRANSACTION_LABEL, "amount"),
    ("transaction_timestamp_idx", TRANSACTION_LABEL, "timestamp"),
]

UNIQUE_CONSTRAINTS = [
    ("user_id_unique", USER_LABEL, "id"),
    ("transaction_id_unique", TRANSACTION_LABEL, "id"),
]


@asynccontextmanager
async def get_pool_connection(
    pool: AsyncConnectionPool, timeout: Optional[float] = None
):
    """
    Get a connection from the pool with workaround for psycopg_pool bug.

    The connection is handed back to the pool open; callers commit or roll back
    themselves, and the pool discards anything left in a transaction.
    """
    try:
        connection = await pool.getconn(timeout=timeout)
    except PoolTimeout:
        # Workaround for psycopg_pool bug
        await pool._add_connection(None)
        connection = await pool.getconn(timeout=timeout)

    try:
        yield connection
    finally:
        await pool.putconn(connection)


def _plain_value(value: Any) -> Any:
    """Convert driver-specific scalars into JSON-friendly Python values."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain_value(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain_value(item) for key, item in value.items()}
    return value


def _wrap_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Wrap query parameters as JSONB, which is how cypher receives them."""
    if not params:
        return None
    return {
        key: value if isinstance(value, Jsonb) else Jsonb(value)
        for key, value in params.items()
    }


class GraphDatabase:
    """Owns the connection pool to the graph store and runs cypher against it."""

    def __init__(
        self,
        conninfo: str,
        graphname: str,
        max_retries: int = 30,
        retry_delay: float = 2.0,
        connect_timeout: float = 5.0,
    ):
        self.conninfo = conninfo
        self.graphname = graphname
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.connect_timeout = connect_timeout
        self.pool: Optional[AsyncConnectionPool] = None

    @property
    def connected(self) -> bool:
        return self.pool is not None

    async def connect(self) -> None:
        """Open the connection pool, retrying while the database comes up.

        Raises the last connection error once every attempt has failed.
        """
        if self.pool is not None:
            return

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(self.max_retries, 1)),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type((PoolTimeout, psycopg.OperationalError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                logger.info(
                    f"Connecting to AgensGraph (attempt {attempt.retry_state.attempt_number}/{self.max_retries})"
                )
                pool = AsyncConnectionPool(self.conninfo, open=False)
                try:
                    await pool.open(wait=True, timeout=self.connect_timeout)
                except Exception:
                    await pool.close()
                    raise

        self.pool = pool
        logger.info("Connected to AgensGraph successfully")

    async def _execute_ddl(self, statement: str, set_graph_path: bool = True) -> bool:
        """Run one schema statement in its own transaction. Returns False on failure."""
        async with get_pool_connection(self.pool) as conn:
            async with conn.cursor(row_factory=dict_row) as cursor:
                try:
                    if set_graph_path:
                        await cursor.execute(f"SET graph_path = {self.graphname}")
                    await cursor.execute(statement)
                    await conn.commit()
                    return True
                except psycopg.Error as e:
                    await conn.rollback()
                    logger.debug(f"Schema statement skipped ({statement}): {e}")
                    return False

    async def initialize_schema(self) -> None:
        """Create the graph, its labels, property indexes and id uniqueness constraints."""
        await self._execute_ddl(
            f"CREATE GRAPH IF NOT EXISTS {self.graphname}", set_graph_path=False
        )

        for label in (USER_LABEL, TRANSACTION_LABEL):
            await self._execute_ddl(f'CREATE VLABEL IF NOT EXISTS "{label}"')

        for edge_type in EDGE_TYPES:
            await self._execute_ddl(f'CREATE ELABEL IF NOT EXISTS "{edge_type}"')

        for index_name, label, prop in PROPERTY_INDEXES:
            await self._execute_ddl(
                f'CREATE PROPERTY INDEX IF NOT EXISTS {index_name} ON "{label}" ({prop})'
            )

        for constraint_name, label, prop in UNIQUE_CONSTRAINTS:
            # already-existing constraints are reported and skipped
            await self._execute_ddl(
                f'CREATE CONSTRAINT {constraint_name} ON "{label}" ASSERT {prop} IS UNIQUE'
            )

        logger.info(f"Ensured graph '{self.graphname}' schema exists")

    async def run_query(
        self, query: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a cypher query on a pooled connection and return its rows as dicts.

        Args:
            query: cypher text using %(name)s placeholders
            params: parameter values, sent as JSONB

        Returns:
            List[Dict[str, Any]]: one dict per result row, empty for write-only queries
        """
        if self.pool is None:
            raise GraphQueryError("Database connection has not been opened")

        logger.debug(f"Running query: {query} with params: {params}")

        try:
            async with get_pool_connection(self.pool) as conn:
                async with conn.cursor(row_factory=dict_row) as cursor:
                    try:
                        await cursor.execute(f"SET graph_path = {self.graphname}")
                        await cursor.execute(query, _wrap_params(params))
                        await conn.commit()
                    except psycopg.Error:
                        await conn.rollback()
                        raise
                    try:
                        data = await cursor.fetchall()
                    except psycopg.ProgrammingError:
                        data = []  # queries without a result set
        except (PoolTimeout, psycopg.Error) as e:
            # covers failures acquiring a connection as well as executing on it
            logger.error(f"Error executing graph query: {e}")
            raise GraphQueryError(
                {
                    "message": f"Error executing graph query: {query}",
                    "details": str(e),
                }
            ) from e

        return [_plain_value(row) for row in data]

    async def clear(self) -> None:
        """Delete every node and relationship in the graph."""
        logger.info(f"Clearing graph '{self.graphname}'")
        await self.run_query("MATCH (n) DETACH DELETE n")

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("AgensGraph connection pool closed")
