import asyncio
import os
import subprocess

import pytest
import pytest_asyncio

from fraud_graph.database import GraphDatabase
from fraud_graph.relationship_service import RelationshipService
from fraud_graph.transaction_service import TransactionService
from fraud_graph.user_service import UserService
from fraud_graph.utils import build_connection_url


def _database_settings():
    db_name = os.getenv("AGENSGRAPH_DB")
    db_user = os.getenv("AGENSGRAPH_USERNAME")
    db_password = os.getenv("AGENSGRAPH_PASSWORD")
    db_host = os.getenv("AGENSGRAPH_HOST", "localhost")
    db_port = os.getenv("AGENSGRAPH_PORT", "5432")

    if not db_name or not db_user or not db_password:
        pytest.skip(
            "Database integration tests skipped: AGENSGRAPH_DB, AGENSGRAPH_USERNAME, "
            "and AGENSGRAPH_PASSWORD environment variables must be set."
        )

    return db_name, db_user, db_password, db_host, db_port


@pytest.fixture(scope="module")
def graphname():
    """Graph name for database testing."""
    return os.getenv("AGENSGRAPH_GRAPH_NAME", "fraud_graph_test")


@pytest_asyncio.fixture(scope="function")
async def database(graphname):
    """Connected gateway with the schema in place and an empty graph."""
    db_name, db_user, db_password, db_host, db_port = _database_settings()
    db_url = build_connection_url(
        f"postgresql://{db_host}:{db_port}", db_user, db_password, db_name
    )
    database = GraphDatabase(db_url, graphname, max_retries=3, retry_delay=1)

    await database.connect()
    await database.initialize_schema()
    await database.clear()

    yield database

    await database.close()


@pytest.fixture
def users(database):
    return UserService(database)


@pytest.fixture
def transactions(database, users):
    return TransactionService(database, users)


@pytest.fixture
def relationships(database):
    return RelationshipService(database)


@pytest_asyncio.fixture
async def http_server(graphname):
    """Start the API as a subprocess on port 8011."""
    db_name, db_user, db_password, db_host, db_port = _database_settings()

    process = await asyncio.create_subprocess_exec(
        "uv",
        "run",
        "fraud-graph",
        "--server-host",
        "127.0.0.1",
        "--server-port",
        "8011",
        "--allow-origins",
        "http://localhost:3001",
        "--db-url",
        f"postgresql://{db_host}:{db_port}",
        "--username",
        db_user,
        "--password",
        db_password,
        "--database",
        db_name,
        "--graphname",
        graphname,
        "--connect-retries",
        "3",
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=os.getcwd(),
    )

    await asyncio.sleep(3)

    if process.returncode is not None:
        stdout, stderr = await process.communicate()
        raise RuntimeError(
            f"Server failed to start. stdout: {stdout.decode()}, stderr: {stderr.decode()}"
        )

    yield process

    try:
        process.terminate()
        await asyncio.wait_for(process.wait(), timeout=5.0)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
