import functools
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, Sequence

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .database import GraphDatabase
from .exceptions import InvalidInputError, NotFoundError
from .graph_elements import transaction_network_elements, user_network_elements
from .models import TransactionInput, UserInput
from .relationship_service import RelationshipService
from .sample_data import load_sample_data
from .transaction_service import TransactionService
from .user_service import UserService
from .utils import build_connection_url, utc_now_iso

# Set up logging
logger = logging.getLogger("fraud_graph")
logger.setLevel(logging.INFO)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

Handler = Callable[[Request], Awaitable[JSONResponse]]


def _error_detail(request: Request, error: Exception) -> str:
    """The error text shown to clients; internal details only when explicitly enabled."""
    if request.app.state.expose_errors:
        return str(error)
    return GENERIC_ERROR_MESSAGE


def api_endpoint(handler: Handler) -> Handler:
    """Map service exceptions to 400 / 404 / 500 JSON responses."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except InvalidInputError as e:
            return JSONResponse({"error": "Bad Request", "message": str(e)}, status_code=400)
        except NotFoundError as e:
            return JSONResponse({"error": "Not Found", "message": str(e)}, status_code=404)
        except Exception as e:
            logger.error(f"Error handling {request.method} {request.url.path}: {e}")
            return JSONResponse(
                {"error": "Internal Server Error", "message": _error_detail(request, e)},
                status_code=500,
            )

    return wrapper


async def _json_body(request: Request):
    try:
        return await request.json()
    except ValueError as e:
        # malformed JSON or a body that is not UTF-8
        raise InvalidInputError("Invalid JSON body") from e


# ----- users -----


@api_endpoint
async def create_user(request: Request) -> JSONResponse:
    user_input = UserInput.from_payload(await _json_body(request))
    user = await request.app.state.users.upsert_user(user_input)
    return JSONResponse(
        {
            "success": True,
            "data": user.to_json(),
            "message": "User created/updated successfully",
        },
        status_code=201,
    )


@api_endpoint
async def list_users(request: Request) -> JSONResponse:
    users = await request.app.state.users.list_users()
    data = [user.to_json() for user in users]
    return JSONResponse({"success": True, "data": data, "count": len(data)})


@api_endpoint
async def get_user(request: Request) -> JSONResponse:
    user = await request.app.state.users.get_user(request.path_params["user_id"])
    if user is None:
        raise NotFoundError("User not found")
    return JSONResponse({"success": True, "data": user.to_json()})


# ----- transactions -----


@api_endpoint
async def create_transaction(request: Request) -> JSONResponse:
    transaction_input = TransactionInput.from_payload(await _json_body(request))
    transaction = await request.app.state.transactions.upsert_transaction(transaction_input)
    return JSONResponse(
        {
            "success": True,
            "data": transaction.to_json(),
            "message": "Transaction created/updated successfully",
        },
        status_code=201,
    )


@api_endpoint
async def list_transactions(request: Request) -> JSONResponse:
    transactions = await request.app.state.transactions.list_transactions()
    data = [transaction.to_json() for transaction in transactions]
    return JSONResponse({"success": True, "data": data, "count": len(data)})


@api_endpoint
async def get_transaction(request: Request) -> JSONResponse:
    transaction = await request.app.state.transactions.get_transaction(
        request.path_params["transaction_id"]
    )
    if transaction is None:
        raise NotFoundError("Transaction not found")
    return JSONResponse({"success": True, "data": transaction.to_json()})


@api_endpoint
async def list_user_transactions(request: Request) -> JSONResponse:
    data = await request.app.state.transactions.get_transactions_by_user(
        request.path_params["user_id"]
    )
    return JSONResponse({"success": True, "data": data, "count": len(data)})


# ----- relationships -----


@api_endpoint
async def user_relationships(request: Request) -> JSONResponse:
    data = await request.app.state.users.get_user_relationships(
        request.path_params["user_id"]
    )
    if data is None:
        raise NotFoundError("User not found")
    return JSONResponse({"success": True, "data": data})


@api_endpoint
async def transaction_relationships(request: Request) -> JSONResponse:
    data = await request.app.state.transactions.get_transaction_relationships(
        request.path_params["transaction_id"]
    )
    if data is None:
        raise NotFoundError("Transaction not found")
    return JSONResponse({"success": True, "data": data})


@api_endpoint
async def network_overview(request: Request) -> JSONResponse:
    data = await request.app.state.relationships.network_overview()
    return JSONResponse({"success": True, "data": data})


@api_endpoint
async def shared_attributes(request: Request) -> JSONResponse:
    data = await request.app.state.relationships.shared_attribute_stats()
    return JSONResponse({"success": True, "data": data})


@api_endpoint
async def transaction_patterns(request: Request) -> JSONResponse:
    data = await request.app.state.relationships.transaction_pattern_stats()
    return JSONResponse({"success": True, "data": data})


@api_endpoint
async def high_risk_users(request: Request) -> JSONResponse:
    data = await request.app.state.relationships.high_risk_users()
    return JSONResponse({"success": True, "data": data, "count": len(data)})


@api_endpoint
async def connection_path(request: Request) -> JSONResponse:
    from_id = request.query_params.get("fromUserId")
    to_id = request.query_params.get("toUserId")
    if not from_id or not to_id:
        raise InvalidInputError("Missing required query parameters: fromUserId, toUserId")
    if from_id == to_id:
        raise InvalidInputError("From user and to user cannot be the same")
    data = await request.app.state.relationships.connection_path(from_id, to_id)
    return JSONResponse({"success": True, "data": data})


# ----- graph view -----


@api_endpoint
async def user_graph(request: Request) -> JSONResponse:
    neighborhood = await request.app.state.users.get_user_relationships(
        request.path_params["user_id"]
    )
    if neighborhood is None:
        raise NotFoundError("User not found")
    return JSONResponse({"success": True, "data": user_network_elements(neighborhood)})


@api_endpoint
async def transaction_graph(request: Request) -> JSONResponse:
    neighborhood = await request.app.state.transactions.get_transaction_relationships(
        request.path_params["transaction_id"]
    )
    if neighborhood is None:
        raise NotFoundError("Transaction not found")
    return JSONResponse(
        {"success": True, "data": transaction_network_elements(neighborhood)}
    )


# ----- operations -----


async def health(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "status": "OK",
            "message": "Fraud Detection API is running",
            "timestamp": utc_now_iso(),
        }
    )


async def load_sample(request: Request) -> JSONResponse:
    state = request.app.state
    try:
        summary = await load_sample_data(
            state.database, state.users, state.transactions, state.relationships
        )
    except Exception as e:
        logger.error(f"Failed to load sample data: {e}")
        return JSONResponse(
            {
                "status": "error",
                "message": "Failed to load sample data",
                "error": _error_detail(request, e),
            },
            status_code=500,
        )
    return JSONResponse(
        {
            "status": "success",
            "message": "Sample data loaded successfully",
            "summary": summary,
            "timestamp": utc_now_iso(),
        }
    )


async def clear_data(request: Request) -> JSONResponse:
    try:
        await request.app.state.database.clear()
    except Exception as e:
        logger.error(f"Failed to clear data: {e}")
        return JSONResponse(
            {
                "status": "error",
                "message": "Failed to clear data",
                "error": _error_detail(request, e),
            },
            status_code=500,
        )
    return JSONResponse(
        {
            "status": "success",
            "message": "All data cleared successfully",
            "timestamp": utc_now_iso(),
        }
    )


routes = [
    Route("/health", health, methods=["GET"]),
    Route("/users", create_user, methods=["POST"]),
    Route("/users", list_users, methods=["GET"]),
    Route("/users/{user_id}", get_user, methods=["GET"]),
    Route("/transactions", create_transaction, methods=["POST"]),
    Route("/transactions", list_transactions, methods=["GET"]),
    Route("/transactions/user/{user_id}", list_user_transactions, methods=["GET"]),
    Route("/transactions/{transaction_id}", get_transaction, methods=["GET"]),
    Route("/relationships/overview", network_overview, methods=["GET"]),
    Route("/relationships/shared-attributes", shared_attributes, methods=["GET"]),
    Route("/relationships/transaction-patterns", transaction_patterns, methods=["GET"]),
    Route("/relationships/high-risk-users", high_risk_users, methods=["GET"]),
    Route("/relationships/path", connection_path, methods=["GET"]),
    Route("/relationships/user/{user_id}", user_relationships, methods=["GET"]),
    Route(
        "/relationships/transaction/{transaction_id}",
        transaction_relationships,
        methods=["GET"],
    ),
    Route("/graph/user/{user_id}", user_graph, methods=["GET"]),
    Route("/graph/transaction/{transaction_id}", transaction_graph, methods=["GET"]),
    Route("/api/data/load-sample", load_sample, methods=["POST"]),
    Route("/api/data/clear", clear_data, methods=["DELETE"]),
]


def create_app(
    database: GraphDatabase,
    allow_origins: Optional[Sequence[str]] = None,
    allowed_hosts: Optional[Sequence[str]] = None,
    expose_errors: bool = False,
    auto_load_sample_data: bool = False,
) -> Starlette:
    """Create the HTTP application around a graph database gateway.

    The gateway is connected and its schema initialized when the application
    starts, and closed when it shuts down.
    """
    users = UserService(database)
    transactions = TransactionService(database, users)
    relationships = RelationshipService(database)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        await database.connect()
        try:
            await database.initialize_schema()
            if auto_load_sample_data:
                try:
                    await load_sample_data(database, users, transactions, relationships)
                except Exception as e:
                    # the API stays usable with whatever data is present
                    logger.error(f"Error auto-loading sample data: {e}")
            yield
        finally:
            await database.close()

    # Configure security middleware
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=list(allow_origins or []),
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["*"],
            allow_credentials=True,
        ),
        Middleware(TrustedHostMiddleware, allowed_hosts=list(allowed_hosts or ["*"])),
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.database = database
    app.state.users = users
    app.state.transactions = transactions
    app.state.relationships = relationships
    app.state.expose_errors = expose_errors
    return app


async def main(
    agensgraph_url: str,
    agensgraph_user: str,
    agensgraph_password: str,
    agensgraph_database: str,
    agensgraph_graphname: str,
    host: str = "127.0.0.1",
    port: int = 3000,
    allow_origins: list[str] = [],
    allowed_hosts: list[str] = ["*"],
    auto_load_sample_data: bool = False,
    connect_retries: int = 30,
    connect_retry_delay: float = 2.0,
    expose_errors: bool = False,
) -> None:
    logger.info("Starting Fraud Graph API")
    logger.info(f"Connecting to AgensGraph with URL: {agensgraph_url}")

    # Build full connection URL
    db_url = build_connection_url(
        agensgraph_url, agensgraph_user, agensgraph_password, agensgraph_database
    )

    database = GraphDatabase(
        db_url,
        agensgraph_graphname,
        max_retries=connect_retries,
        retry_delay=connect_retry_delay,
    )

    app = create_app(
        database,
        allow_origins=allow_origins,
        allowed_hosts=allowed_hosts,
        expose_errors=expose_errors,
        auto_load_sample_data=auto_load_sample_data,
    )

    logger.info(f"HTTP server starting on {host}:{port}")
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    await server.serve()
