import argparse
import asyncio

from . import server
from .utils import process_config


def main():
    """Main entry point for the package."""
    parser = argparse.ArgumentParser(description="Fraud relationship graph API")
    parser.add_argument("--db-url", default=None, help="AgensGraph connection URL")
    parser.add_argument("--username", default=None, help="AgensGraph username")
    parser.add_argument("--password", default=None, help="AgensGraph password")
    parser.add_argument("--database", default=None, help="AgensGraph database name")
    parser.add_argument("--graphname", default=None, help="AgensGraph graph name")
    parser.add_argument("--server-host", default=None, help="Server host")
    parser.add_argument("--server-port", type=int, default=None, help="Server port")
    parser.add_argument(
        "--allow-origins",
        default=None,
        help="Allowed CORS origins (comma-separated list)",
    )
    parser.add_argument(
        "--allowed-hosts",
        default=None,
        help="Allowed hosts for DNS rebinding protection (comma-separated list)",
    )
    parser.add_argument(
        "--load-sample-data",
        action="store_true",
        help="Replace the graph with the demo dataset on startup (default: False)",
    )
    parser.add_argument(
        "--connect-retries",
        type=int,
        default=None,
        help="Database connection attempts before giving up (default: 30)",
    )
    parser.add_argument(
        "--connect-retry-delay",
        type=float,
        default=None,
        help="Seconds between database connection attempts (default: 2)",
    )
    parser.add_argument(
        "--expose-errors",
        action="store_true",
        help="Return internal error messages to clients (default: False)",
    )

    args = parser.parse_args()
    config = process_config(args)
    asyncio.run(server.main(**config))


__all__ = ["main", "server"]
