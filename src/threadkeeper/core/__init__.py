# Core infrastructure
from threadkeeper.core.context import (
    clear_context,
    get_actor_id,
    get_context,
    get_request_id,
    set_actor_id,
    set_request_id,
)
from threadkeeper.core.database import init_async_cassandra, shutdown_async_cassandra
from threadkeeper.core.logging import configure_structlog, get_logger
from threadkeeper.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_actor_id",
    "get_context",
    "get_logger",
    "get_request_id",
    "init_async_cassandra",
    "set_actor_id",
    "set_request_id",
    "shutdown_async_cassandra",
]
