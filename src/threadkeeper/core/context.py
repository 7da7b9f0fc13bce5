"""Request context tracking using contextvars.

Every request gets a request id, and moderation calls may carry the id of
the acting moderator. Both are merged into each log event by
``add_context_processor`` in ``threadkeeper.core.logging``.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing."""
    rid = request_id or str(uuid4())
    request_id_var.set(rid)
    return rid


def get_actor_id() -> str | None:
    return actor_id_var.get()


def set_actor_id(actor_id: str | UUID | None) -> None:
    """Set the id of the user acting in the current request."""
    actor_id_var.set(str(actor_id) if actor_id is not None else None)


def get_context() -> dict[str, Any]:
    """Get the non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    actor_id = get_actor_id()
    if actor_id:
        context["actor_id"] = actor_id

    return context


def clear_context() -> None:
    """Reset the context at the end of a request."""
    request_id_var.set("")
    actor_id_var.set(None)
