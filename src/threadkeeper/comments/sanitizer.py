"""Sanitizing stored entities before they leave the service.

Two pure transformations, both idempotent and both applied recursively to an
embedded ``thread_of`` parent:

- ``sanitize_entity`` turns a stored entity into a plain dict and drops
  non-public fields (author credentials and contact data).
- ``filter_resolved_reports`` drops reports a moderator already resolved.
"""

from dataclasses import is_dataclass
from typing import Any


PRIVATE_FIELDS = frozenset(
    {"email", "password", "reset_password_token", "confirmation_token"}
)


def _strip_private(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in PRIVATE_FIELDS}


def sanitize_entity(entity: Any) -> dict[str, Any] | None:
    """Convert an entity (dataclass or mapping) to an external-safe dict."""
    if entity is None:
        return None
    if is_dataclass(entity) and hasattr(entity, "to_dict"):
        data = entity.to_dict()
    else:
        data = dict(entity)

    data = _strip_private(data)

    author = data.get("author_user")
    if isinstance(author, dict):
        data["author_user"] = _strip_private(author)

    parent = data.get("thread_of")
    if isinstance(parent, dict):
        data["thread_of"] = sanitize_entity(parent)

    return data


def filter_resolved_reports(entity: dict[str, Any] | None) -> dict[str, Any] | None:
    """Remove resolved reports from the entity and its embedded parent."""
    if entity is None:
        return None

    data = dict(entity)

    reports = data.get("reports")
    if isinstance(reports, list):
        data["reports"] = [report for report in reports if not report.get("resolved")]

    parent = data.get("thread_of")
    if isinstance(parent, dict):
        data["thread_of"] = filter_resolved_reports(parent)

    return data


def to_public(entity: Any) -> dict[str, Any] | None:
    """Sanitize and filter in one step."""
    return filter_resolved_reports(sanitize_entity(entity))
