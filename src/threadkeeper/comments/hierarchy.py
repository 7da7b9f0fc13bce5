"""Building nested comment trees from flat parent-pointer lists.

No N+1 queries: comments are fetched in one query and the tree is built in
Python. Sibling order follows the order of the flat input.
"""

from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from .exceptions import ThreadIntegrityError


CHILDREN_FIELD = "children"


def _ref_key(value: Any) -> str | None:
    """Key for a parent pointer that may be an id or an embedded entity."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id")
        if value is None:
            return None
    return str(value)


def build_nested_structure(
    entities: Iterable[dict[str, Any]],
    starting_from_id: Any = None,
    field: str = "thread_of",
    drop_blocked_threads: bool = False,
) -> list[dict[str, Any]]:
    """Nest a flat list of comments under their parents.

    Args:
        entities: Sanitized comments, each pointing at its parent via ``field``.
        starting_from_id: Parent whose children form the root level; None
            selects top-level comments.
        field: Name of the parent pointer field.
        drop_blocked_threads: Keep comments with ``blocked_thread`` set but
            do not descend into their replies.

    Returns:
        Root-level nodes; every node is a copy of its comment with a
        ``children`` list. Comments whose parent is not reachable from the
        root level are left out.

    Raises:
        ThreadIntegrityError: If a comment is reached twice (cyclic pointers).
    """
    children_by_parent: dict[str | None, list[dict[str, Any]]] = defaultdict(list)
    for entity in entities:
        children_by_parent[_ref_key(entity.get(field))].append(entity)

    root_key = _ref_key(starting_from_id)

    def nodes_under(parent_key: str | None) -> list[dict[str, Any]]:
        return [
            {**child, CHILDREN_FIELD: []}
            for child in children_by_parent.get(parent_key, [])
        ]

    roots = nodes_under(root_key)
    visited: set[str] = {root_key} if root_key is not None else set()
    stack = list(roots)

    while stack:
        node = stack.pop()
        node_key = _ref_key(node.get("id"))
        if node_key in visited:
            raise ThreadIntegrityError(
                f"Comment {node_key} is reachable more than once in its thread"
            )
        visited.add(node_key)

        if drop_blocked_threads and node.get("blocked_thread"):
            continue

        children = nodes_under(node_key)
        node[CHILDREN_FIELD] = children
        stack.extend(children)

    return roots
