"""Data-access contract for comments and reports.

Services only talk to storage through ``EntityStore``. A criteria mapping
holds field equality filters plus reserved control keys:

- ``_start`` / ``_limit``: offset pagination
- ``_sort``: ``"field:asc"`` or ``"field:desc"``
- ``_q``: full-text query (only honoured by ``search`` / ``count_search``)

Stores raise ``StoreError`` for storage failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from uuid import UUID

from .sanitizer import sanitize_entity


if TYPE_CHECKING:
    from .models import Comment, Report


EntityT = TypeVar("EntityT")

Criteria = Mapping[str, Any]

START_KEY = "_start"
LIMIT_KEY = "_limit"
SORT_KEY = "_sort"
QUERY_KEY = "_q"
CONTROL_KEYS = frozenset({START_KEY, LIMIT_KEY, SORT_KEY, QUERY_KEY})


class StoreError(Exception):
    """Storage layer failure (connection, timeout, rejected write)."""


class EntityStore(ABC, Generic[EntityT]):
    """Abstract interface for entity persistence."""

    @abstractmethod
    async def find(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[EntityT]:
        """Find entities matching the criteria, populating named relations."""
        pass

    @abstractmethod
    async def find_one(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> EntityT | None:
        """Find the first entity matching the criteria."""
        pass

    @abstractmethod
    async def create(self, data: Mapping[str, Any]) -> EntityT:
        """Persist a new entity; storage assigns id and timestamps."""
        pass

    @abstractmethod
    async def update(
        self, criteria: Criteria, patch: Mapping[str, Any]
    ) -> EntityT | None:
        """Apply ``patch`` to the entity matching the criteria.

        Returns the updated entity, or None when nothing matches.
        """
        pass

    @abstractmethod
    async def count(self, criteria: Criteria) -> int:
        """Count entities matching the filters (pagination keys ignored)."""
        pass

    @abstractmethod
    async def search(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[EntityT]:
        """Like ``find`` but also applies the ``_q`` full-text query."""
        pass

    @abstractmethod
    async def count_search(self, criteria: Criteria) -> int:
        """Like ``count`` but also applies the ``_q`` full-text query."""
        pass

    def sanitize(self, entity: EntityT | None) -> dict[str, Any] | None:
        """Convert an entity to a plain dict without non-public fields."""
        return sanitize_entity(entity)


CommentStore = EntityStore["Comment"]
ReportStore = EntityStore["Report"]


@dataclass(frozen=True)
class CommentStores:
    """Store handles resolved once at startup and injected into services."""

    comments: CommentStore
    reports: ReportStore


# ==============================================================================
# Criteria helpers shared by store implementations
# ==============================================================================


def split_criteria(criteria: Criteria) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split criteria into (field filters, control keys)."""
    filters = {k: v for k, v in criteria.items() if k not in CONTROL_KEYS}
    controls = {k: v for k, v in criteria.items() if k in CONTROL_KEYS}
    return filters, controls


def _normalize(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if hasattr(value, "id") and not isinstance(value, str):
        return str(value.id)
    return value


def matches(entity: Any, filters: Mapping[str, Any]) -> bool:
    """Check equality of every filter against the entity attribute."""
    return all(
        _normalize(getattr(entity, key, None)) == _normalize(value)
        for key, value in filters.items()
    )


def matches_query(query: str | None, *texts: str | None) -> bool:
    """Case-insensitive substring match of the query against any text."""
    if not query:
        return True
    needle = query.lower()
    return any(text and needle in text.lower() for text in texts)


def sort_and_page(
    entities: Iterable[EntityT], controls: Mapping[str, Any]
) -> list[EntityT]:
    """Apply ``_sort``, ``_start`` and ``_limit`` controls.

    Entities missing the sort field go last in either direction.
    """
    items = list(entities)

    sort = controls.get(SORT_KEY)
    if sort:
        field, _, direction = str(sort).partition(":")
        present = [e for e in items if getattr(e, field, None) is not None]
        missing = [e for e in items if getattr(e, field, None) is None]
        present.sort(
            key=lambda e: getattr(e, field), reverse=direction.lower() == "desc"
        )
        items = present + missing

    start = int(controls.get(START_KEY) or 0)
    limit = controls.get(LIMIT_KEY)
    if limit is not None and int(limit) >= 0:
        return items[start : start + int(limit)]
    return items[start:]


def select(
    entities: Iterable[EntityT],
    criteria: Criteria,
    text_of: Callable[[EntityT], Sequence[str | None]] | None = None,
    *,
    paginate: bool = True,
) -> list[EntityT]:
    """Filter entities by criteria; ``text_of`` enables the ``_q`` query."""
    filters, controls = split_criteria(criteria)
    query = controls.get(QUERY_KEY) if text_of else None
    selected = [
        entity
        for entity in entities
        if matches(entity, filters)
        and (not query or matches_query(query, *text_of(entity)))
    ]
    if not paginate:
        return selected
    return sort_and_page(selected, controls)
