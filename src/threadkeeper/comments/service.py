"""Comment service layer.

Business logic for:
- Flat retrieval (paginated listing, per-relation lists, single comments)
- Nested thread views
- Comment lifecycle: create, update content, upvote, report abuse
"""

import re
from collections.abc import Callable, Collection, Mapping
from typing import Any
from uuid import UUID

import structlog

from .exceptions import (
    CommentConflictError,
    CommentValidationError,
    ThreadNotFoundError,
)
from .hierarchy import build_nested_structure
from .models import RelatedRef, as_uuid
from .sanitizer import sanitize_entity, to_public
from .store import (
    LIMIT_KEY,
    QUERY_KEY,
    SORT_KEY,
    START_KEY,
    CommentStores,
)


logger = structlog.get_logger(__name__)


# ==============================================================================
# Content checks
# ==============================================================================

# Used when no word list is configured
DEFAULT_BAD_WORDS = frozenset({"fuck", "shit", "bitch", "asshole", "bastard", "cunt"})

# Fields callers may change through update(); all others must match
MUTABLE_FIELDS = frozenset({"content"})

LIST_POPULATE = ("author_user", "related", "reports")
SINGLE_POPULATE = ("related", "reports")
DEFAULT_SORT = "created_at:desc"

# Scalar columns a listing can be ordered by
SORTABLE_FIELDS = (
    "created_at",
    "updated_at",
    "points",
    "content",
    "blocked",
    "blocked_thread",
    "related_slug",
)
SORT_PATTERN = rf"^(?:{'|'.join(SORTABLE_FIELDS)}):(?:asc|desc)$"


def check_bad_words(
    content: str, bad_words: Collection[str] = DEFAULT_BAD_WORDS
) -> bool:
    """Return True when the content contains none of the bad words.

    Whole-word, case-insensitive match.
    """
    if not bad_words:
        return True
    pattern = r"\b(?:" + "|".join(re.escape(w) for w in bad_words) + r")\b"
    return re.search(pattern, content, re.IGNORECASE) is None


def _ref_id(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("id")
    return str(value) if value is not None else None


def is_equal_entity(
    existing: Mapping[str, Any] | None, data: Mapping[str, Any]
) -> bool:
    """Check the caller's view of the entity against the stored one.

    Every supplied field except the mutable ones must equal the stored
    value. References (author, parent) are compared by id.
    """
    if existing is None:
        return False
    for key, value in data.items():
        if key in MUTABLE_FIELDS:
            continue
        current = existing.get(key)
        if key in ("author_user", "thread_of"):
            if _ref_id(current) != _ref_id(value):
                return False
        elif current != value:
            return False
    return True


# ==============================================================================
# Comment Service
# ==============================================================================


class CommentService:
    """Service for comment retrieval and lifecycle."""

    def __init__(
        self,
        stores: CommentStores,
        content_check: Callable[[str], bool] | None = None,
    ):
        """Initialize with the comment/report stores and a bad-word predicate."""
        self.stores = stores
        self.content_check = content_check or check_bad_words

    # ==========================================================================
    # Flat retrieval
    # ==========================================================================

    async def find_all(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        start: int | None = None,
        limit: int | None = None,
        sort: str | None = None,
        q: str | None = None,
    ) -> dict[str, Any]:
        """List comments across every relation.

        Pagination is active when ``start`` is given; it then sorts by
        ``created_at`` descending unless ``sort`` overrides it, and counts
        the total separately. ``limit`` caps the listing either way.

        Raises:
            CommentValidationError: If ``sort`` names an unsortable field.
        """
        if sort and not re.match(SORT_PATTERN, sort):
            msg = f"Cannot sort by {sort!r}"
            raise CommentValidationError(msg)

        pagination_enabled = start is not None
        criteria: dict[str, Any] = dict(filters or {})
        if pagination_enabled:
            criteria[START_KEY] = start
            criteria[SORT_KEY] = sort or DEFAULT_SORT
        elif sort:
            criteria[SORT_KEY] = sort
        if limit is not None:
            criteria[LIMIT_KEY] = limit
        if q:
            criteria[QUERY_KEY] = q

        store = self.stores.comments
        if q:
            entities = await store.search(criteria, LIST_POPULATE)
        else:
            entities = await store.find(criteria, LIST_POPULATE)
        items = [to_public(entity) for entity in entities]

        if pagination_enabled:
            total = (
                await store.count_search(criteria) if q else await store.count(criteria)
            )
            page = start // limit if limit else 0
        else:
            total = len(items)
            page = None

        return {"items": items, "total": total, "page": page}

    async def find_all_flat(
        self, relation: str | None = None
    ) -> list[dict[str, Any]]:
        """All comments of a relation (or all comments) without nesting."""
        criteria = {"related_slug": relation} if relation else {}
        entities = await self.stores.comments.find(criteria, LIST_POPULATE)
        return [to_public(entity) for entity in entities]

    async def find_all_in_hierarchy(
        self,
        relation: str | None = None,
        starting_from_id: UUID | None = None,
        drop_blocked_threads: bool = False,
    ) -> list[dict[str, Any]]:
        """Comments of a relation nested under their parents."""
        entities = await self.find_all_flat(relation)
        return build_nested_structure(
            entities, starting_from_id, "thread_of", drop_blocked_threads
        )

    async def find_one(
        self, comment_id: UUID, relation: str | None = None
    ) -> dict[str, Any] | None:
        """Single comment, scoped to the relation when one is given."""
        criteria: dict[str, Any] = {"id": comment_id}
        if relation:
            criteria["related_slug"] = relation
        entity = await self.stores.comments.find_one(criteria, SINGLE_POPULATE)
        return to_public(entity)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    @staticmethod
    def _resolve_related(
        related: Any, relation: str | None
    ) -> tuple[RelatedRef, str]:
        """Pick the single related reference of a new comment and its slug.

        A reference given in the payload derives the slug; otherwise the
        relation string is kept as the caller wrote it.
        """
        if related is None:
            refs: list[Any] = []
        elif isinstance(related, list | tuple):
            refs = list(related)
        else:
            refs = [related]

        if len(refs) > 1:
            raise CommentValidationError("Comment must relate to exactly one entity")

        try:
            if refs:
                ref = RelatedRef.from_value(refs[0])
                return ref, ref.slug
            if relation:
                return RelatedRef.from_value(relation), relation
        except ValueError as e:
            raise CommentValidationError(str(e)) from e

        raise CommentValidationError("Comment must relate to exactly one entity")

    async def create(
        self, data: Mapping[str, Any], relation: str | None = None
    ) -> dict[str, Any]:
        """Create a comment.

        Checks, in order: the parent thread exists, exactly one related
        target, non-empty content, no bad words. Nothing is written unless
        every check passes.
        """
        thread_of = data.get("thread_of")
        if thread_of is not None:
            parent = await self.find_one(as_uuid(thread_of), relation)
            if parent is None:
                raise ThreadNotFoundError

        related, related_slug = self._resolve_related(data.get("related"), relation)

        content = data.get("content")
        if not content or not str(content).strip():
            raise CommentValidationError("No content received")
        if not self.content_check(content):
            raise CommentValidationError("Bad language used")

        entity = await self.stores.comments.create(
            {
                **data,
                "related": [related],
                "related_slug": related_slug,
            }
        )
        logger.info(
            "comment_created",
            comment_id=str(entity.id),
            related_slug=related_slug,
            thread_of=str(thread_of) if thread_of else None,
        )
        return sanitize_entity(entity)

    async def update(
        self, comment_id: UUID, relation: str | None, data: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Change the content of a comment.

        Raises:
            CommentConflictError: If the comment is missing, the caller's
                fields diverge from the stored ones, or the content is empty
                or fails the bad-word check.
        """
        content = data.get("content")
        existing = await self.find_one(comment_id, relation)

        if (
            not is_equal_entity(existing, data)
            or not content
            or not str(content).strip()
            or not self.content_check(content)
        ):
            logger.info("comment_update_rejected", comment_id=str(comment_id))
            raise CommentConflictError

        entity = await self.stores.comments.update(
            {"id": comment_id}, {"content": content}
        )
        if entity is None:
            raise CommentConflictError
        return sanitize_entity(entity)

    async def points_up(
        self, comment_id: UUID, relation: str | None = None
    ) -> dict[str, Any]:
        """Upvote a comment by exactly one point."""
        existing = await self.find_one(comment_id, relation)
        if existing is None:
            raise CommentConflictError

        entity = await self.stores.comments.update(
            {"id": comment_id},
            {"points": (existing.get("points") or 0) + 1},
        )
        if entity is None:
            raise CommentConflictError
        return sanitize_entity(entity)

    async def report_abuse(
        self,
        comment_id: UUID,
        relation: str | None,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        """File an abuse report against an existing comment."""
        existing = await self.find_one(comment_id, relation)
        if existing is None:
            raise CommentConflictError

        report = await self.stores.reports.create(
            {
                **payload,
                "resolved": False,
                "related": comment_id,
            }
        )
        logger.info(
            "comment_reported",
            comment_id=str(comment_id),
            report_id=str(report.id),
            reason=report.reason.value,
        )
        return self.stores.reports.sanitize(report)
