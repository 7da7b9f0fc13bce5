"""Moderation actions on comments and abuse reports.

- Block / unblock a single comment
- Block / unblock a whole thread, cascading the new state to every reply
- Resolve abuse reports
- Thread context view for moderators

The thread cascade is best effort and not transactional: storage failures
are recorded per comment in a ``CascadeResult`` instead of aborting the
request, and branches already updated are kept.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog

from .exceptions import CommentConflictError, CommentNotFoundError
from .models import Comment
from .sanitizer import filter_resolved_reports, sanitize_entity
from .service import CommentService
from .store import CommentStores, StoreError


logger = structlog.get_logger(__name__)


THREAD_POPULATE = (
    "thread_of",
    "thread_of.reports",
    "author_user",
    "related",
    "reports",
)


@dataclass
class CascadeFailure:
    """A comment the cascade could not read or update."""

    comment_id: UUID
    stage: str  # "find_children", "update" or "cycle"
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "comment_id": self.comment_id,
            "stage": self.stage,
            "error": self.error,
        }


@dataclass
class CascadeResult:
    """Outcome of propagating a block state through a thread."""

    updated: list[UUID] = field(default_factory=list)
    failures: list[CascadeFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "updated": list(self.updated),
            "failures": [failure.to_dict() for failure in self.failures],
        }


@dataclass
class BlockThreadResult:
    comment: dict[str, Any]
    cascade: CascadeResult

    def to_dict(self) -> dict[str, Any]:
        return {"comment": self.comment, "cascade": self.cascade.to_dict()}


class CommentModerationService:
    """Service for moderator actions."""

    def __init__(self, stores: CommentStores, comments: CommentService):
        self.stores = stores
        self.comments = comments

    async def find_one_and_thread(self, comment_id: UUID) -> dict[str, Any]:
        """Load a comment with its parent and the comments on its level.

        Returns:
            ``{"selected": comment, "level": siblings}`` where ``selected``
            embeds its parent and ``level`` is the nested view rooted at
            that parent, scoped to the comment's related target.

        Raises:
            CommentNotFoundError: If the comment does not exist.
        """
        entity = await self.stores.comments.find_one(
            {"id": comment_id}, THREAD_POPULATE
        )
        if entity is None:
            raise CommentNotFoundError

        relation = entity.related[0].slug if entity.related else None
        level = await self.comments.find_all_in_hierarchy(relation, entity.thread_of)

        selected = filter_resolved_reports(sanitize_entity(entity))
        selected["thread_of"] = (
            filter_resolved_reports(selected["thread_of"])
            if isinstance(selected.get("thread_of"), dict)
            else None
        )
        return {
            "selected": selected,
            "level": level,
        }

    async def _get_existing(self, comment_id: UUID) -> Comment:
        existing = await self.stores.comments.find_one({"id": comment_id})
        if existing is None:
            raise CommentConflictError
        return existing

    async def block_comment(self, comment_id: UUID) -> dict[str, Any]:
        """Toggle ``blocked`` on one comment; replies are not touched."""
        existing = await self._get_existing(comment_id)
        changed = await self.stores.comments.update(
            {"id": comment_id}, {"blocked": not existing.blocked}
        )
        if changed is None:
            raise CommentConflictError
        logger.info(
            "comment_blocked",
            comment_id=str(comment_id),
            blocked=changed.blocked,
        )
        return sanitize_entity(changed)

    async def block_comment_thread(self, comment_id: UUID) -> BlockThreadResult:
        """Toggle ``blocked_thread`` on a comment and cascade it to its replies.

        Check ``result.cascade.success``: False means some replies kept their
        previous state.
        """
        existing = await self._get_existing(comment_id)
        block_status = not existing.blocked_thread
        changed = await self.stores.comments.update(
            {"id": comment_id}, {"blocked_thread": block_status}
        )
        if changed is None:
            raise CommentConflictError

        cascade = await self.block_comment_thread_nested(comment_id, block_status)
        logger.info(
            "comment_thread_blocked",
            comment_id=str(comment_id),
            blocked_thread=block_status,
            updated=len(cascade.updated),
            success=cascade.success,
        )
        return BlockThreadResult(comment=sanitize_entity(changed), cascade=cascade)

    async def block_comment_thread_nested(
        self, comment_id: UUID, block_status: bool
    ) -> CascadeResult:
        """Set ``blocked_thread`` on every descendant of a comment.

        Works level by level: children of the whole frontier are fetched
        concurrently, then updated concurrently, and the updated children
        become the next frontier. A failing comment is recorded and its
        subtree skipped; other branches keep going.
        """
        result = CascadeResult()
        visited: set[UUID] = {comment_id}
        frontier = [comment_id]

        while frontier:
            levels = await asyncio.gather(
                *(self._children_of(parent_id, result) for parent_id in frontier)
            )

            to_update: list[UUID] = []
            for child in (child for children in levels for child in children):
                if child.id in visited:
                    result.failures.append(
                        CascadeFailure(
                            comment_id=child.id,
                            stage="cycle",
                            error="comment already visited in this thread",
                        )
                    )
                    continue
                visited.add(child.id)
                to_update.append(child.id)

            updated = await asyncio.gather(
                *(
                    self._set_blocked_thread(child_id, block_status, result)
                    for child_id in to_update
                )
            )
            frontier = [child_id for child_id in updated if child_id is not None]
            result.updated.extend(frontier)

        if not result.success:
            logger.warning(
                "comment_thread_cascade_partial_failure",
                comment_id=str(comment_id),
                blocked_thread=block_status,
                updated=len(result.updated),
                failures=[failure.to_dict() for failure in result.failures],
            )
        return result

    async def _children_of(
        self, parent_id: UUID, result: CascadeResult
    ) -> list[Comment]:
        try:
            return await self.stores.comments.find({"thread_of": parent_id})
        except StoreError as e:
            result.failures.append(
                CascadeFailure(
                    comment_id=parent_id, stage="find_children", error=str(e)
                )
            )
            return []

    async def _set_blocked_thread(
        self, comment_id: UUID, block_status: bool, result: CascadeResult
    ) -> UUID | None:
        try:
            changed = await self.stores.comments.update(
                {"id": comment_id}, {"blocked_thread": block_status}
            )
        except StoreError as e:
            result.failures.append(
                CascadeFailure(comment_id=comment_id, stage="update", error=str(e))
            )
            return None
        if changed is None:
            result.failures.append(
                CascadeFailure(
                    comment_id=comment_id, stage="update", error="comment not found"
                )
            )
            return None
        return changed.id

    async def resolve_abuse_report(
        self, report_id: UUID, comment_id: UUID
    ) -> dict[str, Any]:
        """Mark one report of a comment as resolved."""
        report = await self.stores.reports.update(
            {"id": report_id, "related": comment_id}, {"resolved": True}
        )
        if report is None:
            raise CommentConflictError
        logger.info(
            "comment_report_resolved",
            comment_id=str(comment_id),
            report_id=str(report_id),
        )
        return self.stores.reports.sanitize(report)
