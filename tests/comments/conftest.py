"""Fixtures for comment tests: in-memory stores and wired services."""

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import pytest

from threadkeeper.comments.models import (
    Comment,
    Report,
    as_uuid,
    create_comment,
    create_report,
)
from threadkeeper.comments.moderation import CommentModerationService
from threadkeeper.comments.service import CommentService
from threadkeeper.comments.store import (
    CommentStores,
    Criteria,
    EntityStore,
    StoreError,
    select,
)


# ==============================================================================
# In-memory stores
# ==============================================================================


class InMemoryReportStore(EntityStore[Report]):
    def __init__(self) -> None:
        self.items: dict[UUID, Report] = {}

    async def find(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Report]:
        return select(list(self.items.values()), criteria)

    async def find_one(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> Report | None:
        found = await self.find(criteria, populate)
        return found[0] if found else None

    async def create(self, data: Mapping[str, Any]) -> Report:
        report = create_report(dict(data))
        self.items[report.id] = report
        return report

    async def update(
        self, criteria: Criteria, patch: Mapping[str, Any]
    ) -> Report | None:
        existing = await self.find_one(criteria)
        if existing is None:
            return None
        updated = replace(existing, **patch, updated_at=datetime.now(UTC))
        self.items[updated.id] = updated
        return updated

    async def count(self, criteria: Criteria) -> int:
        return len(select(list(self.items.values()), criteria, paginate=False))

    async def search(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Report]:
        return select(
            list(self.items.values()), criteria, lambda r: (r.content, r.reason.value)
        )

    async def count_search(self, criteria: Criteria) -> int:
        return len(
            select(
                list(self.items.values()),
                criteria,
                lambda r: (r.content, r.reason.value),
                paginate=False,
            )
        )


class InMemoryCommentStore(EntityStore[Comment]):
    """Comment store with failure injection for the thread cascade."""

    def __init__(self, reports: InMemoryReportStore) -> None:
        self.items: dict[UUID, Comment] = {}
        self.reports = reports
        self.fail_find_children: set[UUID] = set()
        self.fail_update: set[UUID] = set()
        self.updated: list[UUID] = []

    @staticmethod
    def _text_of(comment: Comment) -> tuple[str | None, ...]:
        return (comment.content, comment.author.name if comment.author else None)

    async def _populate(self, comment: Comment, populate: Sequence[str]) -> Comment:
        reports = None
        if "reports" in populate:
            reports = await self.reports.find({"related": comment.id})
        parent = None
        if "thread_of" in populate and comment.thread_of is not None:
            parent_populate = ("reports",) if "thread_of.reports" in populate else ()
            parent = await self.find_one({"id": comment.thread_of}, parent_populate)
        author = comment.author if "author_user" in populate else None
        return replace(comment, author=author, reports=reports, parent=parent)

    async def find(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Comment]:
        parent_id = as_uuid(criteria.get("thread_of"))
        if parent_id in self.fail_find_children:
            msg = f"replies of {parent_id} unavailable"
            raise StoreError(msg)
        found = select(list(self.items.values()), criteria)
        return [await self._populate(comment, populate) for comment in found]

    async def find_one(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> Comment | None:
        found = await self.find(criteria, populate)
        return found[0] if found else None

    async def create(self, data: Mapping[str, Any]) -> Comment:
        comment = create_comment(dict(data))
        self.items[comment.id] = comment
        return comment

    async def update(
        self, criteria: Criteria, patch: Mapping[str, Any]
    ) -> Comment | None:
        comment_id = as_uuid(criteria.get("id"))
        if comment_id in self.fail_update:
            msg = f"write to {comment_id} timed out"
            raise StoreError(msg)
        found = select(list(self.items.values()), criteria)
        if not found:
            return None
        updated = replace(found[0], **patch, updated_at=datetime.now(UTC))
        self.items[updated.id] = updated
        self.updated.append(updated.id)
        return updated

    async def count(self, criteria: Criteria) -> int:
        return len(select(list(self.items.values()), criteria, paginate=False))

    async def search(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Comment]:
        found = select(list(self.items.values()), criteria, self._text_of)
        return [await self._populate(comment, populate) for comment in found]

    async def count_search(self, criteria: Criteria) -> int:
        return len(
            select(list(self.items.values()), criteria, self._text_of, paginate=False)
        )


# ==============================================================================
# Fixtures
# ==============================================================================

RELATION = "article:1"


@pytest.fixture
def stores() -> CommentStores:
    reports = InMemoryReportStore()
    return CommentStores(comments=InMemoryCommentStore(reports), reports=reports)


@pytest.fixture
def comment_service(stores: CommentStores) -> CommentService:
    return CommentService(stores)


@pytest.fixture
def moderation_service(
    stores: CommentStores, comment_service: CommentService
) -> CommentModerationService:
    return CommentModerationService(stores, comment_service)


@pytest.fixture
def author() -> dict[str, Any]:
    return {
        "id": uuid4(),
        "name": "Ada",
        "email": "ada@example.com",
        "avatar": "https://example.com/ada.png",
    }


@pytest.fixture
def seed(stores: CommentStores, author: dict[str, Any]):
    """Insert a comment directly into the store, bypassing validation.

    Successive calls get increasing ``created_at`` values.
    """
    base = datetime(2024, 1, 1, tzinfo=UTC)
    counter = {"n": 0}

    def _seed(
        content: str = "A comment",
        thread_of: UUID | None = None,
        relation: str = RELATION,
        **fields: Any,
    ) -> Comment:
        content_type, _, ref_id = relation.partition(":")
        comment = create_comment(
            {
                "content": content,
                "author_user": author,
                "related": [{"content_type": content_type, "ref_id": ref_id}],
                "related_slug": relation,
                "thread_of": thread_of,
            }
        )
        counter["n"] += 1
        created_at = base + timedelta(minutes=counter["n"])
        comment = replace(
            comment, created_at=created_at, updated_at=created_at, **fields
        )
        stores.comments.items[comment.id] = comment
        return comment

    return _seed
