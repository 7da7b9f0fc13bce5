"""Tests for comment retrieval and lifecycle."""

from functools import partial
from uuid import uuid4

import pytest

from threadkeeper.comments.exceptions import (
    CommentConflictError,
    CommentValidationError,
    ThreadNotFoundError,
)
from threadkeeper.comments.models import ReportReason
from threadkeeper.comments.service import (
    CommentService,
    check_bad_words,
    is_equal_entity,
)

from .conftest import RELATION


# ==============================================================================
# Helpers
# ==============================================================================


class TestCheckBadWords:
    def test_clean_content(self) -> None:
        assert check_bad_words("A perfectly fine remark") is True

    def test_whole_word_case_insensitive(self) -> None:
        assert check_bad_words("What the SHIT") is False

    def test_substring_is_not_a_match(self) -> None:
        assert check_bad_words("Scunthorpe", bad_words={"cunt"}) is True

    def test_empty_word_list_allows_everything(self) -> None:
        assert check_bad_words("shit", bad_words=()) is True


class TestIsEqualEntity:
    def test_missing_entity(self) -> None:
        assert is_equal_entity(None, {"content": "x"}) is False

    def test_content_is_ignored(self) -> None:
        assert is_equal_entity({"content": "old"}, {"content": "new"}) is True

    def test_references_compared_by_id(self) -> None:
        author_id = uuid4()
        existing = {"author_user": {"id": author_id, "name": "Ada"}}
        assert is_equal_entity(existing, {"author_user": author_id}) is True
        assert is_equal_entity(existing, {"author_user": uuid4()}) is False

    def test_other_fields_must_match(self) -> None:
        existing = {"blocked": False, "related_slug": RELATION}
        assert is_equal_entity(existing, {"blocked": True}) is False
        assert is_equal_entity(existing, {"related_slug": RELATION}) is True


# ==============================================================================
# Flat retrieval
# ==============================================================================


class TestFindAll:
    @pytest.mark.asyncio
    async def test_without_pagination(self, comment_service, seed) -> None:
        seed("one")
        seed("two", relation="video:9")

        result = await comment_service.find_all()

        assert result["total"] == 2
        assert result["page"] is None
        assert len(result["items"]) == 2

    @pytest.mark.asyncio
    async def test_pagination_sorts_newest_first(self, comment_service, seed) -> None:
        comments = [seed(f"c{i}") for i in range(5)]

        result = await comment_service.find_all(start=2, limit=2)

        assert result["total"] == 5
        assert result["page"] == 1
        assert [c["id"] for c in result["items"]] == [comments[2].id, comments[1].id]

    @pytest.mark.asyncio
    async def test_explicit_sort(self, comment_service, seed) -> None:
        comments = [seed(f"c{i}") for i in range(3)]

        result = await comment_service.find_all(
            start=0, limit=10, sort="created_at:asc"
        )

        assert [c["id"] for c in result["items"]] == [c.id for c in comments]
        assert result["page"] == 0

    @pytest.mark.asyncio
    async def test_missing_values_sort_last(self, comment_service, seed) -> None:
        unliked = seed("unliked")
        liked = seed("liked", points=3)

        result = await comment_service.find_all(start=0, limit=10, sort="points:desc")

        assert [c["id"] for c in result["items"]] == [liked.id, unliked.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sort", ["related:asc", "author:desc", "reports:asc"])
    async def test_unsortable_field_rejected(self, comment_service, seed, sort):
        seed(relation="article:1")
        seed(relation="article:2")

        with pytest.raises(CommentValidationError):
            await comment_service.find_all(start=0, limit=10, sort=sort)

    @pytest.mark.asyncio
    async def test_limit_without_start_caps_listing(
        self, comment_service, seed
    ) -> None:
        for i in range(4):
            seed(f"c{i}")

        result = await comment_service.find_all(limit=2)

        assert len(result["items"]) == 2
        assert result["page"] is None

    @pytest.mark.asyncio
    async def test_query_matches_content(self, comment_service, seed) -> None:
        seed("about cats")
        seed("about dogs")
        seed("more cats")

        result = await comment_service.find_all(start=0, limit=1, q="CATS")

        assert result["total"] == 2
        assert len(result["items"]) == 1

    @pytest.mark.asyncio
    async def test_items_are_sanitized(self, comment_service, seed) -> None:
        seed()

        result = await comment_service.find_all()

        author = result["items"][0]["author_user"]
        assert "email" not in author
        assert author["name"] == "Ada"


class TestFindAllFlat:
    @pytest.mark.asyncio
    async def test_scoped_to_relation(self, comment_service, seed) -> None:
        mine = seed()
        seed(relation="video:9")

        result = await comment_service.find_all_flat(RELATION)

        assert [c["id"] for c in result] == [mine.id]

    @pytest.mark.asyncio
    async def test_resolved_reports_are_hidden(
        self, comment_service, stores, seed
    ) -> None:
        comment = seed()
        await stores.reports.create({"related": comment.id, "reason": "OTHER"})
        await stores.reports.create(
            {"related": comment.id, "reason": "OTHER", "resolved": True}
        )

        result = await comment_service.find_all_flat(RELATION)

        assert len(result[0]["reports"]) == 1


class TestFindAllInHierarchy:
    @pytest.mark.asyncio
    async def test_builds_tree(self, comment_service, seed) -> None:
        root = seed()
        reply = seed(thread_of=root.id)

        tree = await comment_service.find_all_in_hierarchy(RELATION)

        assert tree[0]["id"] == root.id
        assert tree[0]["children"][0]["id"] == reply.id

    @pytest.mark.asyncio
    async def test_drops_blocked_thread_replies(self, comment_service, seed) -> None:
        root = seed(blocked_thread=True)
        seed(thread_of=root.id, blocked_thread=True)

        tree = await comment_service.find_all_in_hierarchy(
            RELATION, drop_blocked_threads=True
        )

        assert tree[0]["children"] == []


class TestFindOne:
    @pytest.mark.asyncio
    async def test_scoped_to_relation(self, comment_service, seed) -> None:
        comment = seed()

        found = await comment_service.find_one(comment.id, RELATION)
        assert found["id"] == comment.id
        assert await comment_service.find_one(comment.id, "video:9") is None

    @pytest.mark.asyncio
    async def test_missing(self, comment_service) -> None:
        assert await comment_service.find_one(uuid4(), RELATION) is None


# ==============================================================================
# Lifecycle
# ==============================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_root_comment(self, comment_service, stores, author) -> None:
        result = await comment_service.create(
            {"content": "First!", "author_user": author}, RELATION
        )

        stored = stores.comments.items[result["id"]]
        assert stored.related_slug == RELATION
        assert stored.related[0].content_type == "article"
        assert stored.thread_of is None
        assert result["points"] is None
        assert "email" not in result["author_user"]

    @pytest.mark.asyncio
    async def test_create_reply(self, comment_service, seed) -> None:
        parent = seed()

        result = await comment_service.create(
            {"content": "Reply", "thread_of": parent.id}, RELATION
        )

        assert result["thread_of"] == parent.id

    @pytest.mark.asyncio
    async def test_related_from_body(self, comment_service) -> None:
        result = await comment_service.create(
            {
                "content": "Hi",
                "related": [{"content_type": "Video", "ref_id": "7"}],
            },
            None,
        )

        assert result["related_slug"] == "video:7"

    @pytest.mark.asyncio
    async def test_relation_kept_as_given(self, comment_service) -> None:
        created = await comment_service.create({"content": "Hello"}, "Article:42")

        assert created["related_slug"] == "Article:42"
        flat = await comment_service.find_all_flat("Article:42")
        assert [c["id"] for c in flat] == [created["id"]]
        reply = await comment_service.create(
            {"content": "Reply", "thread_of": created["id"]}, "Article:42"
        )
        assert reply["thread_of"] == created["id"]
        liked = await comment_service.points_up(created["id"], "Article:42")
        assert liked["points"] == 1

    @pytest.mark.asyncio
    async def test_missing_thread_rejected(self, comment_service, stores) -> None:
        with pytest.raises(ThreadNotFoundError) as exc_info:
            await comment_service.create(
                {"content": "Reply", "thread_of": uuid4()}, RELATION
            )

        assert exc_info.value.message == "Thread is not existing"
        assert exc_info.value.status_code == 400
        assert stores.comments.items == {}

    @pytest.mark.asyncio
    async def test_parent_in_other_relation_rejected(
        self, comment_service, seed
    ) -> None:
        parent = seed(relation="video:9")

        with pytest.raises(ThreadNotFoundError):
            await comment_service.create(
                {"content": "Reply", "thread_of": parent.id}, RELATION
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_content_rejected(self, comment_service, stores, content):
        with pytest.raises(CommentValidationError) as exc_info:
            await comment_service.create({"content": content}, RELATION)

        assert exc_info.value.message == "No content received"
        assert stores.comments.items == {}

    @pytest.mark.asyncio
    async def test_bad_language_rejected(self, comment_service, stores) -> None:
        with pytest.raises(CommentValidationError) as exc_info:
            await comment_service.create({"content": "total shit"}, RELATION)

        assert exc_info.value.message == "Bad language used"
        assert stores.comments.items == {}

    @pytest.mark.asyncio
    async def test_thread_checked_before_content(self, comment_service) -> None:
        with pytest.raises(ThreadNotFoundError):
            await comment_service.create(
                {"content": "", "thread_of": uuid4()}, RELATION
            )

    @pytest.mark.asyncio
    async def test_custom_content_check(self, stores) -> None:
        service = CommentService(
            stores, content_check=partial(check_bad_words, bad_words={"darn"})
        )

        with pytest.raises(CommentValidationError):
            await service.create({"content": "darn it"}, RELATION)
        created = await service.create({"content": "shit happens"}, RELATION)
        assert created["content"] == "shit happens"

    @pytest.mark.asyncio
    async def test_multiple_related_rejected(self, comment_service) -> None:
        with pytest.raises(CommentValidationError):
            await comment_service.create(
                {"content": "Hi", "related": ["article:1", "article:2"]}, RELATION
            )

    @pytest.mark.asyncio
    async def test_malformed_relation_rejected(self, comment_service) -> None:
        with pytest.raises(CommentValidationError):
            await comment_service.create({"content": "Hi"}, "not-a-relation")


class TestUpdate:
    @pytest.mark.asyncio
    async def test_changes_content(self, comment_service, stores, seed) -> None:
        comment = seed("before")

        result = await comment_service.update(
            comment.id, RELATION, {"content": "after"}
        )

        assert result["content"] == "after"
        assert stores.comments.items[comment.id].content == "after"

    @pytest.mark.asyncio
    async def test_matching_fields_accepted(self, comment_service, seed, author):
        comment = seed("before")

        result = await comment_service.update(
            comment.id,
            RELATION,
            {"content": "after", "author_user": author["id"], "blocked": False},
        )

        assert result["content"] == "after"

    @pytest.mark.asyncio
    async def test_mismatched_field_rejected(self, comment_service, stores, seed):
        comment = seed("before")

        with pytest.raises(CommentConflictError):
            await comment_service.update(
                comment.id, RELATION, {"content": "after", "author_user": uuid4()}
            )

        assert stores.comments.items[comment.id].content == "before"

    @pytest.mark.asyncio
    async def test_missing_comment_rejected(self, comment_service) -> None:
        with pytest.raises(CommentConflictError):
            await comment_service.update(uuid4(), RELATION, {"content": "x"})

    @pytest.mark.asyncio
    async def test_bad_language_rejected(self, comment_service, seed) -> None:
        comment = seed()

        with pytest.raises(CommentConflictError):
            await comment_service.update(comment.id, RELATION, {"content": "shit"})

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, comment_service, seed) -> None:
        comment = seed()

        with pytest.raises(CommentConflictError):
            await comment_service.update(comment.id, RELATION, {"content": " "})

    @pytest.mark.asyncio
    async def test_other_relation_rejected(self, comment_service, seed) -> None:
        comment = seed()

        with pytest.raises(CommentConflictError):
            await comment_service.update(comment.id, "video:9", {"content": "x"})


class TestPointsUp:
    @pytest.mark.asyncio
    async def test_first_upvote_from_unset(self, comment_service, seed) -> None:
        comment = seed()

        result = await comment_service.points_up(comment.id, RELATION)

        assert result["points"] == 1

    @pytest.mark.asyncio
    async def test_increments_by_one(self, comment_service, seed) -> None:
        comment = seed(points=41)

        result = await comment_service.points_up(comment.id, RELATION)

        assert result["points"] == 42

    @pytest.mark.asyncio
    async def test_missing_comment(self, comment_service) -> None:
        with pytest.raises(CommentConflictError):
            await comment_service.points_up(uuid4(), RELATION)


class TestReportAbuse:
    @pytest.mark.asyncio
    async def test_creates_unresolved_report(
        self, comment_service, stores, seed
    ) -> None:
        comment = seed()

        result = await comment_service.report_abuse(
            comment.id,
            RELATION,
            {"reason": ReportReason.BAD_LANGUAGE, "content": "rude"},
        )

        assert result["resolved"] is False
        assert result["related"] == comment.id
        assert result["reason"] == "BAD_LANGUAGE"
        assert len(stores.reports.items) == 1

    @pytest.mark.asyncio
    async def test_extra_fields_kept_in_details(self, comment_service, seed) -> None:
        comment = seed()

        result = await comment_service.report_abuse(
            comment.id, RELATION, {"reason": "OTHER", "source": "mobile"}
        )

        assert result["details"] == {"source": "mobile"}

    @pytest.mark.asyncio
    async def test_missing_comment(self, comment_service, stores) -> None:
        with pytest.raises(CommentConflictError):
            await comment_service.report_abuse(uuid4(), RELATION, {"reason": "OTHER"})

        assert stores.reports.items == {}
