"""Cassandra implementations of the comment and report stores.

Lookups go through prepared statements on the primary key or a secondary
index (comment id, related slug, parent pointer, reported comment). Any
remaining filters, sorting, paging and the ``_q`` text query are applied in
Python on the fetched rows.
"""

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from cassandra import DriverException
from cassandra.cluster import NoHostAvailable

from .models import Comment, Report, as_uuid, create_comment, create_report
from .store import Criteria, EntityStore, StoreError, select, split_criteria


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from cassandra.query import PreparedStatement


logger = structlog.get_logger(__name__)


class _CassandraStore:
    """Statement execution shared by the Cassandra stores."""

    # Entity field -> column for fields ``update`` may change
    UPDATABLE_COLUMNS: Mapping[str, str] = {}
    TABLE = ""
    KEY_COLUMNS: tuple[str, ...] = ()

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._update_statements: dict[tuple[str, ...], "PreparedStatement"] = {}
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        pass

    async def _execute(self, statement: "PreparedStatement", params: list[Any]) -> list:
        try:
            return await self.session.aexecute(statement, params)
        except (DriverException, NoHostAvailable) as e:
            logger.error(
                "cassandra_query_failed",
                table=self.TABLE,
                error=str(e),
                error_type=type(e).__name__,
            )
            msg = f"{self.TABLE} query failed: {e}"
            raise StoreError(msg) from e

    def _update_statement(self, columns: tuple[str, ...]) -> "PreparedStatement":
        """Prepare (once per column set) an UPDATE of the given columns."""
        statement = self._update_statements.get(columns)
        if statement is None:
            assignments = ", ".join(f"{column} = ?" for column in columns)
            where = " AND ".join(f"{column} = ?" for column in self.KEY_COLUMNS)
            statement = self.session.prepare(f"""
                UPDATE {self.keyspace}.{self.TABLE}
                SET {assignments}, updated_at = ?
                WHERE {where}
            """)
            self._update_statements[columns] = statement
        return statement

    def _columns_for(self, patch: Mapping[str, Any]) -> tuple[str, ...]:
        unknown = set(patch) - set(self.UPDATABLE_COLUMNS)
        if unknown:
            msg = f"Fields cannot be updated: {', '.join(sorted(unknown))}"
            raise StoreError(msg)
        return tuple(self.UPDATABLE_COLUMNS[key] for key in patch)


# ==============================================================================
# Reports
# ==============================================================================


class CassandraReportStore(_CassandraStore, EntityStore[Report]):
    """Abuse reports, partitioned by the reported comment."""

    TABLE = "comment_reports"
    KEY_COLUMNS = ("comment_id", "report_id")
    UPDATABLE_COLUMNS = {"resolved": "resolved"}

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_report = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_reports
            (comment_id, report_id, reason, content, details, resolved,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_reports_by_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_reports
            WHERE comment_id = ?
        """)

        self._get_report = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_reports
            WHERE report_id = ?
        """)

        self._get_all_reports = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_reports
        """)

    async def _fetch(self, filters: Mapping[str, Any]) -> list[Report]:
        if filters.get("id") is not None:
            rows = await self._execute(self._get_report, [as_uuid(filters["id"])])
        elif filters.get("related") is not None:
            rows = await self._execute(
                self._get_reports_by_comment, [as_uuid(filters["related"])]
            )
        else:
            rows = await self._execute(self._get_all_reports, [])
        return [Report.from_row(row) for row in rows]

    @staticmethod
    def _text_of(report: Report) -> tuple[str | None, ...]:
        return (report.content, report.reason.value)

    async def find(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Report]:
        filters, _ = split_criteria(criteria)
        return select(await self._fetch(filters), criteria)

    async def find_one(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> Report | None:
        found = await self.find(criteria, populate)
        return found[0] if found else None

    async def create(self, data: Mapping[str, Any]) -> Report:
        report = create_report(dict(data))
        await self._execute(
            self._insert_report,
            [
                report.related,
                report.id,
                report.reason.value,
                report.content,
                report.details,
                report.resolved,
                report.created_at,
                report.updated_at,
            ],
        )
        return report

    async def update(
        self, criteria: Criteria, patch: Mapping[str, Any]
    ) -> Report | None:
        columns = self._columns_for(patch)
        existing = await self.find_one(criteria)
        if existing is None:
            return None

        now = datetime.now(UTC)
        await self._execute(
            self._update_statement(columns),
            [*patch.values(), now, existing.related, existing.id],
        )
        return replace(existing, **patch, updated_at=now)

    async def count(self, criteria: Criteria) -> int:
        filters, _ = split_criteria(criteria)
        return len(select(await self._fetch(filters), filters, paginate=False))

    async def search(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Report]:
        filters, _ = split_criteria(criteria)
        return select(await self._fetch(filters), criteria, self._text_of)

    async def count_search(self, criteria: Criteria) -> int:
        filters, _ = split_criteria(criteria)
        return len(
            select(await self._fetch(filters), criteria, self._text_of, paginate=False)
        )


# ==============================================================================
# Comments
# ==============================================================================


class CassandraCommentStore(_CassandraStore, EntityStore[Comment]):
    """Comments with their denormalized author.

    Populate names: ``author_user``, ``related``, ``reports``, ``thread_of``
    and ``thread_of.reports``.
    """

    TABLE = "comments"
    KEY_COLUMNS = ("comment_id",)
    UPDATABLE_COLUMNS = {
        "content": "content",
        "points": "points",
        "blocked": "blocked",
        "blocked_thread": "blocked_thread",
        "thread_of": "thread_of",
        "related_slug": "related_slug",
    }

    def __init__(
        self, session: "Session", keyspace: str, reports: CassandraReportStore
    ):
        super().__init__(session, keyspace)
        self.reports = reports

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments
            (comment_id, content, author_id, author_name, author_email, author_avatar,
             related, related_slug, thread_of, blocked, blocked_thread, points,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE comment_id = ?
        """)

        self._get_comments_by_related = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE related_slug = ?
        """)

        self._get_replies = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE thread_of = ?
        """)

        self._get_all_comments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
        """)

    async def _fetch(self, filters: Mapping[str, Any]) -> list[Comment]:
        # Narrowest indexed lookup first; select() applies the rest
        if filters.get("id") is not None:
            rows = await self._execute(self._get_comment, [as_uuid(filters["id"])])
        elif filters.get("related_slug") is not None:
            rows = await self._execute(
                self._get_comments_by_related, [filters["related_slug"]]
            )
        elif filters.get("thread_of") is not None:
            rows = await self._execute(
                self._get_replies, [as_uuid(filters["thread_of"])]
            )
        else:
            rows = await self._execute(self._get_all_comments, [])
        return [Comment.from_row(row) for row in rows]

    @staticmethod
    def _text_of(comment: Comment) -> tuple[str | None, ...]:
        return (comment.content, comment.author.name if comment.author else None)

    async def _populate(self, comment: Comment, populate: Sequence[str]) -> Comment:
        author = comment.author if "author_user" in populate else None
        reports = None
        if "reports" in populate:
            reports = await self.reports.find({"related": comment.id})

        parent = None
        if "thread_of" in populate and comment.thread_of is not None:
            parent_populate = ("reports",) if "thread_of.reports" in populate else ()
            parent = await self.find_one({"id": comment.thread_of}, parent_populate)

        return replace(comment, author=author, reports=reports, parent=parent)

    async def _populate_all(
        self, comments: list[Comment], populate: Sequence[str]
    ) -> list[Comment]:
        return list(
            await asyncio.gather(
                *(self._populate(comment, populate) for comment in comments)
            )
        )

    async def find(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Comment]:
        filters, _ = split_criteria(criteria)
        comments = select(await self._fetch(filters), criteria)
        return await self._populate_all(comments, populate)

    async def find_one(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> Comment | None:
        filters, _ = split_criteria(criteria)
        found = select(await self._fetch(filters), criteria)
        if not found:
            return None
        return await self._populate(found[0], populate)

    async def create(self, data: Mapping[str, Any]) -> Comment:
        comment = create_comment(dict(data))
        author = comment.author
        await self._execute(
            self._insert_comment,
            [
                comment.id,
                comment.content,
                comment.author_id,
                author.name if author else None,
                author.email if author else None,
                author.avatar if author else None,
                [ref.to_dict() for ref in comment.related],
                comment.related_slug,
                comment.thread_of,
                comment.blocked,
                comment.blocked_thread,
                comment.points,
                comment.created_at,
                comment.updated_at,
            ],
        )
        logger.debug("comment_row_inserted", comment_id=str(comment.id))
        return comment

    async def update(
        self, criteria: Criteria, patch: Mapping[str, Any]
    ) -> Comment | None:
        columns = self._columns_for(patch)
        existing = await self.find_one(criteria, ("author_user",))
        if existing is None:
            return None

        fields = dict(patch)
        if "thread_of" in fields:
            fields["thread_of"] = as_uuid(fields["thread_of"])

        now = datetime.now(UTC)
        await self._execute(
            self._update_statement(columns),
            [*fields.values(), now, existing.id],
        )
        return replace(existing, **fields, updated_at=now)

    async def count(self, criteria: Criteria) -> int:
        filters, _ = split_criteria(criteria)
        return len(select(await self._fetch(filters), filters, paginate=False))

    async def search(
        self, criteria: Criteria, populate: Sequence[str] = ()
    ) -> list[Comment]:
        filters, _ = split_criteria(criteria)
        comments = select(await self._fetch(filters), criteria, self._text_of)
        return await self._populate_all(comments, populate)

    async def count_search(self, criteria: Criteria) -> int:
        filters, _ = split_criteria(criteria)
        return len(
            select(await self._fetch(filters), criteria, self._text_of, paginate=False)
        )
