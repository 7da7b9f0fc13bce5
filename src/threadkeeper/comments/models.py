"""Database models for threaded comments and abuse reports.

Cassandra table definitions for:
- Comments: one row per comment, parent pointer in ``thread_of``
- Comment reports: abuse reports partitioned by the reported comment

Architecture: Adjacency List pattern for hierarchical comments
- thread_of references the parent comment (NULL for root comments)
- related_slug ("type:id") scopes comments to the content they belong to
- author info is denormalized onto the comment row
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class ReportReason(str, Enum):
    """Reasons for reporting a comment."""

    BAD_LANGUAGE = "BAD_LANGUAGE"
    DISCRIMINATION = "DISCRIMINATION"
    OTHER = "OTHER"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COMMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    comment_id UUID PRIMARY KEY,
    content TEXT,
    author_id UUID,
    author_name TEXT,
    author_email TEXT,
    author_avatar TEXT,
    related LIST<FROZEN<MAP<TEXT, TEXT>>>,
    related_slug TEXT,
    thread_of UUID,
    blocked BOOLEAN,
    blocked_thread BOOLEAN,
    points INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Flat retrieval scopes by related target
COMMENT_RELATED_SLUG_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_related_slug_idx
ON {keyspace}.comments (related_slug)
"""

# Thread cascade walks children by parent pointer
COMMENT_THREAD_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_thread_of_idx
ON {keyspace}.comments (thread_of)
"""

REPORT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_reports (
    comment_id UUID,
    report_id UUID,
    reason TEXT,
    content TEXT,
    details MAP<TEXT, TEXT>,
    resolved BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((comment_id), report_id)
)
"""

REPORT_ID_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comment_reports_report_id_idx
ON {keyspace}.comment_reports (report_id)
"""

COMMENTS_TABLES_CQL = [
    COMMENT_TABLE_CQL,
    COMMENT_RELATED_SLUG_INDEX_CQL,
    COMMENT_THREAD_INDEX_CQL,
    REPORT_TABLE_CQL,
    REPORT_ID_INDEX_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


def as_uuid(value: Any) -> UUID | None:
    """Coerce an id, or an embedded entity carrying one, to a UUID."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id")
    elif hasattr(value, "id") and not isinstance(value, str | UUID):
        value = value.id
    if value is None or isinstance(value, UUID):
        return value
    return UUID(str(value))


@dataclass(frozen=True)
class RelatedRef:
    """Polymorphic reference to the content a comment is attached to."""

    content_type: str
    ref_id: str

    @property
    def slug(self) -> str:
        """Scoping key used by flat queries, e.g. ``article:42``."""
        return f"{self.content_type.lower()}:{self.ref_id}"

    @classmethod
    def from_value(cls, value: Any) -> "RelatedRef":
        """Build a reference from a mapping, another ref or a ``type:id`` string.

        Raises:
            ValueError: If the value cannot be read as a reference.
        """
        if isinstance(value, RelatedRef):
            return value
        if isinstance(value, str):
            content_type, sep, ref_id = value.partition(":")
            if not sep or not content_type or not ref_id:
                msg = f"Malformed relation: {value!r}"
                raise ValueError(msg)
            return cls(content_type=content_type, ref_id=ref_id)
        if isinstance(value, dict):
            content_type = value.get("content_type") or value.get("ref")
            ref_id = value.get("ref_id") or value.get("refId")
            if content_type and ref_id is not None:
                return cls(content_type=str(content_type), ref_id=str(ref_id))
        msg = f"Malformed related reference: {value!r}"
        raise ValueError(msg)

    def to_dict(self) -> dict[str, str]:
        return {"content_type": self.content_type, "ref_id": self.ref_id}


@dataclass
class CommentAuthor:
    """Author details denormalized onto the comment."""

    id: UUID
    name: str | None = None
    email: str | None = None
    avatar: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> "CommentAuthor":
        """Accept an author mapping, an author, or a bare user id."""
        if isinstance(value, CommentAuthor):
            return value
        if isinstance(value, dict):
            return cls(
                id=as_uuid(value["id"]),
                name=value.get("name"),
                email=value.get("email"),
                avatar=value.get("avatar"),
            )
        return cls(id=as_uuid(value))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar,
        }


@dataclass
class Report:
    """Abuse report against a single comment."""

    id: UUID
    related: UUID
    resolved: bool
    reason: ReportReason
    content: str | None
    details: dict[str, str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "Report":
        """Create Report from Cassandra row."""
        return cls(
            id=row.report_id,
            related=row.comment_id,
            resolved=row.resolved or False,
            reason=ReportReason(row.reason or ReportReason.OTHER),
            content=row.content,
            details=dict(row.details or {}),
            created_at=row.created_at,
            updated_at=row.updated_at or row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "related": self.related,
            "resolved": self.resolved,
            "reason": self.reason.value,
            "content": self.content,
            "details": dict(self.details),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Comment:
    """Comment entity.

    ``author``, ``reports`` and ``parent`` are only set when the store was
    asked to populate ``author_user``, ``reports`` and ``thread_of``.
    """

    id: UUID
    content: str
    author_id: UUID | None
    related: list[RelatedRef]
    related_slug: str | None
    thread_of: UUID | None
    blocked: bool
    blocked_thread: bool
    points: int | None
    created_at: datetime
    updated_at: datetime
    author: CommentAuthor | None = None
    reports: list[Report] | None = None
    parent: "Comment | None" = None

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from Cassandra row."""
        author = None
        if row.author_id is not None:
            author = CommentAuthor(
                id=row.author_id,
                name=row.author_name,
                email=row.author_email,
                avatar=row.author_avatar,
            )
        return cls(
            id=row.comment_id,
            content=row.content,
            author_id=row.author_id,
            related=[RelatedRef.from_value(dict(ref)) for ref in row.related or []],
            related_slug=row.related_slug,
            thread_of=row.thread_of,
            blocked=row.blocked or False,
            blocked_thread=row.blocked_thread or False,
            points=row.points,
            created_at=row.created_at,
            updated_at=row.updated_at or row.created_at,
            author=author,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, embedding populated relations."""
        data: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "author_user": self.author.to_dict() if self.author else self.author_id,
            "related": [ref.to_dict() for ref in self.related],
            "related_slug": self.related_slug,
            "thread_of": self.parent.to_dict() if self.parent else self.thread_of,
            "blocked": self.blocked,
            "blocked_thread": self.blocked_thread,
            "points": self.points,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.reports is not None:
            data["reports"] = [report.to_dict() for report in self.reports]
        return data


# ==============================================================================
# Factory Functions
# ==============================================================================

_REPORT_FIELDS = {"id", "related", "resolved", "reason", "content", "details"}


def create_comment(data: dict[str, Any]) -> Comment:
    """Create a new comment from validated input data."""
    now = datetime.now(UTC)
    author = (
        CommentAuthor.from_value(data["author_user"])
        if data.get("author_user") is not None
        else None
    )
    return Comment(
        id=uuid4(),
        content=data["content"],
        author_id=author.id if author else None,
        related=[RelatedRef.from_value(ref) for ref in data.get("related") or []],
        related_slug=data.get("related_slug"),
        thread_of=as_uuid(data.get("thread_of")),
        blocked=bool(data.get("blocked", False)),
        blocked_thread=bool(data.get("blocked_thread", False)),
        points=data.get("points"),
        created_at=now,
        updated_at=now,
        author=author,
    )


def create_report(data: dict[str, Any]) -> Report:
    """Create a new report; unknown payload fields are kept in ``details``."""
    now = datetime.now(UTC)
    details = {
        key: str(value)
        for key, value in data.items()
        if key not in _REPORT_FIELDS and value is not None
    }
    details.update(data.get("details") or {})
    return Report(
        id=uuid4(),
        related=as_uuid(data["related"]),
        resolved=bool(data.get("resolved", False)),
        reason=ReportReason(data.get("reason") or ReportReason.OTHER),
        content=data.get("content"),
        details=details,
        created_at=now,
        updated_at=now,
    )
