"""Pydantic schemas for the comment API.

Request/Response models for:
- Comment create / update / report
- Flat lists, nested trees and moderator thread context
- Moderation results (thread cascade outcome)

Content emptiness and bad words are checked by the service, so request
models only bound the content length.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ReportReason


# ==============================================================================
# Constants
# ==============================================================================
MAX_CONTENT_LENGTH = 10000
MAX_REPORT_CONTENT_LENGTH = 1000

# ==============================================================================
# Request Schemas
# ==============================================================================


class RelatedRequest(BaseModel):
    """Target content a comment is attached to."""

    content_type: str = Field(..., min_length=1, max_length=100)
    ref_id: str = Field(..., min_length=1, max_length=200)


class AuthorRequest(BaseModel):
    """Author details supplied by the caller."""

    id: UUID
    name: str | None = Field(None, max_length=200)
    email: str | None = Field(None, max_length=320)
    avatar: str | None = Field(None, max_length=2000)


class CreateCommentRequest(BaseModel):
    """Request to create a comment.

    ``related`` may be omitted, in which case the comment is attached to
    the relation in the URL.
    """

    content: str | None = Field(None, max_length=MAX_CONTENT_LENGTH)
    related: list[RelatedRequest] | None = None
    thread_of: UUID | None = None
    author_user: AuthorRequest | UUID | None = None


class UpdateCommentRequest(BaseModel):
    """Request to change a comment's content.

    Any other supplied field must match the stored comment or the update is
    rejected as stale.
    """

    content: str | None = Field(None, max_length=MAX_CONTENT_LENGTH)
    author_user: UUID | None = None
    thread_of: UUID | None = None
    related_slug: str | None = None
    blocked: bool | None = None
    blocked_thread: bool | None = None


class CreateReportRequest(BaseModel):
    """Request to report a comment."""

    reason: ReportReason
    content: str | None = Field(None, max_length=MAX_REPORT_CONTENT_LENGTH)
    details: dict[str, str] | None = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class AuthorResponse(BaseModel):
    """Public author info."""

    id: UUID
    name: str | None = None
    avatar: str | None = None


class RelatedResponse(BaseModel):
    content_type: str
    ref_id: str


class ReportResponse(BaseModel):
    """Abuse report."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    related: UUID
    resolved: bool
    reason: ReportReason
    content: str | None = None
    details: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class CommentResponse(BaseModel):
    """Comment as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content: str
    author_user: AuthorResponse | UUID | None = None
    related: list[RelatedResponse] = Field(default_factory=list)
    related_slug: str | None = None
    thread_of: "CommentResponse | UUID | None" = None
    blocked: bool = False
    blocked_thread: bool = False
    points: int = 0
    created_at: datetime
    updated_at: datetime
    reports: list[ReportResponse] | None = None

    @field_validator("points", mode="before")
    @classmethod
    def default_points(cls, v: Any) -> int:
        """Comments never upvoted have no points stored."""
        return v or 0


class CommentTreeResponse(CommentResponse):
    """Comment with its nested replies."""

    children: list["CommentTreeResponse"] = Field(default_factory=list)


class CommentListResponse(BaseModel):
    """Comment listing; ``page`` is set only when paginated."""

    items: list[CommentResponse]
    total: int
    page: int | None = None


class ThreadContextResponse(BaseModel):
    """A comment with its parent and the comments on the same level."""

    selected: CommentResponse
    level: list[CommentTreeResponse]


class CascadeFailureResponse(BaseModel):
    comment_id: UUID
    stage: str
    error: str


class CascadeResponse(BaseModel):
    """Outcome of propagating a thread block to the replies."""

    success: bool
    updated: list[UUID] = Field(default_factory=list)
    failures: list[CascadeFailureResponse] = Field(default_factory=list)


class BlockThreadResponse(BaseModel):
    comment: CommentResponse
    cascade: CascadeResponse
