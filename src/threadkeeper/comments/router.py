"""Comment API endpoints.

Provides routes for:
- Public comment views per related target (nested tree, flat list, single)
- Comment lifecycle (create, edit content, upvote, report abuse)
- Moderation (listing, thread context, blocking, resolving reports)

``relation`` path segments are ``type:id`` slugs, e.g. ``article:42``.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from .dependencies import CommentServiceDep, ModerationServiceDep, handle_comment_error
from .exceptions import CommentError, CommentNotFoundError
from .schemas import (
    BlockThreadResponse,
    CommentListResponse,
    CommentResponse,
    CommentTreeResponse,
    CreateCommentRequest,
    CreateReportRequest,
    ReportResponse,
    ThreadContextResponse,
    UpdateCommentRequest,
)
from .service import SORT_PATTERN


router = APIRouter(prefix="/v1/comments", tags=["comments"])
moderation_router = APIRouter(prefix="/v1/moderation/comments", tags=["moderation"])


# ==============================================================================
# Public endpoints
# ==============================================================================


@router.get(
    "/{relation}",
    response_model=list[CommentTreeResponse],
    summary="Get comment tree",
)
async def get_comment_tree(
    relation: str,
    comment_service: CommentServiceDep,
) -> list[CommentTreeResponse]:
    """Get the comments of a target nested under their parents.

    Replies under a blocked thread are not returned.
    """
    try:
        tree = await comment_service.find_all_in_hierarchy(
            relation, drop_blocked_threads=True
        )
    except CommentError as e:
        raise handle_comment_error(e) from e
    return [CommentTreeResponse.model_validate(node) for node in tree]


@router.get(
    "/{relation}/flat",
    response_model=list[CommentResponse],
    summary="Get flat comment list",
)
async def get_comments_flat(
    relation: str,
    comment_service: CommentServiceDep,
) -> list[CommentResponse]:
    """Get every comment of a target without nesting."""
    comments = await comment_service.find_all_flat(relation)
    return [CommentResponse.model_validate(comment) for comment in comments]


@router.get(
    "/{relation}/{comment_id}",
    response_model=CommentResponse,
    summary="Get comment",
)
async def get_comment(
    relation: str,
    comment_id: UUID,
    comment_service: CommentServiceDep,
) -> CommentResponse:
    """Get a single comment of a target."""
    try:
        comment = await comment_service.find_one(comment_id, relation)
        if comment is None:
            raise CommentNotFoundError
    except CommentError as e:
        raise handle_comment_error(e) from e
    return CommentResponse.model_validate(comment)


@router.post(
    "/{relation}",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create comment",
)
async def create_comment(
    relation: str,
    data: CreateCommentRequest,
    comment_service: CommentServiceDep,
) -> CommentResponse:
    """Create a comment on a target, optionally as a reply.

    Rejected when the parent thread does not exist, the content is empty or
    contains bad language.
    """
    try:
        comment = await comment_service.create(
            data.model_dump(exclude_none=True), relation
        )
    except CommentError as e:
        raise handle_comment_error(e) from e
    return CommentResponse.model_validate(comment)


@router.put(
    "/{relation}/{comment_id}",
    response_model=CommentResponse,
    summary="Update comment",
)
async def update_comment(
    relation: str,
    comment_id: UUID,
    data: UpdateCommentRequest,
    comment_service: CommentServiceDep,
) -> CommentResponse:
    """Change the content of a comment.

    Other supplied fields must match the stored comment.
    """
    try:
        comment = await comment_service.update(
            comment_id, relation, data.model_dump(exclude_unset=True)
        )
    except CommentError as e:
        raise handle_comment_error(e) from e
    return CommentResponse.model_validate(comment)


@router.patch(
    "/{relation}/{comment_id}/like",
    response_model=CommentResponse,
    summary="Upvote comment",
)
async def like_comment(
    relation: str,
    comment_id: UUID,
    comment_service: CommentServiceDep,
) -> CommentResponse:
    """Add one point to a comment."""
    try:
        comment = await comment_service.points_up(comment_id, relation)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return CommentResponse.model_validate(comment)


@router.post(
    "/{relation}/{comment_id}/report-abuse",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report comment",
)
async def report_comment(
    relation: str,
    comment_id: UUID,
    data: CreateReportRequest,
    comment_service: CommentServiceDep,
) -> ReportResponse:
    """File an abuse report against a comment."""
    try:
        report = await comment_service.report_abuse(
            comment_id, relation, data.model_dump(exclude_none=True)
        )
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ReportResponse.model_validate(report)


# ==============================================================================
# Moderation endpoints
# ==============================================================================


@moderation_router.get(
    "",
    response_model=CommentListResponse,
    summary="List all comments",
)
async def list_comments(
    comment_service: CommentServiceDep,
    start: int | None = Query(default=None, ge=0),
    limit: int | None = Query(default=None, ge=1, le=500),
    sort: str | None = Query(default=None, pattern=SORT_PATTERN),
    q: str | None = Query(default=None, max_length=200),
) -> CommentListResponse:
    """List comments across every target.

    Paginated when ``start`` is given; ``q`` searches content and author name.
    """
    try:
        result = await comment_service.find_all(
            start=start, limit=limit, sort=sort, q=q
        )
    except CommentError as e:
        raise handle_comment_error(e) from e
    return CommentListResponse.model_validate(result)


@moderation_router.get(
    "/{comment_id}",
    response_model=ThreadContextResponse,
    summary="Get comment with thread context",
)
async def get_comment_thread(
    comment_id: UUID,
    moderation_service: ModerationServiceDep,
) -> ThreadContextResponse:
    """Get a comment, its parent and the comments on its level."""
    try:
        context = await moderation_service.find_one_and_thread(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ThreadContextResponse.model_validate(context)


@moderation_router.patch(
    "/{comment_id}/block",
    response_model=CommentResponse,
    summary="Block or unblock comment",
)
async def block_comment(
    comment_id: UUID,
    moderation_service: ModerationServiceDep,
) -> CommentResponse:
    """Toggle the blocked flag of a single comment."""
    try:
        comment = await moderation_service.block_comment(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return CommentResponse.model_validate(comment)


@moderation_router.patch(
    "/{comment_id}/block-thread",
    response_model=BlockThreadResponse,
    summary="Block or unblock comment thread",
)
async def block_comment_thread(
    comment_id: UUID,
    moderation_service: ModerationServiceDep,
) -> BlockThreadResponse:
    """Toggle the thread block of a comment and apply it to every reply.

    ``cascade.success`` is false when some replies could not be updated.
    """
    try:
        result = await moderation_service.block_comment_thread(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return BlockThreadResponse.model_validate(result.to_dict())


@moderation_router.patch(
    "/{comment_id}/reports/{report_id}/resolve",
    response_model=ReportResponse,
    summary="Resolve abuse report",
)
async def resolve_report(
    comment_id: UUID,
    report_id: UUID,
    moderation_service: ModerationServiceDep,
) -> ReportResponse:
    """Mark an abuse report of a comment as resolved."""
    try:
        report = await moderation_service.resolve_abuse_report(report_id, comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ReportResponse.model_validate(report)
