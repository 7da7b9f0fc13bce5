"""FastAPI dependencies for the comment API.

Provides dependency injection for:
- Comment service
- Moderation service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .exceptions import CommentError
from .moderation import CommentModerationService
from .service import CommentService


async def get_comment_service(request: Request) -> CommentService:
    """Get comment service from app state.

    Args:
        request: FastAPI request

    Returns:
        CommentService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "comment_service") or not app_state.comment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service not available",
        )
    return app_state.comment_service


async def get_moderation_service(request: Request) -> CommentModerationService:
    """Get moderation service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "moderation_service") or not app_state.moderation_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Moderation service not available",
        )
    return app_state.moderation_service


# Type aliases for dependency injection
CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]
ModerationServiceDep = Annotated[
    CommentModerationService, Depends(get_moderation_service)
]


def handle_comment_error(error: CommentError) -> HTTPException:
    """Convert comment errors to HTTP exceptions.

    Args:
        error: Comment error

    Returns:
        HTTPException with the status code the error carries
    """
    return HTTPException(
        status_code=error.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error.message,
    )
