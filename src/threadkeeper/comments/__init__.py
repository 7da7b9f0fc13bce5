"""Comment system module.

Provides a threaded comment system with:
- Comments attached to any related content (``type:id``)
- Nested thread views built from parent pointers
- Upvotes and abuse reports
- Moderation with block propagation through whole threads

Note: Router is not exported here to avoid circular imports.
Import directly from threadkeeper.comments.router when needed.
"""

from .exceptions import (
    CommentConflictError,
    CommentError,
    CommentNotFoundError,
    CommentValidationError,
    ThreadIntegrityError,
    ThreadNotFoundError,
)
from .models import COMMENTS_TABLES_CQL, Comment, RelatedRef, Report, ReportReason
from .moderation import CascadeResult, CommentModerationService
from .service import CommentService
from .store import CommentStores, EntityStore, StoreError


__all__ = [
    "COMMENTS_TABLES_CQL",
    "CascadeResult",
    "Comment",
    "CommentConflictError",
    "CommentError",
    "CommentModerationService",
    "CommentNotFoundError",
    "CommentService",
    "CommentStores",
    "CommentValidationError",
    "EntityStore",
    "RelatedRef",
    "Report",
    "ReportReason",
    "StoreError",
    "ThreadIntegrityError",
    "ThreadNotFoundError",
]
