"""Comment and moderation errors.

Every business-rule failure carries the HTTP status it maps to; routers turn
them into responses with ``handle_comment_error``.
"""


class CommentError(Exception):
    """Base comment error."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "comment_error",
        status_code: int | None = None,
    ):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class CommentValidationError(CommentError):
    """Bad or missing content, or a malformed relation."""

    status_code = 400

    def __init__(self, message: str = "No content received"):
        super().__init__(message, "validation_error")


class ThreadNotFoundError(CommentError):
    """The parent comment referenced by ``thread_of`` does not exist."""

    status_code = 400

    def __init__(self, message: str = "Thread is not existing"):
        super().__init__(message, "thread_not_found")


class CommentConflictError(CommentError):
    """Stale or mismatched update, or an action on a missing entity."""

    status_code = 409

    def __init__(self, message: str = "Action on that entity is not allowed"):
        super().__init__(message, "action_not_allowed")


class CommentNotFoundError(CommentError):
    status_code = 404

    def __init__(self, message: str = "Comment not found"):
        super().__init__(message, "comment_not_found")


class ThreadIntegrityError(CommentError):
    """Parent pointers loop back on themselves."""

    status_code = 500

    def __init__(self, message: str = "Comment thread contains a cycle"):
        super().__init__(message, "thread_integrity")
