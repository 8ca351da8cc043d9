"""
Error taxonomy for claimbot.

Every error carries a human-readable ``reason`` that command and HTTP layers
forward verbatim to the reporting channel.
"""

from __future__ import annotations


class ClaimBotError(Exception):
    """Base class for all claimbot errors."""

    code = "error"
    default_reason = "Operation failed"

    def __init__(self, reason: str | None = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class UnknownMark(ClaimBotError):
    code = "unknown_mark"
    default_reason = "No such mark"

    def __init__(self, mark: str, reason: str | None = None):
        self.mark = mark
        super().__init__(reason or f"No such mark: {mark}")


class CommentRequired(ClaimBotError):
    code = "comment_required"
    default_reason = "This mark requires a comment"


class NotUserSettable(ClaimBotError):
    code = "not_user_settable"
    default_reason = "This mark cannot be set manually"


class NotUserClearable(ClaimBotError):
    code = "not_user_clearable"
    default_reason = "This mark cannot be cleared manually"


class NotFound(ClaimBotError):
    code = "not_found"
    default_reason = "Package not found in the mark table"


class MergeConflict(ClaimBotError):
    code = "merge_conflict"
    default_reason = "Package is not in the claim records"


class StoreReadFailed(ClaimBotError):
    code = "store_read_failed"
    default_reason = "Failed to read the database"


class StoreWriteFailed(ClaimBotError):
    code = "store_write_failed"
    default_reason = "Failed to write the database"


class DeliveryFailed(ClaimBotError):
    code = "delivery_failed"
    default_reason = "Message delivery failed"

    def __init__(self, reason: str | None = None, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(reason)


class RateLimited(ClaimBotError):
    """Raised by a delivery collaborator when the platform asks us to back off."""

    code = "rate_limited"
    default_reason = "429 Too Many Requests"

    def __init__(self, retry_after: float | None = None, reason: str | None = None):
        self.retry_after = retry_after
        if reason is None and retry_after is not None:
            reason = f"429 Too Many Requests: retry after {retry_after:g}"
        super().__init__(reason)


__all__ = [
    "ClaimBotError",
    "UnknownMark",
    "CommentRequired",
    "NotUserSettable",
    "NotUserClearable",
    "NotFound",
    "MergeConflict",
    "StoreReadFailed",
    "StoreWriteFailed",
    "DeliveryFailed",
    "RateLimited",
]
