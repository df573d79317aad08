"""Errors raised by the page usage ledger."""

from typing import Optional


class UsageError(Exception):
    """Base class for usage ledger failures."""

    user_message = "Usage information is temporarily unavailable. Please try again."

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id


class SnapshotUnavailable(UsageError):
    """The subscription snapshot could not be fetched."""


class ReconciliationFailed(UsageError):
    """No authoritative period could be derived and no stored record can stand in."""


class UsageUnavailable(UsageError):
    """Nothing covers the current instant and no period could be derived."""


class UsageRecordNotFound(UsageError):
    """A conditional update matched no row; the period rolled over. Retry."""

    user_message = "Your billing period just changed. Please retry."


class PageLimitExceeded(UsageError):
    """The increment would take the record past its page limit."""

    user_message = "You have reached the page limit of your plan for this billing period."

    def __init__(
        self,
        user_id: str,
        requested: int,
        pages_processed: int,
        pages_limit: int,
    ):
        self.requested = requested
        self.pages_processed = pages_processed
        self.pages_limit = pages_limit
        super().__init__(
            f"Page limit exceeded for user {user_id}: "
            f"{pages_processed} + {requested} > {pages_limit}",
            user_id=user_id,
        )

    @property
    def remaining(self) -> int:
        return self.pages_limit - self.pages_processed
