from __future__ import annotations


class DailyCloseError(Exception):
    """Base class for every recoverable daily-close failure."""


class ValidationError(DailyCloseError, ValueError):
    """Input rejected before any store access."""


class NotFoundError(DailyCloseError, LookupError):
    pass


class PersistenceError(DailyCloseError):
    """Record store read/write failed. The caller may retry the save."""


class PartialBatchFailure(PersistenceError):
    """Stylist entry sync stopped midway.

    Re-running the save is safe: deletions are keyed by entry id and the
    pending-deletion queue is only cleared once the whole batch went through.
    """

    def __init__(self, message: str, *, deleted_ids: list[int] | None = None, failed_stage: str = '') -> None:
        super().__init__(message)
        self.deleted_ids = deleted_ids or []
        self.failed_stage = failed_stage


class ConcurrentUpdateError(PersistenceError):
    pass


class ClosedRecordError(DailyCloseError):
    pass
