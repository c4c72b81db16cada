"""Exception hierarchy for the sync engine.

Routers translate these into HTTP responses; the push handler catches them
per operation and reports them in the op's result slot.
"""

from cloudsync.models.enums import SyncErrorCode


class SyncError(Exception):
    """Base class carrying a wire-level :class:`SyncErrorCode`."""

    code: SyncErrorCode = SyncErrorCode.SERVER_ERROR

    def __init__(self, message: str, code: SyncErrorCode | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class SyncValidationError(SyncError):
    """Malformed request or operation (HTTP 400)."""

    code = SyncErrorCode.VALIDATION_ERROR


class VersionAllocationError(SyncError):
    """The workspace counter could not be advanced after bounded retries."""

    code = SyncErrorCode.SERVER_ERROR


__all__ = ["SyncError", "SyncValidationError", "VersionAllocationError"]
