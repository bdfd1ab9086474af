"""
Exception hierarchy for Convex Sync.

Every failure that can end a sync invocation derives from SyncError so the
CLI can report it uniformly:
- InvalidState: a stored checkpoint failed strict decoding
- SourceError / SourceUnavailable: the source deployment failed
- ProtocolViolation / MissingCursor: the source broke its pagination contract
- SerializationFailure: a checkpoint could not be encoded
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync failures."""


class InvalidState(SyncError):
    """Raised when checkpoint bytes fail strict decoding."""


class SourceError(SyncError):
    """Raised when the source deployment returns an error or a malformed response."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status


class SourceUnavailable(SourceError):
    """Raised when the source deployment cannot be reached."""


class ProtocolViolation(SyncError):
    """Raised when the source violates its paging contract."""


class MissingCursor(ProtocolViolation):
    """Raised when a page reports more results but no continuation cursor."""

    def __init__(self, endpoint: str) -> None:
        super().__init__(
            f"{endpoint} reported more pages but returned no continuation cursor"
        )
        self.endpoint = endpoint


class SerializationFailure(SyncError):
    """Raised when a checkpoint state cannot be encoded."""
