"""Exception hierarchy for the follower."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from follow.api_objects.types import FollowRunSummary
    from follow.models import FollowCursor


class FollowError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(FollowError):
    """Invalid or conflicting configuration, detected before polling starts."""


class ResourceError(FollowError):
    """A probe or fetch failed for a reason other than plain absence."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ResourceUnreachableError(ResourceError):
    """The server refused the connection; nothing is known about the resource."""


class FollowTimeoutError(FollowError):
    def __init__(
        self,
        *,
        timeout_seconds: int,
        elapsed_seconds: float,
        timed_out_at: datetime,
        cursor: FollowCursor,
        summary: FollowRunSummary | None = None,
    ) -> None:
        super().__init__(
            f"follow timed out at {timed_out_at.isoformat(timespec='seconds')} "
            f"after {timeout_seconds} seconds (elapsed={elapsed_seconds:.1f}s, "
            f"length={cursor.previous_length}, mod_time={cursor.previous_mod_time})"
        )
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        self.timed_out_at = timed_out_at
        self.cursor = cursor
        self.summary = summary


class FollowCancelledError(FollowError):
    def __init__(
        self,
        *,
        elapsed_seconds: float,
        cursor: FollowCursor,
        summary: FollowRunSummary | None = None,
    ) -> None:
        super().__init__(
            f"follow cancelled after {elapsed_seconds:.1f}s "
            f"(length={cursor.previous_length}, mod_time={cursor.previous_mod_time})"
        )
        self.elapsed_seconds = elapsed_seconds
        self.cursor = cursor
        self.summary = summary
