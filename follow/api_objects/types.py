"""Type-safe objects describing a follow run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from follow.models import FollowCursor


@dataclass(slots=True)
class FollowRunSummary:
    url: str
    status: str
    started_at: datetime
    ended_at: datetime
    timeout_seconds: int
    period_ms: int
    cycles: int = 0
    idle_cycles: int = 0
    rotations: int = 0
    errors: int = 0
    bytes_read: int = 0
    bytes_written: int = 0
    cursor: FollowCursor = field(default_factory=FollowCursor)
    error_message: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.ended_at - self.started_at).total_seconds())

    @property
    def data_cycles(self) -> int:
        return self.cycles - self.idle_cycles

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "timeout_seconds": self.timeout_seconds,
            "period_ms": self.period_ms,
            "totals": {
                "cycles": self.cycles,
                "idle_cycles": self.idle_cycles,
                "data_cycles": self.data_cycles,
                "rotations": self.rotations,
                "errors": self.errors,
                "bytes_read": self.bytes_read,
                "bytes_written": self.bytes_written,
            },
            "cursor": self.cursor.to_dict(),
            "error_message": self.error_message,
        }
