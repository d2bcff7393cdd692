from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from follow.constants import (
    OUTCOME_ABSENT,
    OUTCOME_ERROR,
    OUTCOME_NO_CHANGE,
    UNKNOWN_LENGTH,
    UNKNOWN_MOD_TIME,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class FollowCursor:
    """Last observed length and modification time (epoch millis) of the resource."""

    previous_length: int = UNKNOWN_LENGTH
    previous_mod_time: int = UNKNOWN_MOD_TIME

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class PollOutcome:
    kind: str
    bytes_read: int = 0
    bytes_written: int = 0
    baseline: bool = False
    error: Exception | None = None

    @property
    def idle(self) -> bool:
        if self.kind in (OUTCOME_NO_CHANGE, OUTCOME_ABSENT):
            return True
        if self.kind == OUTCOME_ERROR:
            return self.bytes_read == 0
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "bytes_read": self.bytes_read,
            "bytes_written": self.bytes_written,
            "baseline": self.baseline,
            "error": str(self.error) if self.error is not None else None,
        }
