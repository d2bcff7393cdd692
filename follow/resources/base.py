from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

from follow.constants import UNKNOWN_LENGTH, UNKNOWN_MOD_TIME


@dataclass(frozen=True, slots=True)
class ResourceMetadata:
    length: int = UNKNOWN_LENGTH
    mod_time: int = UNKNOWN_MOD_TIME

    @property
    def length_known(self) -> bool:
        return self.length != UNKNOWN_LENGTH

    @property
    def mod_time_known(self) -> bool:
        return self.mod_time != UNKNOWN_MOD_TIME


@dataclass(slots=True)
class Delta:
    """Newly appended bytes of one poll cycle.

    ``chunks`` is lazy; the consumer exhausts it and then calls ``close``. The
    next cursor length is ``start + bytes consumed``. When ``baseline`` is set the
    chunks only establish the starting length and are not emitted.
    """

    start: int
    metadata: ResourceMetadata
    chunks: Iterator[bytes]
    rotated: bool = False
    baseline: bool = False
    closer: Callable[[], None] | None = None

    def close(self) -> None:
        closer, self.closer = self.closer, None
        if closer is not None:
            closer()


@dataclass(frozen=True, slots=True)
class Unchanged:
    metadata: ResourceMetadata


@dataclass(frozen=True, slots=True)
class FetchPlan:
    start: int
    rotated: bool = False


class ResourceHandle(Protocol):
    url: str

    def probe(self) -> ResourceMetadata | None: ...

    def fetch_delta(
        self, previous_length: int, previous_mod_time: int
    ) -> Delta | Unchanged | None: ...

    def limit_requests(self, time_left: Callable[[], float] | None) -> None: ...


def is_unchanged(metadata: ResourceMetadata, previous_length: int, previous_mod_time: int) -> bool:
    """Every field known on either side matches, and at least one was compared."""
    compared = 0
    for new, old, unknown in (
        (metadata.length, previous_length, UNKNOWN_LENGTH),
        (metadata.mod_time, previous_mod_time, UNKNOWN_MOD_TIME),
    ):
        if new == unknown and old == unknown:
            continue
        if new != old:
            return False
        compared += 1
    return compared > 0


def plan_fetch(
    metadata: ResourceMetadata, previous_length: int, previous_mod_time: int
) -> FetchPlan | None:
    if is_unchanged(metadata, previous_length, previous_mod_time):
        return None
    if metadata.length_known and metadata.length < previous_length:
        # Truncated or replaced. Anything appended to the old resource after our
        # last read is gone.
        return FetchPlan(start=0, rotated=True)
    return FetchPlan(start=previous_length)


def iter_stream(read: Callable[[int], bytes], chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = read(chunk_size)
        if not chunk:
            return
        yield chunk
