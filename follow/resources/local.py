from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from follow.constants import DEFAULT_CHUNK_SIZE, UNKNOWN_LENGTH
from follow.errors import ResourceError
from follow.resources.base import (
    Delta,
    ResourceMetadata,
    Unchanged,
    iter_stream,
    plan_fetch,
)
from follow.utils.logging import debug_event, get_logger

logger = get_logger("follow.resources.local")


@dataclass(slots=True)
class LocalFileResource:
    path: Path
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @property
    def url(self) -> str:
        return self.path.resolve().as_uri()

    def limit_requests(self, time_left: Callable[[], float] | None) -> None:
        return None

    def probe(self) -> ResourceMetadata | None:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise ResourceError(f"Cannot stat {self.path}: {exc}") from exc
        mtime_ns = int(getattr(stat, "st_mtime_ns", int(stat.st_mtime * 1e9)))
        return ResourceMetadata(length=int(stat.st_size), mod_time=mtime_ns // 1_000_000)

    def fetch_delta(
        self, previous_length: int, previous_mod_time: int
    ) -> Delta | Unchanged | None:
        metadata = self.probe()
        if metadata is None:
            return None

        plan = plan_fetch(metadata, previous_length, previous_mod_time)
        if plan is None:
            return Unchanged(metadata)
        if plan.start == UNKNOWN_LENGTH:
            # Nothing to compare against yet; start following from the current end.
            return Delta(start=metadata.length, metadata=metadata, chunks=iter(()), baseline=True)

        start = plan.start
        try:
            fh = self.path.open("rb")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise ResourceError(f"Cannot open {self.path}: {exc}") from exc

        try:
            fh.seek(start, os.SEEK_SET)
        except OSError as exc:
            fh.close()
            raise ResourceError(f"Cannot seek {self.path} to {start}: {exc}") from exc

        debug_event(
            logger,
            "local_fetch",
            path=str(self.path),
            start=start,
            length=metadata.length,
            rotated=plan.rotated,
        )
        return Delta(
            start=start,
            metadata=metadata,
            chunks=self._read_chunks(fh),
            rotated=plan.rotated,
            closer=fh.close,
        )

    def _read_chunks(self, fh: BinaryIO) -> Iterator[bytes]:
        try:
            yield from iter_stream(fh.read, self.chunk_size)
        except OSError as exc:
            raise ResourceError(f"Read failed on {self.path}: {exc}") from exc
