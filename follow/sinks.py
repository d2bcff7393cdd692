"""Destinations for followed bytes."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol

from follow.config import SinkConfig
from follow.errors import ConfigurationError


class Sink(Protocol):
    name: str

    def write(self, data: bytes) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


@dataclass(slots=True)
class DiscardSink:
    name: str = "discard"

    def write(self, data: bytes) -> None:
        return None

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


@dataclass(slots=True)
class BufferSink:
    """Accumulates everything written; handy when embedding the follower."""

    name: str = "buffer"
    _buffer: io.BytesIO = field(default_factory=io.BytesIO)
    writes: int = 0

    def write(self, data: bytes) -> None:
        self._buffer.write(data)
        self.writes += 1

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


@dataclass(slots=True)
class StreamSink:
    """Writes to a caller-owned binary stream; closing leaves the stream open."""

    stream: BinaryIO
    name: str = "stream"

    def write(self, data: bytes) -> None:
        self.stream.write(data)
        self.stream.flush()

    def flush(self) -> None:
        self.stream.flush()

    def close(self) -> None:
        self.flush()


class FileSink:
    def __init__(self, path: str | Path, *, append: bool = False) -> None:
        self.path = Path(path)
        self.name = f"file:{self.path}"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._fh = self.path.open("ab" if append else "wb")
        except OSError as exc:
            raise ConfigurationError(f"Cannot open output file {self.path}: {exc}") from exc

    def write(self, data: bytes) -> None:
        self._fh.write(data)
        self._fh.flush()

    def flush(self) -> None:
        self._fh.flush()

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()


def build_sink(config: SinkConfig, *, stdout: BinaryIO | None = None, stderr: BinaryIO | None = None) -> Sink:
    """Build the single configured sink; no selection means discard."""
    selected = config.selected()
    if len(selected) > 1:
        raise ConfigurationError(
            f"Only one of 'output_file', 'stdout' and 'stderr' allowed (got {', '.join(selected)})"
        )
    if config.output_file:
        return FileSink(config.output_file, append=config.append)
    if config.stdout:
        if stdout is None:
            raise ConfigurationError("stdout sink selected but no stdout stream was provided")
        return StreamSink(stream=stdout, name="stdout")
    if config.stderr:
        if stderr is None:
            raise ConfigurationError("stderr sink selected but no stderr stream was provided")
        return StreamSink(stream=stderr, name="stderr")
    return DiscardSink()
