"""Moves fetched bytes to the sink, through the text filter chain if there is one."""

from __future__ import annotations

import codecs
import locale
from collections.abc import Iterable
from dataclasses import dataclass

from follow.errors import ConfigurationError
from follow.filters import TextFilterChain
from follow.sinks import Sink
from follow.utils.logging import debug_event, get_logger

logger = get_logger("follow.pipeline")


@dataclass(slots=True)
class PipelineResult:
    bytes_in: int = 0
    bytes_out: int = 0


class PipelineAdapter:
    """Copies deltas to ``sink``.

    Without a filter chain the bytes are copied verbatim and no charset is
    involved, so binary resources pass through untouched. With a chain, each
    cycle's delta is decoded, run through the whole chain on its own, encoded
    again and written. The decoder persists across cycles so a multi-byte
    character split between two deltas is still decoded correctly.
    """

    def __init__(
        self,
        sink: Sink,
        chain: TextFilterChain | None = None,
        encoding: str | None = None,
    ) -> None:
        self.sink = sink
        self.chain = chain if chain is not None else TextFilterChain()
        self.encoding = encoding or locale.getpreferredencoding(False)
        try:
            codecs.lookup(self.encoding)
        except LookupError as exc:
            raise ConfigurationError(f"Unknown encoding: {self.encoding}") from exc
        self._decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        self.bytes_written = 0

    @property
    def filtering(self) -> bool:
        return bool(self.chain)

    def reset(self) -> None:
        """Forget partial characters carried over from the previous resource."""
        self._decoder.reset()

    def process(self, chunks: Iterable[bytes]) -> PipelineResult:
        if not self.filtering:
            return self._copy(chunks)
        return self._filter(chunks)

    def _copy(self, chunks: Iterable[bytes]) -> PipelineResult:
        result = PipelineResult()
        for chunk in chunks:
            self.sink.write(chunk)
            result.bytes_in += len(chunk)
            result.bytes_out += len(chunk)
            self.bytes_written += len(chunk)
        return result

    def _filter(self, chunks: Iterable[bytes]) -> PipelineResult:
        result = PipelineResult()
        pieces: list[str] = []
        try:
            for chunk in chunks:
                result.bytes_in += len(chunk)
                pieces.append(self._decoder.decode(chunk))
        finally:
            # Whatever was read before a failure still goes through the chain;
            # the cursor advances past it either way.
            text = "".join(pieces)
            if text:
                result.bytes_out = self._emit(text, result.bytes_in)
        return result

    def _emit(self, text: str, bytes_in: int) -> int:
        filtered = self.chain.apply(text)
        if not filtered:
            debug_event(logger, "filtered_empty", bytes_in=bytes_in, chars=len(text))
            return 0
        encoded = filtered.encode(self.encoding, errors="replace")
        self.sink.write(encoded)
        self.bytes_written += len(encoded)
        debug_event(logger, "filtered", bytes_in=bytes_in, bytes_out=len(encoded))
        return len(encoded)
