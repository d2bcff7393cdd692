from __future__ import annotations

from collections.abc import Iterator

from follow.constants import (
    OUTCOME_ABSENT,
    OUTCOME_ERROR,
    OUTCOME_NEW_DATA,
    OUTCOME_NO_CHANGE,
    OUTCOME_ROTATED,
    PHASE_FETCHING,
    PHASE_INITIALIZING,
    PHASE_POLLING,
    UNKNOWN_MOD_TIME,
)
from follow.errors import ResourceError, ResourceUnreachableError
from follow.internal.events import EventBus
from follow.models import FollowCursor, PollOutcome
from follow.pipeline import PipelineAdapter
from follow.resources.base import Delta, ResourceHandle, Unchanged
from follow.utils.logging import debug_event, get_logger


class FollowStateMachine:
    """Owns the cursor of one resource and turns fetch results into outcomes.

    Each ``step`` fetches at most one delta, pushes it through the pipeline and
    advances the cursor. It never sleeps and never decides to stop; that is the
    poll loop's job.
    """

    def __init__(
        self,
        resource: ResourceHandle,
        adapter: PipelineAdapter,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self.resource = resource
        self.adapter = adapter
        self.event_bus = event_bus or EventBus()
        self.cursor = FollowCursor()
        self.phase = PHASE_INITIALIZING
        self.logger = get_logger("follow.state")

        self.cycles = 0
        self.idle_cycles = 0
        self.consecutive_idle = 0
        self.rotations = 0
        self.errors = 0
        self.bytes_read = 0
        self.bytes_written = 0
        self._absent = False
        self._failing = False

    def initialize(self) -> None:
        # A missing resource is the normal starting state of a log file that
        # has not been created yet, or of a server that is not up yet: treat it
        # as empty. Later on a refused connection is only a transient error.
        try:
            metadata = self.resource.probe()
        except ResourceUnreachableError as exc:
            self.cursor.previous_length = 0
            self._absent = True
            self.logger.info("%s is not reachable yet (%s)", self.resource.url, exc)
        except ResourceError as exc:
            self.logger.warning("Initial probe of %s failed: %s", self.resource.url, exc)
            self._failing = True
        else:
            if metadata is None:
                self.cursor.previous_length = 0
                self._absent = True
                self.logger.info("%s does not exist yet; waiting for it to appear", self.resource.url)
            else:
                self.cursor.previous_length = metadata.length
                self.cursor.previous_mod_time = metadata.mod_time

        self.phase = PHASE_POLLING
        self.event_bus.emit("follow.initialized", url=self.resource.url, **self.cursor.to_dict())
        debug_event(self.logger, "cursor_initialized", url=self.resource.url, **self.cursor.to_dict())

    def step(self) -> PollOutcome:
        if self.phase == PHASE_INITIALIZING:
            self.initialize()

        self.cycles += 1
        self.phase = PHASE_FETCHING
        try:
            result = self.resource.fetch_delta(self.cursor.previous_length, self.cursor.previous_mod_time)
        except ResourceError as exc:
            return self._record(self._on_error(exc, bytes_read=0, bytes_written=0))

        if result is None:
            return self._record(self._on_absent())
        if isinstance(result, Unchanged):
            return self._record(PollOutcome(kind=OUTCOME_NO_CHANGE))
        return self._record(self._consume(result))

    def _consume(self, delta: Delta) -> PollOutcome:
        if self._absent:
            self.logger.info("%s appeared", self.resource.url)
            self._absent = False
        if delta.rotated:
            self.rotations += 1
            self.adapter.reset()
            self.logger.warning(
                "%s shrank from %s to %s bytes; assuming rotation and restarting at 0",
                self.resource.url,
                self.cursor.previous_length,
                delta.metadata.length,
            )
            self.event_bus.emit(
                "follow.rotated",
                url=self.resource.url,
                previous_length=self.cursor.previous_length,
                new_length=delta.metadata.length,
            )

        consumed = 0

        def _counted() -> Iterator[bytes]:
            nonlocal consumed
            for chunk in delta.chunks:
                consumed += len(chunk)
                yield chunk

        written_before = self.adapter.bytes_written
        failure: ResourceError | None = None
        try:
            if delta.baseline:
                for _chunk in _counted():
                    pass
            else:
                self.adapter.process(_counted())
        except ResourceError as exc:
            failure = exc
        finally:
            delta.close()
            # Consumed bytes already reached the pipeline; never read them again.
            self.cursor.previous_length = delta.start + consumed
            if failure is None:
                self.cursor.previous_mod_time = delta.metadata.mod_time

        written = self.adapter.bytes_written - written_before
        if failure is not None:
            return self._on_error(failure, bytes_read=consumed, bytes_written=written)

        self._failing = False
        if delta.baseline:
            debug_event(self.logger, "baseline", url=self.resource.url, length=self.cursor.previous_length)
            return PollOutcome(kind=OUTCOME_NO_CHANGE, bytes_read=consumed, baseline=True)

        kind = OUTCOME_ROTATED if delta.rotated else OUTCOME_NEW_DATA if consumed else OUTCOME_NO_CHANGE
        debug_event(
            self.logger,
            "delta",
            url=self.resource.url,
            kind=kind,
            start=delta.start,
            bytes_read=consumed,
            bytes_written=written,
            length=self.cursor.previous_length,
        )
        return PollOutcome(kind=kind, bytes_read=consumed, bytes_written=written)

    def _on_absent(self) -> PollOutcome:
        if not self._absent:
            self.logger.info("%s is absent; treating it as empty until it reappears", self.resource.url)
            self.event_bus.emit("follow.absent", url=self.resource.url, **self.cursor.to_dict())
            self._absent = True
        # Whatever shows up under this name next is a new resource.
        self.cursor.previous_length = 0
        self.cursor.previous_mod_time = UNKNOWN_MOD_TIME
        return PollOutcome(kind=OUTCOME_ABSENT)

    def _on_error(self, exc: ResourceError, *, bytes_read: int, bytes_written: int) -> PollOutcome:
        self.errors += 1
        if self._failing:
            self.logger.debug("Still failing on %s: %s", self.resource.url, exc)
        else:
            self.logger.warning("Transient failure on %s: %s", self.resource.url, exc)
            self._failing = True
        self.event_bus.emit("follow.error", url=self.resource.url, error=str(exc), status=exc.status)
        return PollOutcome(kind=OUTCOME_ERROR, bytes_read=bytes_read, bytes_written=bytes_written, error=exc)

    def _record(self, outcome: PollOutcome) -> PollOutcome:
        self.phase = PHASE_POLLING
        if not outcome.baseline:
            self.bytes_read += outcome.bytes_read
        self.bytes_written += outcome.bytes_written
        if outcome.idle:
            self.idle_cycles += 1
            self.consecutive_idle += 1
        else:
            self.consecutive_idle = 0
        return outcome
