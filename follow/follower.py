from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
from collections.abc import Callable
from typing import BinaryIO

from follow.api_objects.types import FollowRunSummary
from follow.config import (
    FollowConfig,
    ReplaceRule,
    SinkConfig,
    dump_default_config,
    load_config,
    validate_config,
)
from follow.constants import (
    EXIT_CANCELLED,
    EXIT_CONFIG,
    EXIT_FAILED,
    EXIT_OK,
    PHASE_COMPLETED,
    PHASE_TIMED_OUT,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_MATCHED,
    STATUS_TIMED_OUT,
)
from follow.errors import (
    ConfigurationError,
    FollowCancelledError,
    FollowError,
    FollowTimeoutError,
)
from follow.filters import build_filter_chain
from follow.internal.events import EventBus, InternalEvent
from follow.models import FollowCursor, utc_now
from follow.pipeline import PipelineAdapter
from follow.resources.base import ResourceHandle
from follow.resources.registry import resolve_resource
from follow.sinks import Sink, build_sink
from follow.state import FollowStateMachine
from follow.utils.display.terminal import (
    print_internal_events,
    print_run_summary,
    print_run_summary_json,
)
from follow.utils.logging import debug_event, get_logger, resolve_log_level, setup_logging


class Follower:
    """Poll loop and timeout controller around one ``FollowStateMachine``.

    The deadline is fixed when ``run`` starts and is not pushed back by
    activity. Between cycles the loop waits on an event, so ``stop`` takes
    effect during the sleep; a fetch that is already running is allowed to
    finish first.
    """

    def __init__(
        self,
        config: FollowConfig,
        *,
        sink: Sink | None = None,
        resource: ResourceHandle | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        validate_config(config)
        self.config = config
        self.resource = resource or resolve_resource(config.resource, config.connection)
        self._owns_sink = sink is None
        self.sink = sink or build_sink(config.sink, stdout=stdout, stderr=stderr)
        self.adapter = PipelineAdapter(
            self.sink,
            build_filter_chain(config.filters),
            encoding=config.encoding,
        )
        self.event_bus = EventBus()
        self.state = FollowStateMachine(self.resource, self.adapter, event_bus=self.event_bus)
        self.clock = clock
        self._stop_requested = threading.Event()
        self.logger = get_logger("follow.follower")

    @property
    def cursor(self) -> FollowCursor:
        return self.state.cursor

    def stop(self, *_args: object) -> None:
        """Request a stop. Safe to call from a signal handler: it only sets a flag."""
        self._stop_requested.set()

    def run(self) -> FollowRunSummary:
        started = utc_now()
        started_clock = self.clock()
        timeout = self.config.timeout_seconds
        deadline = started_clock + timeout if timeout > 0 else None
        period = self.config.period_ms / 1000.0
        stop_on_output = self.config.filters.stop_on_output
        # Network waits inside a cycle must not outlive the deadline.
        self.resource.limit_requests(None if deadline is None else lambda: deadline - self.clock())

        self.event_bus.emit("follow.started", url=self.resource.url, timeout_seconds=timeout)
        self.logger.info(
            "Following %s (period=%sms, timeout=%s, sink=%s)",
            self.resource.url,
            self.config.period_ms,
            f"{timeout}s" if deadline is not None else "none",
            self.sink.name,
        )

        status = STATUS_COMPLETED
        try:
            while True:
                if self._stop_requested.is_set():
                    raise self._cancelled(started, started_clock)

                outcome = self.state.step()
                self.event_bus.emit("follow.cycle", cycle=self.state.cycles, **outcome.to_dict())

                if stop_on_output and outcome.bytes_written > 0:
                    status = STATUS_MATCHED
                    self.logger.info("Filter chain produced output; stopping")
                    break

                now = self.clock()
                if deadline is not None and now >= deadline:
                    if self.config.fail_on_timeout:
                        raise self._timed_out(started, started_clock, now)
                    self.logger.info("Timeout of %ss reached; stopping", timeout)
                    break

                wait = period if deadline is None else min(period, max(deadline - now, 0.0))
                debug_event(self.logger, "sleep", seconds=wait, idle=self.state.consecutive_idle)
                if self._stop_requested.wait(wait):
                    raise self._cancelled(started, started_clock)
        finally:
            self.resource.limit_requests(None)
            self._close_sink()

        self.state.phase = PHASE_COMPLETED
        summary = self._summary(status, started)
        self.event_bus.emit("follow.completed", summary=summary.to_dict())
        self.logger.info(
            "Follow finished: status=%s cycles=%s bytes_read=%s bytes_written=%s rotations=%s errors=%s",
            summary.status,
            summary.cycles,
            summary.bytes_read,
            summary.bytes_written,
            summary.rotations,
            summary.errors,
        )
        return summary

    def recent_events(self, limit: int = 100) -> list[InternalEvent]:
        return self.event_bus.recent(limit)

    def _timed_out(self, started, started_clock: float, now: float) -> FollowTimeoutError:
        self.state.phase = PHASE_TIMED_OUT
        summary = self._summary(STATUS_TIMED_OUT, started, error="timeout")
        error = FollowTimeoutError(
            timeout_seconds=self.config.timeout_seconds,
            elapsed_seconds=now - started_clock,
            timed_out_at=utc_now(),
            cursor=FollowCursor(self.cursor.previous_length, self.cursor.previous_mod_time),
            summary=summary,
        )
        summary.error_message = str(error)
        self.event_bus.emit("follow.timeout", error=str(error))
        return error

    def _cancelled(self, started, started_clock: float) -> FollowCancelledError:
        summary = self._summary(STATUS_CANCELLED, started)
        error = FollowCancelledError(
            elapsed_seconds=self.clock() - started_clock,
            cursor=FollowCursor(self.cursor.previous_length, self.cursor.previous_mod_time),
            summary=summary,
        )
        summary.error_message = str(error)
        self.event_bus.emit("follow.cancelled", error=str(error))
        return error

    def _summary(self, status: str, started, error: str | None = None) -> FollowRunSummary:
        return FollowRunSummary(
            url=self.resource.url,
            status=status,
            started_at=started,
            ended_at=utc_now(),
            timeout_seconds=self.config.timeout_seconds,
            period_ms=self.config.period_ms,
            cycles=self.state.cycles,
            idle_cycles=self.state.idle_cycles,
            rotations=self.state.rotations,
            errors=self.state.errors,
            bytes_read=self.state.bytes_read,
            bytes_written=self.state.bytes_written,
            cursor=FollowCursor(self.cursor.previous_length, self.cursor.previous_mod_time),
            error_message=error,
        )

    def _close_sink(self) -> None:
        if self._owns_sink:
            self.sink.close()
        else:
            self.sink.flush()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="openfollow",
        description="Print what gets appended to a file or HTTP resource",
    )
    parser.add_argument("resource", nargs="?", help="Path or URL to follow")
    parser.add_argument("--config", help="Path to YAML config")
    parser.add_argument("--init-config", action="store_true", help="Write default config and exit")
    parser.add_argument("--file", help="Local file to follow")
    parser.add_argument("--url", help="URL to follow")
    parser.add_argument("--period-ms", type=int, help="Milliseconds between polls (default 3000)")
    parser.add_argument("--timeout", type=int, help="Seconds until giving up, 0 = never (default 300)")
    parser.add_argument(
        "--fail-on-timeout",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Exit with an error when the timeout is reached (default on)",
    )
    parser.add_argument("--encoding", help="Charset used to decode/encode for the filter chain")
    parser.add_argument("--include", action="append", default=[], help="Keep only lines containing TEXT")
    parser.add_argument("--exclude", action="append", default=[], help="Drop lines containing TEXT")
    parser.add_argument(
        "--replace",
        nargs=2,
        action="append",
        default=[],
        metavar=("PATTERN", "REPLACEMENT"),
        help="Regex replace-all applied to the followed text",
    )
    parser.add_argument(
        "--stop-on-output",
        action="store_true",
        help="Finish as soon as the filter chain produces output",
    )
    parser.add_argument("--output-file", help="Write the followed data to this file")
    parser.add_argument("--append", action="store_true", help="Append to --output-file")
    parser.add_argument("--stdout", action="store_true", help="Write the followed data to STDOUT")
    parser.add_argument("--stderr", action="store_true", help="Write the followed data to STDERR")
    parser.add_argument("--header", action="append", default=[], metavar="NAME:VALUE", help="HTTP request header")
    parser.add_argument("--connect-timeout-ms", type=int, help="HTTP connect timeout")
    parser.add_argument("--read-timeout-ms", type=int, help="HTTP read timeout")
    parser.add_argument(
        "--follow-redirects",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Follow HTTP redirects (default on)",
    )
    parser.add_argument(
        "--follow-redirects-across-protocols",
        action="store_true",
        default=None,
        help="Also follow redirects that switch between http and https",
    )
    parser.add_argument("--max-redirects", type=int, help="Redirect hops before giving up")
    parser.add_argument("--log-level", help="Override log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--summary", action="store_true", help="Print a run summary on STDERR")
    parser.add_argument("--json-summary", action="store_true", help="Print the run summary as JSON on STDERR")
    parser.add_argument("--events-limit", type=int, default=0, help="Print recent internal events")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> FollowConfig:
    config = load_config(args.config)

    sources = [value for value in (args.resource, args.file, args.url) if value]
    if len(sources) > 1:
        raise ConfigurationError("Cannot set more than one source")
    if sources:
        config.resource = sources[0]

    if args.period_ms is not None:
        config.period_ms = args.period_ms
    if args.timeout is not None:
        config.timeout_seconds = args.timeout
    if args.fail_on_timeout is not None:
        config.fail_on_timeout = args.fail_on_timeout
    if args.encoding:
        config.encoding = args.encoding

    config.filters.include_contains.extend(args.include)
    config.filters.exclude_contains.extend(args.exclude)
    config.filters.replace_all.extend(ReplaceRule(pattern=p, replacement=r) for p, r in args.replace)
    if args.stop_on_output:
        config.filters.stop_on_output = True

    if args.output_file or args.stdout or args.stderr:
        config.sink = SinkConfig(
            output_file=args.output_file,
            append=args.append,
            stdout=args.stdout,
            stderr=args.stderr,
        )
    elif args.append:
        config.sink.append = True

    for raw in args.header:
        name, sep, value = raw.partition(":")
        if not sep:
            raise ConfigurationError(f"Header must look like NAME:VALUE, got {raw!r}")
        config.connection.headers[name.strip()] = value.strip()
    if args.connect_timeout_ms is not None:
        config.connection.connect_timeout_ms = args.connect_timeout_ms
    if args.read_timeout_ms is not None:
        config.connection.read_timeout_ms = args.read_timeout_ms
    if args.follow_redirects is not None:
        config.connection.follow_redirects = args.follow_redirects
    if args.follow_redirects_across_protocols:
        config.connection.follow_redirects_across_protocols = True
    if args.max_redirects is not None:
        config.connection.max_redirects = args.max_redirects
    return config


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if args.init_config:
        target = args.config or "follow.yaml"
        dump_default_config(target)
        print(f"Wrote default config to {target}", file=sys.stderr)
        return EXIT_OK

    setup_logging(resolve_log_level(args.log_level))
    logger = get_logger("follow.follower")
    try:
        config = build_config(args)
        setup_logging(resolve_log_level(args.log_level, config.logging.level))
        follower = Follower(config, stdout=sys.stdout.buffer, stderr=sys.stderr.buffer)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG

    previous_handlers = {
        signum: signal.signal(signum, follower.stop) for signum in (signal.SIGINT, signal.SIGTERM)
    }

    summary: FollowRunSummary | None = None
    code = EXIT_OK
    try:
        summary = follower.run()
    except FollowTimeoutError as exc:
        logger.error("%s", exc)
        summary = exc.summary
        code = EXIT_FAILED
    except FollowCancelledError as exc:
        logger.warning("%s", exc)
        summary = exc.summary
        code = EXIT_CANCELLED
    except FollowError as exc:
        logger.error("%s", exc)
        code = EXIT_FAILED
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    if summary is not None:
        if args.json_summary:
            print_run_summary_json(summary)
        elif args.summary:
            print_run_summary(summary)
    if args.events_limit > 0:
        print_internal_events(follower.recent_events(args.events_limit))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
