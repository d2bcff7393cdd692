"""HTTP(S) resources: HEAD for metadata, Range requests for the delta.

Servers that ignore ``Range`` are handled by reading the full body and
discarding the bytes that were already emitted.
"""

from __future__ import annotations

import http.client
import re
import ssl
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any

from follow.config import ConnectionConfig
from follow.constants import (
    APP_NAME,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_HTTP_TIMEOUT_MS,
    UNKNOWN_LENGTH,
    UNKNOWN_MOD_TIME,
)
from follow.errors import ResourceError, ResourceUnreachableError
from follow.resources.base import (
    Delta,
    ResourceMetadata,
    Unchanged,
    iter_stream,
    plan_fetch,
)
from follow.utils.logging import debug_event, get_logger

logger = get_logger("follow.resources.http")

ABSENT_STATUSES = frozenset({404, 410})
RANGE_NOT_SATISFIABLE = 416
_CONTENT_RANGE_RE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$", re.IGNORECASE)


class _RedirectHandler(urllib.request.HTTPRedirectHandler):
    def __init__(self, *, follow: bool, across_protocols: bool, max_redirects: int) -> None:
        super().__init__()
        self.follow = follow
        self.across_protocols = across_protocols
        self.max_redirections = max_redirects
        self.max_repeats = min(self.max_repeats, max(max_redirects, 1))

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        if not self.follow:
            return None
        old_scheme = urllib.parse.urlsplit(req.full_url).scheme.lower()
        new_scheme = urllib.parse.urlsplit(newurl).scheme.lower()
        if old_scheme != new_scheme and not self.across_protocols:
            return None
        return super().redirect_request(req, fp, code, msg, headers, newurl)


def _timeout_seconds(*candidates_ms: int) -> float | None:
    """First configured value wins; 0 means no limit, -1 falls through to the default."""
    for value in candidates_ms:
        if value > 0:
            return value / 1000.0
        if value == 0:
            return None
    return DEFAULT_HTTP_TIMEOUT_MS / 1000.0


def parse_content_length(headers: Mapping[str, str]) -> int:
    raw = headers.get("Content-Length")
    if raw is None:
        return UNKNOWN_LENGTH
    try:
        value = int(str(raw).strip())
    except ValueError:
        return UNKNOWN_LENGTH
    return value if value >= 0 else UNKNOWN_LENGTH


def parse_last_modified(headers: Mapping[str, str]) -> int:
    raw = headers.get("Last-Modified")
    if not raw:
        return UNKNOWN_MOD_TIME
    try:
        parsed = parsedate_to_datetime(str(raw))
    except (TypeError, ValueError, IndexError):
        return UNKNOWN_MOD_TIME
    return int(parsed.timestamp() * 1000)


def parse_content_range_start(value: str | None) -> int | None:
    if not value:
        return None
    match = _CONTENT_RANGE_RE.match(value)
    if match is None:
        return None
    return int(match.group(1))


@dataclass(slots=True)
class HttpResource:
    url: str
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    user_agent: str = f"{APP_NAME}/0"
    _opener: Any = field(default=None, init=False, repr=False)
    _time_left: Callable[[], float] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._opener = urllib.request.build_opener(
            urllib.request.HTTPSHandler(context=ssl.create_default_context()),
            _RedirectHandler(
                follow=self.connection.follow_redirects,
                across_protocols=self.connection.follow_redirects_across_protocols,
                max_redirects=self.connection.max_redirects,
            ),
        )

    def limit_requests(self, time_left: Callable[[], float] | None) -> None:
        """Cap every request timeout at ``time_left()`` seconds."""
        self._time_left = time_left

    def _request_timeout(self, *candidates_ms: int) -> float | None:
        timeout = _timeout_seconds(*candidates_ms)
        if self._time_left is None:
            return timeout
        remaining = self._time_left()
        if remaining <= 0:
            raise ResourceError(f"No time left for a request to {self.url}")
        return remaining if timeout is None else min(timeout, remaining)

    def probe(self) -> ResourceMetadata | None:
        timeout = self._request_timeout(self.connection.connect_timeout_ms, self.connection.read_timeout_ms)
        try:
            with self._open("HEAD", timeout=timeout) as resp:
                metadata = ResourceMetadata(
                    length=parse_content_length(resp.headers),
                    mod_time=parse_last_modified(resp.headers),
                )
        except urllib.error.HTTPError as exc:
            exc.close()
            if exc.code in ABSENT_STATUSES:
                return None
            raise ResourceError(f"HEAD {self.url} returned {exc.code} {exc.reason}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, ConnectionRefusedError):
                raise ResourceUnreachableError(f"HEAD {self.url} refused: {exc.reason}") from exc
            raise ResourceError(f"HEAD {self.url} failed: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise ResourceError(f"HEAD {self.url} failed: {exc}") from exc

        debug_event(logger, "http_probe", url=self.url, length=metadata.length, mod_time=metadata.mod_time)
        return metadata

    def fetch_delta(
        self, previous_length: int, previous_mod_time: int
    ) -> Delta | Unchanged | None:
        metadata = self.probe()
        if metadata is None:
            return None

        plan = plan_fetch(metadata, previous_length, previous_mod_time)
        if plan is None:
            return Unchanged(metadata)

        start = plan.start
        headers: dict[str, str] = {}
        if start > 0:
            headers["Range"] = f"bytes={start}-"

        timeout = self._request_timeout(self.connection.read_timeout_ms, self.connection.connect_timeout_ms)
        try:
            resp = self._open("GET", headers=headers, timeout=timeout)
        except urllib.error.HTTPError as exc:
            exc.close()
            if exc.code == RANGE_NOT_SATISFIABLE and start > 0:
                # Nothing beyond ``start`` yet (e.g. same length, newer timestamp).
                return Delta(start=start, metadata=metadata, chunks=iter(()), rotated=plan.rotated)
            if exc.code in ABSENT_STATUSES:
                return None
            raise ResourceError(f"GET {self.url} returned {exc.code} {exc.reason}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, ConnectionRefusedError):
                raise ResourceUnreachableError(f"GET {self.url} refused: {exc.reason}") from exc
            raise ResourceError(f"GET {self.url} failed: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise ResourceError(f"GET {self.url} failed: {exc}") from exc

        if start == UNKNOWN_LENGTH:
            debug_event(logger, "http_baseline", url=self.url)
            return Delta(
                start=0,
                metadata=metadata,
                chunks=self._read_chunks(resp),
                baseline=True,
                closer=resp.close,
            )

        status = getattr(resp, "status", 200)
        ranged = status == http.client.PARTIAL_CONTENT
        try:
            if ranged:
                served_from = parse_content_range_start(resp.headers.get("Content-Range"))
                if served_from is not None and served_from != start:
                    raise ResourceError(
                        f"GET {self.url} served range from {served_from}, requested {start}",
                        status=status,
                    )
            elif start > 0:
                self._skip(resp, start)
        except BaseException:
            resp.close()
            raise

        debug_event(
            logger,
            "http_fetch",
            url=self.url,
            status=status,
            start=start,
            length=metadata.length,
            ranged=ranged,
            rotated=plan.rotated,
        )
        return Delta(
            start=start,
            metadata=metadata,
            chunks=self._read_chunks(resp),
            rotated=plan.rotated,
            closer=resp.close,
        )

    def _open(self, method: str, *, headers: Mapping[str, str] | None = None, timeout: float | None):
        request_headers = {"User-Agent": self.user_agent}
        request_headers.update(self.connection.headers)
        if headers:
            request_headers.update(headers)
        req = urllib.request.Request(url=self.url, headers=request_headers, method=method)
        return self._opener.open(req, timeout=timeout)

    def _skip(self, resp, count: int) -> None:
        remaining = count
        try:
            while remaining > 0:
                chunk = resp.read(min(remaining, self.chunk_size))
                if not chunk:
                    break
                remaining -= len(chunk)
        except (OSError, http.client.HTTPException) as exc:
            raise ResourceError(f"GET {self.url} failed while skipping: {exc}") from exc
        if remaining > 0:
            raise ResourceError(
                f"Could not position input stream of {self.url} at {count} "
                f"(body ended {remaining} bytes short)"
            )

    def _read_chunks(self, resp) -> Iterator[bytes]:
        try:
            yield from iter_stream(resp.read, self.chunk_size)
        except (OSError, http.client.HTTPException) as exc:
            raise ResourceError(f"GET {self.url} failed while reading: {exc}") from exc
