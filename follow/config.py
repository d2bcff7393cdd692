from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from follow.constants import (
    DEFAULT_FAIL_ON_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_PERIOD_MS,
    DEFAULT_TIMEOUT_SECONDS,
)
from follow.errors import ConfigurationError


@dataclass(slots=True)
class ConnectionConfig:
    connect_timeout_ms: int = -1
    read_timeout_ms: int = -1
    headers: dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    follow_redirects_across_protocols: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    chunk_length: int = -1
    content_length: int = -1


@dataclass(slots=True)
class SinkConfig:
    output_file: str | None = None
    append: bool = False
    stdout: bool = False
    stderr: bool = False

    def selected(self) -> list[str]:
        chosen = []
        if self.output_file:
            chosen.append("output_file")
        if self.stdout:
            chosen.append("stdout")
        if self.stderr:
            chosen.append("stderr")
        return chosen


@dataclass(slots=True)
class ReplaceRule:
    pattern: str
    replacement: str = ""


@dataclass(slots=True)
class FilterConfig:
    include_contains: list[str] = field(default_factory=list)
    exclude_contains: list[str] = field(default_factory=list)
    replace_all: list[ReplaceRule] = field(default_factory=list)
    stop_on_output: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.include_contains or self.exclude_contains or self.replace_all)


@dataclass(slots=True)
class LoggingConfig:
    level: str | None = None


@dataclass(slots=True)
class FollowConfig:
    resource: str = ""
    period_ms: int = DEFAULT_PERIOD_MS
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    fail_on_timeout: bool = DEFAULT_FAIL_ON_TIMEOUT
    encoding: str | None = None
    filters: FilterConfig = field(default_factory=FilterConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @staticmethod
    def default() -> FollowConfig:
        return FollowConfig(sink=SinkConfig(stdout=True))


def validate_config(config: FollowConfig) -> None:
    """Reject configurations that can never work, before any polling happens."""
    if not config.resource or not config.resource.strip():
        raise ConfigurationError('Source missing - specify "file" or "url"')

    selected = config.sink.selected()
    if len(selected) > 1:
        raise ConfigurationError(
            "Only one of 'output_file', 'stdout' and 'stderr' allowed "
            f"(got {', '.join(selected)})"
        )
    if config.sink.append and not config.sink.output_file:
        raise ConfigurationError("'append' requires 'output_file'")

    if config.period_ms <= 0:
        raise ConfigurationError(f"period_ms must be positive, got {config.period_ms}")

    if config.encoding is not None:
        if not config.filters.configured:
            raise ConfigurationError(
                "The 'encoding' setting takes effect only if a filter chain is configured"
            )
        try:
            codecs.lookup(config.encoding)
        except LookupError as exc:
            raise ConfigurationError(f"Unknown encoding: {config.encoding}") from exc

    if config.filters.stop_on_output and not config.filters.configured:
        raise ConfigurationError("'stop_on_output' requires a filter chain")

    if config.connection.max_redirects < 0:
        raise ConfigurationError("max_redirects must not be negative")
    for name in config.connection.headers:
        if not name or ":" in name or any(ch.isspace() for ch in name):
            raise ConfigurationError(f"Invalid request header name: {name!r}")


def _parse_headers(raw: Any) -> dict[str, str]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    headers: dict[str, str] = {}
    for item in raw:
        if isinstance(item, dict):
            headers[str(item["name"])] = str(item.get("value", ""))
        else:
            name, _, value = str(item).partition(":")
            headers[name.strip()] = value.strip()
    return headers


def load_config(path: str | Path | None) -> FollowConfig:
    if path is None:
        return FollowConfig.default()

    config_path = Path(path)
    if not config_path.exists():
        return FollowConfig.default()

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    filters_raw = raw.get("filters", {}) or {}
    connection_raw = raw.get("connection", {}) or {}
    sink_raw = raw.get("sink", {}) or {}
    logging_raw = raw.get("logging", {}) or {}

    return FollowConfig(
        resource=str(raw.get("resource", "")),
        period_ms=int(raw.get("period_ms", DEFAULT_PERIOD_MS)),
        timeout_seconds=int(raw.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        fail_on_timeout=bool(raw.get("fail_on_timeout", DEFAULT_FAIL_ON_TIMEOUT)),
        encoding=raw.get("encoding"),
        filters=FilterConfig(
            include_contains=list(filters_raw.get("include_contains", [])),
            exclude_contains=list(filters_raw.get("exclude_contains", [])),
            replace_all=[
                ReplaceRule(pattern=str(item["pattern"]), replacement=str(item.get("replacement", "")))
                for item in filters_raw.get("replace_all", [])
            ],
            stop_on_output=bool(filters_raw.get("stop_on_output", False)),
        ),
        connection=ConnectionConfig(
            connect_timeout_ms=int(connection_raw.get("connect_timeout_ms", -1)),
            read_timeout_ms=int(connection_raw.get("read_timeout_ms", -1)),
            headers=_parse_headers(connection_raw.get("headers")),
            follow_redirects=bool(connection_raw.get("follow_redirects", True)),
            follow_redirects_across_protocols=bool(
                connection_raw.get("follow_redirects_across_protocols", False)
            ),
            max_redirects=int(connection_raw.get("max_redirects", DEFAULT_MAX_REDIRECTS)),
            chunk_length=int(connection_raw.get("chunk_length", -1)),
            content_length=int(connection_raw.get("content_length", -1)),
        ),
        sink=SinkConfig(
            output_file=sink_raw.get("output_file"),
            append=bool(sink_raw.get("append", False)),
            stdout=bool(sink_raw.get("stdout", False)),
            stderr=bool(sink_raw.get("stderr", False)),
        ),
        logging=LoggingConfig(level=logging_raw.get("level")),
    )


def dump_default_config(path: str | Path) -> None:
    cfg = FollowConfig.default()
    payload: dict[str, Any] = {
        "resource": "./app.log",
        "period_ms": cfg.period_ms,
        "timeout_seconds": cfg.timeout_seconds,
        "fail_on_timeout": cfg.fail_on_timeout,
        "encoding": cfg.encoding,
        "filters": {
            "include_contains": cfg.filters.include_contains,
            "exclude_contains": cfg.filters.exclude_contains,
            "replace_all": [],
            "stop_on_output": cfg.filters.stop_on_output,
        },
        "connection": {
            "connect_timeout_ms": cfg.connection.connect_timeout_ms,
            "read_timeout_ms": cfg.connection.read_timeout_ms,
            "headers": cfg.connection.headers,
            "follow_redirects": cfg.connection.follow_redirects,
            "follow_redirects_across_protocols": cfg.connection.follow_redirects_across_protocols,
            "max_redirects": cfg.connection.max_redirects,
        },
        "sink": {
            "output_file": cfg.sink.output_file,
            "append": cfg.sink.append,
            "stdout": cfg.sink.stdout,
            "stderr": cfg.sink.stderr,
        },
        "logging": {"level": DEFAULT_LOG_LEVEL},
    }
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, sort_keys=False)
