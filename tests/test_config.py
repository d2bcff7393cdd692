from __future__ import annotations

from pathlib import Path

import pytest

from follow.config import (
    FilterConfig,
    FollowConfig,
    ReplaceRule,
    SinkConfig,
    dump_default_config,
    load_config,
    validate_config,
)
from follow.constants import DEFAULT_PERIOD_MS, DEFAULT_TIMEOUT_SECONDS
from follow.errors import ConfigurationError
from follow.sinks import DiscardSink, FileSink, StreamSink, build_sink


def test_missing_config_file_gives_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.yaml")
    assert config.period_ms == DEFAULT_PERIOD_MS
    assert config.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
    assert config.fail_on_timeout is True
    assert config.sink.stdout is True


def test_dump_then_load_default_config(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "follow.yaml"
    dump_default_config(target)

    config = load_config(target)
    assert config.resource == "./app.log"
    assert config.sink.stdout is True
    assert config.connection.follow_redirects is True
    validate_config(config)


def test_load_config_reads_nested_sections(tmp_path: Path) -> None:
    target = tmp_path / "follow.yaml"
    target.write_text(
        "\n".join(
            [
                "resource: https://ci.example.com/job/42/consoleText",
                "period_ms: 500",
                "timeout_seconds: 60",
                "fail_on_timeout: false",
                "encoding: utf-8",
                "filters:",
                "  include_contains: [BUILD]",
                "  replace_all:",
                "    - pattern: 'password=\\S+'",
                "      replacement: 'password=***'",
                "  stop_on_output: true",
                "connection:",
                "  read_timeout_ms: 2000",
                "  headers:",
                "    - 'Authorization: Basic Zm9v'",
                "    - name: X-Job",
                "      value: '42'",
                "sink:",
                "  output_file: out.log",
                "  append: true",
                "logging:",
                "  level: DEBUG",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(target)

    assert config.resource.endswith("consoleText")
    assert config.period_ms == 500
    assert config.fail_on_timeout is False
    assert config.filters.replace_all == [ReplaceRule(pattern="password=\\S+", replacement="password=***")]
    assert config.filters.stop_on_output is True
    assert config.connection.read_timeout_ms == 2000
    assert config.connection.headers == {"Authorization": "Basic Zm9v", "X-Job": "42"}
    assert config.sink.output_file == "out.log"
    assert config.sink.stdout is False
    assert config.logging.level == "DEBUG"
    validate_config(config)


def test_header_mapping_form(tmp_path: Path) -> None:
    target = tmp_path / "follow.yaml"
    target.write_text("resource: http://h/x\nconnection:\n  headers:\n    Accept: text/plain\n", encoding="utf-8")
    assert load_config(target).connection.headers == {"Accept": "text/plain"}


@pytest.mark.parametrize(
    "config",
    [
        FollowConfig(resource=""),
        FollowConfig(resource="a.log", sink=SinkConfig(output_file="o.log", stdout=True)),
        FollowConfig(resource="a.log", sink=SinkConfig(append=True)),
        FollowConfig(resource="a.log", period_ms=0),
        FollowConfig(resource="a.log", encoding="utf-8"),
        FollowConfig(resource="a.log", encoding="no-such", filters=FilterConfig(include_contains=["x"])),
        FollowConfig(resource="a.log", filters=FilterConfig(stop_on_output=True)),
    ],
)
def test_validate_config_rejects(config: FollowConfig) -> None:
    with pytest.raises(ConfigurationError):
        validate_config(config)


def test_validate_config_rejects_bad_header_and_redirect_settings() -> None:
    config = FollowConfig(resource="http://h/x")
    config.connection.headers = {"Bad Name": "v"}
    with pytest.raises(ConfigurationError):
        validate_config(config)

    config = FollowConfig(resource="http://h/x")
    config.connection.max_redirects = -1
    with pytest.raises(ConfigurationError):
        validate_config(config)


def test_build_sink_selection(tmp_path: Path) -> None:
    assert isinstance(build_sink(SinkConfig()), DiscardSink)

    class _Stream:
        def __init__(self) -> None:
            self.data = b""

        def write(self, data: bytes) -> int:
            self.data += data
            return len(data)

        def flush(self) -> None:
            return None

    stream = _Stream()
    sink = build_sink(SinkConfig(stderr=True), stderr=stream)
    assert isinstance(sink, StreamSink)
    sink.write(b"x")
    assert stream.data == b"x"

    with pytest.raises(ConfigurationError):
        build_sink(SinkConfig(stdout=True, stderr=True))


def test_file_sink_truncates_or_appends(tmp_path: Path) -> None:
    target = tmp_path / "out.log"
    target.write_bytes(b"old\n")

    sink = build_sink(SinkConfig(output_file=str(target), append=True))
    assert isinstance(sink, FileSink)
    sink.write(b"new\n")
    sink.close()
    assert target.read_bytes() == b"old\nnew\n"

    sink = build_sink(SinkConfig(output_file=str(target)))
    sink.write(b"fresh\n")
    sink.close()
    assert target.read_bytes() == b"fresh\n"
