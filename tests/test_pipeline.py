from __future__ import annotations

import pytest

from follow.config import FilterConfig, ReplaceRule
from follow.errors import ConfigurationError
from follow.filters import (
    TextFilterChain,
    build_filter_chain,
    make_exclude_contains_filter,
    make_include_contains_filter,
    make_replace_all_filter,
)
from follow.pipeline import PipelineAdapter
from follow.sinks import BufferSink


def _chain(*filters) -> TextFilterChain:
    chain = TextFilterChain()
    for text_filter in filters:
        chain.add(text_filter)
    return chain


def test_raw_copy_is_byte_exact() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink)
    payload = bytes(range(256)) + b"\xff\xfe\x00\r\n"

    result = adapter.process([payload[:100], payload[100:]])

    assert not adapter.filtering
    assert sink.getvalue() == payload
    assert result.bytes_in == result.bytes_out == len(payload)
    assert adapter.bytes_written == len(payload)


def test_filter_chain_sees_decoded_text() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink, _chain(make_include_contains_filter(["error"])), encoding="utf-8")

    result = adapter.process([b"ok line\nERROR: disk\n", b"another ok\n"])

    assert sink.getvalue() == b"ERROR: disk\n"
    assert result.bytes_in == len(b"ok line\nERROR: disk\nanother ok\n")
    assert result.bytes_out == len(b"ERROR: disk\n")


def test_multibyte_character_split_across_cycles() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink, _chain(make_replace_all_filter("z", "y")), encoding="utf-8")

    adapter.process([b"x\xc3"])
    adapter.process([b"\xa9\n"])

    assert sink.getvalue().decode("utf-8") == "xé\n"


def test_reset_drops_pending_partial_character() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink, _chain(make_replace_all_filter("z", "y")), encoding="utf-8")

    adapter.process([b"a\xc3"])
    adapter.reset()
    adapter.process([b"b\n"])

    assert sink.getvalue() == b"ab\n"


def test_empty_filter_output_writes_nothing() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink, _chain(make_include_contains_filter(["needle"])), encoding="utf-8")

    result = adapter.process([b"hay\nhay\n"])

    assert result.bytes_out == 0
    assert sink.writes == 0


def test_each_cycle_is_filtered_independently() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink, _chain(make_replace_all_filter(r"^(\w)", r"> \1")), encoding="utf-8")

    adapter.process([b"one\n"])
    adapter.process([b"two\n"])

    assert sink.getvalue() == b"> one\n> two\n"


def test_unknown_encoding_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        PipelineAdapter(BufferSink(), encoding="not-a-charset")


def test_include_and_exclude_keep_line_endings() -> None:
    text = "INFO start\r\nWARN slow\nINFO done"
    assert make_include_contains_filter(["info"])(text) == "INFO start\r\nINFO done"
    assert make_exclude_contains_filter(["info"])(text) == "WARN slow\n"


def test_blank_terms_do_not_filter() -> None:
    assert make_include_contains_filter(["", "  "])("anything\n") == "anything\n"


def test_replace_all_uses_multiline_anchors() -> None:
    assert make_replace_all_filter(r"\d+$", "N")("a 1\nb 22\n") == "a N\nb N\n"


def test_invalid_replace_pattern_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        make_replace_all_filter("(unclosed", "")


def test_build_filter_chain_orders_filters() -> None:
    config = FilterConfig(
        include_contains=["request"],
        exclude_contains=["healthz"],
        replace_all=[ReplaceRule(pattern=r"token=\w+", replacement="token=***")],
    )
    chain = build_filter_chain(config)

    text = "request /healthz\nrequest /api token=abc\nresponse 200\n"
    assert len(chain) == 3
    assert chain.apply(text) == "request /api token=***\n"


def test_empty_filter_config_builds_empty_chain() -> None:
    chain = build_filter_chain(FilterConfig())
    assert not chain
    assert chain.apply("unchanged") == "unchanged"


def test_chunks_are_decoded_as_they_arrive() -> None:
    sink = BufferSink()
    adapter = PipelineAdapter(sink, _chain(make_include_contains_filter(["é"])), encoding="utf-8")

    result = adapter.process([b"caf", b"\xc3", b"\xa9\nplain\n"])

    assert sink.getvalue() == "café\n".encode("utf-8")
    assert sink.writes == 1
    assert result.bytes_in == len(b"caf\xc3\xa9\nplain\n")
