"""Text filter chain applied to each cycle's delta, plus built-in filters."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from follow.config import FilterConfig
from follow.errors import ConfigurationError

TextFilter = Callable[[str], str]


@dataclass(slots=True)
class TextFilterChain:
    filters: list[TextFilter] = field(default_factory=list)

    def add(self, text_filter: TextFilter) -> None:
        self.filters.append(text_filter)

    def __bool__(self) -> bool:
        return bool(self.filters)

    def __len__(self) -> int:
        return len(self.filters)

    def apply(self, text: str) -> str:
        for text_filter in self.filters:
            if not text:
                break
            text = text_filter(text)
        return text


def make_include_contains_filter(needles: list[str]) -> TextFilter:
    lowered = _normalized_terms(needles)

    def _filter(text: str) -> str:
        if not lowered:
            return text
        return "".join(line for line in text.splitlines(keepends=True) if _contains_any(line.lower(), lowered))

    return _filter


def make_exclude_contains_filter(needles: list[str]) -> TextFilter:
    lowered = _normalized_terms(needles)

    def _filter(text: str) -> str:
        if not lowered:
            return text
        return "".join(
            line for line in text.splitlines(keepends=True) if not _contains_any(line.lower(), lowered)
        )

    return _filter


def make_replace_all_filter(pattern: str, replacement: str) -> TextFilter:
    try:
        compiled = re.compile(pattern, re.MULTILINE)
    except re.error as exc:
        raise ConfigurationError(f"Invalid replace pattern {pattern!r}: {exc}") from exc

    def _filter(text: str) -> str:
        return compiled.sub(replacement, text)

    return _filter


def build_filter_chain(config: FilterConfig) -> TextFilterChain:
    chain = TextFilterChain()
    if config.include_contains:
        chain.add(make_include_contains_filter(config.include_contains))
    if config.exclude_contains:
        chain.add(make_exclude_contains_filter(config.exclude_contains))
    for rule in config.replace_all:
        chain.add(make_replace_all_filter(rule.pattern, rule.replacement))
    return chain


def _normalized_terms(values: list[str]) -> list[str]:
    return [item.lower().strip() for item in values if item and item.strip()]


def _contains_any(value: str, needles: list[str]) -> bool:
    return any(needle in value for needle in needles)
