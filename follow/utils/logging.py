"""Logging setup for the follower.

Diagnostics always go to STDERR through a rich handler: STDOUT may be the
sink carrying the followed data and must stay byte-exact.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from follow.constants import DEFAULT_LOG_LEVEL, ENV_LOG_LEVEL

LOGGER_ROOT = "follow"
DEBUG_LINE_LIMIT = 240

_active_level: int | None = None


def resolve_log_level(cli_level: str | None = None, config_level: str | None = None) -> str:
    """Pick the level from the CLI, then the environment, then the config file."""
    for candidate in (cli_level, os.getenv(ENV_LOG_LEVEL), config_level):
        if candidate and candidate.strip():
            return candidate.strip().upper()
    return DEFAULT_LOG_LEVEL


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: int | str | None = None, *, console: Console | None = None) -> int:
    """Route ``follow.*`` loggers to a rich stderr handler; returns the numeric level.

    Calling again with the same level is a no-op, so the CLI can set up early
    and then re-apply once the config file has been read.
    """
    global _active_level

    target = _level_number(level if level is not None else resolve_log_level())
    if _active_level == target:
        return target

    handler = RichHandler(
        console=console or Console(stderr=True),
        markup=False,
        show_path=False,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    # Third-party loggers stay at WARNING even when the follower runs at DEBUG.
    logging.basicConfig(level=max(target, logging.WARNING), handlers=[handler], force=True)
    logging.getLogger(LOGGER_ROOT).setLevel(target)

    _active_level = target
    return target


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=True)
    if isinstance(value, BaseException):
        return json.dumps(f"{type(value).__name__}: {value}", ensure_ascii=True)
    if isinstance(value, (list, tuple)):
        return f"{type(value).__name__}({len(value)})"
    return str(value)


def debug_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log ``event=<name> key=value ...`` at DEBUG, skipping ``None`` fields."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    line = " ".join(
        [f"event={event}"] + [f"{key}={_render(value)}" for key, value in fields.items() if value is not None]
    )
    if len(line) > DEBUG_LINE_LIMIT:
        line = line[:DEBUG_LINE_LIMIT] + "..."
    logger.debug(line)
