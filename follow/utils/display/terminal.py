"""Terminal summaries for follow runs.

Everything here prints to STDERR; STDOUT may be carrying the followed data.
"""

from __future__ import annotations

import json
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from follow.api_objects.types import FollowRunSummary
from follow.constants import STATUS_CANCELLED, STATUS_FAILED, STATUS_MATCHED, STATUS_TIMED_OUT
from follow.internal.events import InternalEvent


def _status_style(status: str) -> str:
    if status in (STATUS_FAILED, STATUS_TIMED_OUT):
        return "bold red"
    if status == STATUS_CANCELLED:
        return "yellow"
    if status == STATUS_MATCHED:
        return "bold green"
    return "green"


def print_run_summary(summary: FollowRunSummary, console: Console | None = None) -> None:
    console = console or Console(stderr=True)
    totals = summary.to_dict()["totals"]
    style = _status_style(summary.status)

    header = (
        f"[{style}]{summary.status}[/{style}] | "
        f"cycles={totals['cycles']} | idle={totals['idle_cycles']} | "
        f"bytes_read={totals['bytes_read']} | bytes_written={totals['bytes_written']} | "
        f"duration={summary.duration_seconds:.2f}s"
    )
    console.print(Panel(header, title=summary.url, border_style="cyan"))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Rotations", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("Modified (ms)", justify="right")
    table.add_column("Timeout", justify="right")
    table.add_column("Error", overflow="fold")
    table.add_row(
        str(summary.rotations),
        str(summary.errors),
        str(summary.cursor.previous_length),
        str(summary.cursor.previous_mod_time),
        f"{summary.timeout_seconds}s" if summary.timeout_seconds > 0 else "none",
        summary.error_message or "",
    )
    console.print(table)


def print_run_summary_json(summary: FollowRunSummary) -> None:
    print(json.dumps(summary.to_dict(), ensure_ascii=True), file=sys.stderr)


def print_internal_events(events: list[InternalEvent], console: Console | None = None) -> None:
    if not events:
        return

    console = console or Console(stderr=True)
    table = Table(title="Recent Internal Events", show_header=True, header_style="bold cyan")
    table.add_column("Time")
    table.add_column("Topic")
    table.add_column("Payload", overflow="fold")
    for event in events:
        table.add_row(
            event.ts.isoformat(timespec="seconds"),
            event.topic,
            json.dumps(event.payload, ensure_ascii=True, sort_keys=True, default=str),
        )
    console.print(table)
