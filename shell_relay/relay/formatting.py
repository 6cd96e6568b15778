"""Message text rendering."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from shell_relay.relay.coordinator import CompletionReport

__all__ = [
    "OUTPUT_PREAMBLE",
    "format_duration",
    "render_placeholder",
    "render_report",
    "render_spawn_error",
]

OUTPUT_PREAMBLE = "```\n"


def render_placeholder(command: str, user_id: str | None = None) -> str:
    mention = f"<@{user_id}> " if user_id else ""
    return f"{mention}starting sandbox `{command}`...\n"


def render_spawn_error(reason: str) -> str:
    return f"Error starting command: {reason}\n"


def format_duration(elapsed: timedelta) -> str:
    seconds = elapsed.total_seconds()
    if seconds < 1:
        return f"{seconds * 1000:.3f}ms"
    return f"{seconds:.3f}s"


def render_report(report: CompletionReport) -> str:
    """Close the output fence and summarize how the process ended."""

    lines = [
        "```",
        "",
        "**Process completed**",
        f"- Exit code: {report.exit_code}",
        f"- Execution time: {format_duration(report.elapsed)}",
    ]
    signal_name = report.outcome.signal_name
    if signal_name:
        lines.append(f"- Signal: {signal_name}")
    return "\n".join(lines) + "\n"
