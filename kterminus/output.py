"""Formatting and printing of command output."""

from __future__ import annotations

import sys
from typing import Iterable, Optional, Sequence, TextIO

from kterminus.ipc_client import MachineInfo, OrchestratorStatus, SessionInfo

_GREEN = "\x1b[38;5;10m"
_RED = "\x1b[38;5;9m"
_YELLOW = "\x1b[38;5;11m"
_CYAN = "\x1b[38;5;14m"
_RESET = "\x1b[0m"

_DETAILED_WIDTH = 100


def _chunks(text: str, width: int) -> list[str]:
    if not text:
        return [""]
    return [text[start:start + width] for start in range(0, len(text), width)]


def _render_table(
    headers: Sequence[str],
    rows: Iterable[Sequence[object]],
    max_width: Optional[int] = None,
) -> str:
    """Render a rounded-border table, wrapping cells to fit ``max_width``."""
    cells = [[str(value) for value in row] for row in rows]
    widths = [
        max([len(header), *(len(row[column]) for row in cells)])
        for column, header in enumerate(headers)
    ]

    if max_width is not None:
        total = sum(widths) + 3 * len(widths) + 1
        while total > max_width and max(widths) > 1:
            widest = widths.index(max(widths))
            widths[widest] -= 1
            total -= 1

    def border(left: str, middle: str, right: str) -> str:
        return left + middle.join("─" * (width + 2) for width in widths) + right

    def render_row(row: Sequence[str]) -> list[str]:
        wrapped = [_chunks(text, width) for text, width in zip(row, widths)]
        height = max(len(parts) for parts in wrapped)
        lines = []
        for line_no in range(height):
            parts = [
                (pieces[line_no] if line_no < len(pieces) else "").ljust(width)
                for pieces, width in zip(wrapped, widths)
            ]
            lines.append("│ " + " │ ".join(parts) + " │")
        return lines

    lines = [border("╭", "┬", "╮"), *render_row(list(headers)), border("├", "┼", "┤")]
    for row in cells:
        lines.extend(render_row(row))
    lines.append(border("╰", "┴", "╯"))
    return "\n".join(lines)


def format_machines(machines: Sequence[MachineInfo], detailed: bool = False) -> str:
    """Format machines as a table, or say that none are connected."""
    if not machines:
        return "No machines connected"

    if detailed:
        headers = (
            "ID", "ALIAS", "HOSTNAME", "OS/ARCH", "STATUS",
            "SESSIONS", "CONNECTED", "LAST HEARTBEAT",
        )
        rows = [
            (
                truncate(m.id, 12),
                m.alias or "-",
                m.hostname,
                f"{m.os}/{m.arch}",
                m.status,
                m.session_count,
                m.connected_at or "-",
                m.last_heartbeat or "-",
            )
            for m in machines
        ]
        return _render_table(headers, rows, max_width=_DETAILED_WIDTH)

    headers = ("ID", "ALIAS", "HOSTNAME", "OS", "STATUS", "SESSIONS")
    rows = [
        (truncate(m.id, 12), m.alias or "-", m.hostname, m.os, m.status, m.session_count)
        for m in machines
    ]
    return _render_table(headers, rows)


def format_sessions(sessions: Sequence[SessionInfo]) -> str:
    """Format sessions as a table, or say that none are active."""
    if not sessions:
        return "No active sessions"
    headers = ("SESSION ID", "MACHINE", "SHELL", "PID", "CREATED")
    rows = [
        (
            s.id,
            truncate(s.machine_id, 12),
            s.shell or "default",
            "-" if s.pid is None else s.pid,
            s.created_at,
        )
        for s in sessions
    ]
    return _render_table(headers, rows)


def format_status(status: OrchestratorStatus, detailed: bool = False) -> str:
    """Describe the orchestrator's status, one fact per line."""
    lines = [
        f"Orchestrator Status: {'Running' if status.running else 'Stopped'}",
        f"Version: {status.version}",
        f"Uptime: {format_duration(status.uptime_secs)}",
        f"Connected Machines: {status.machine_count}",
        f"Active Sessions: {status.session_count}",
    ]
    output = "\n".join(lines) + "\n"
    if detailed:
        output += "\n--- Detailed Metrics ---\n"
    return output


def format_duration(secs: int) -> str:
    """Render a number of seconds as its two largest units."""
    if secs < 60:
        return f"{secs}s"
    if secs < 3600:
        return f"{secs // 60}m {secs % 60}s"
    if secs < 86400:
        return f"{secs // 3600}h {(secs % 3600) // 60}m"
    return f"{secs // 86400}d {(secs % 86400) // 3600}h"


def truncate(s: str, max_len: int) -> str:
    """Shorten ``s`` to ``max_len`` characters, ending in an ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max(max_len - 3, 0)] + "..."


def _emit(stream: TextIO, colour: str, symbol: str, msg: str) -> None:
    stream.write(f"{colour}{symbol} {_RESET}{msg}\n")
    stream.flush()


def print_success(msg: str) -> None:
    _emit(sys.stdout, _GREEN, "✓", msg)


def print_error(msg: str) -> None:
    _emit(sys.stderr, _RED, "✗", msg)


def print_warning(msg: str) -> None:
    _emit(sys.stderr, _YELLOW, "⚠", msg)


def print_info(msg: str) -> None:
    _emit(sys.stdout, _CYAN, "ℹ", msg)