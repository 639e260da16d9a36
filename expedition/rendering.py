"""Console rendering for task queues, workflow runs and fishing sessions."""

from typing import Iterable, Optional, Sequence

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .theme import ACCENT, BORDER, DIM, ERROR, INFO, MUTED, SUCCESS, TEXT, WARN

__all__ = [
    "set_use_unicode",
    "get_icon",
    "build_task_table",
    "render_task_queue",
    "render_run_log",
    "render_workflow_summary",
    "render_fishing_summary",
    "render_config_table",
    "render_error",
]


# ── Icon mapping for Unicode/ASCII fallback ──

# Global flag to control Unicode vs ASCII (set by main.py)
_USE_UNICODE = True


def set_use_unicode(enabled: bool):
    """Set whether to use Unicode icons (True) or ASCII fallback (False)."""
    global _USE_UNICODE
    _USE_UNICODE = enabled


# Icon mapping: Unicode → ASCII
_ICON_MAP = {
    "✓": "[OK]",
    "✗": "[X]",
    "▸": ">",
    "○": "o",
    "–": "-",
    "⟲": "~",
    "●": "*",
    "·": ".",
}


def get_icon(unicode_icon: str) -> str:
    """Return ``unicode_icon``, or its ASCII fallback when Unicode is disabled."""
    if _USE_UNICODE:
        return unicode_icon
    return _ICON_MAP.get(unicode_icon, unicode_icon)


# Status display: (icon_char, color, label)
_STATUS_DISPLAY = {
    "pending":     ("○", DIM,     "pending"),
    "in_progress": ("▸", INFO,    "running"),
    "completed":   ("✓", SUCCESS, "done"),
    "failed":      ("✗", ERROR,   "failed"),
    "skipped":     ("–", DIM,     "skipped"),
}


def build_task_table(tasks: Sequence, current_index: int = -1) -> Table:
    """Table of tasks with progress, retries and failure reasons."""
    table = Table(
        show_header=True,
        header_style=f"bold {ACCENT}",
        border_style=BORDER,
        padding=(0, 1),
    )
    table.add_column("#", justify="right", width=3)
    table.add_column("Item", min_width=18)
    table.add_column("Progress", justify="right", min_width=8)
    table.add_column("Retries", justify="right", width=7)
    table.add_column("Status", min_width=10)
    table.add_column("Note", style=MUTED, min_width=20)

    for idx, task in enumerate(tasks):
        icon, color, label = _STATUS_DISPLAY.get(task.status.value, ("?", DIM, task.status.value))
        marker = f"[bold {ACCENT}]{get_icon('▸')}[/bold {ACCENT}]" if idx == current_index else ""
        table.add_row(
            f"{marker}{idx + 1}",
            task.name,
            f"{task.quantity_confirmed}/{task.quantity}",
            str(task.retry_count),
            f"[{color}]{escape(get_icon(icon))} {label}[/{color}]",
            escape(task.error_message or ""),
        )
    return table


def render_task_queue(console: Console, title: str, tasks: Sequence,
                      current_index: int = -1) -> None:
    if not tasks:
        console.print(f"  [{DIM}]{title}: no tasks[/{DIM}]")
        return
    console.print(Panel(
        build_task_table(tasks, current_index),
        title=f"[bold {ACCENT}] {title} [/bold {ACCENT}]",
        title_align="left",
        border_style=BORDER,
        padding=(0, 1),
    ))


def render_run_log(console: Console, lines: Iterable[str], limit: Optional[int] = None) -> None:
    lines = list(lines)
    if limit is not None:
        lines = lines[-limit:]
    body = Text()
    for i, line in enumerate(lines):
        style = TEXT
        if "ERROR" in line:
            style = ERROR
        elif "failed" in line.lower() or "short by" in line:
            style = WARN
        body.append(line, style=style)
        if i < len(lines) - 1:
            body.append("\n")
    console.print(Panel(
        body if lines else Text("(empty)", style=DIM),
        title=f"[bold {ACCENT}] Run Log [/bold {ACCENT}]",
        title_align="left",
        border_style=BORDER,
        padding=(0, 1),
    ))


def render_workflow_summary(console: Console, engine) -> None:
    """Final gather + craft tables with an outcome footer."""
    parts = []
    if engine.gathering.tasks:
        parts.append(Text("Gathering", style=f"bold {MUTED}"))
        parts.append(build_task_table(engine.gathering.tasks))
    if engine.crafting.tasks:
        if parts:
            parts.append(Text(""))
        parts.append(Text("Crafting", style=f"bold {MUTED}"))
        parts.append(build_task_table(engine.crafting.tasks))
    if not parts:
        parts.append(Text("No tasks were run.", style=DIM))

    state = engine.state.value
    color = {"completed": SUCCESS, "error": ERROR}.get(state, WARN)
    footer = f"{state} {get_icon('·')} {engine.elapsed:.1f}s"
    if engine.error_message:
        footer += f" {get_icon('·')} {escape(engine.error_message)}"

    console.print(Panel(
        Group(*parts),
        title=f"[bold {ACCENT}] Workflow Summary [/bold {ACCENT}]",
        subtitle=f"[{color}]{footer}[/{color}]",
        title_align="left",
        border_style=BORDER,
        padding=(0, 1),
    ))


def render_fishing_summary(console: Console, session) -> None:
    table = Table(show_header=False, border_style=BORDER, padding=(0, 1))
    table.add_column("Key", style=f"bold {ACCENT}", min_width=12)
    table.add_column("Value", style=TEXT)
    table.add_row("State", session.state.value)
    table.add_row("Catches", str(session.total_catches))
    table.add_row("Duration", session.duration_string())
    table.add_row("Rate", f"{session.catch_rate():.1f}/hr")
    if session.target_spot is not None:
        table.add_row("Spot", session.target_spot.name)
    if session.error_message:
        table.add_row("Error", f"[{ERROR}]{escape(session.error_message)}[/{ERROR}]")
    console.print(Panel(
        table,
        title=f"[bold {ACCENT}] Fishing Session [/bold {ACCENT}]",
        title_align="left",
        border_style=BORDER,
        padding=(0, 1),
    ))


def render_config_table(console: Console, diff: dict, source: str = "") -> None:
    """Show every setting, highlighting the ones changed from their defaults."""
    modified = diff.get("modified", {})
    defaults = diff.get("default", {})

    table = Table(border_style=BORDER, show_header=True, padding=(0, 1))
    table.add_column("Key", style=f"bold {ACCENT}", min_width=24)
    table.add_column("Current", style=TEXT, min_width=10)
    table.add_column("Default", style=DIM, min_width=10)
    table.add_column("Description", style=MUTED)

    for key in sorted({**modified, **defaults}):
        info = modified.get(key) or defaults[key]
        current = str(info["current"])
        if key in modified:
            current = f"[{WARN}]{current}[/{WARN}]"
        table.add_row(key, current, str(info["default"]), info["description"])

    console.print(Panel(
        table,
        title=f"[bold {ACCENT}] Configuration [/bold {ACCENT}]",
        subtitle=f"[{DIM}]{source}[/{DIM}]" if source else None,
        title_align="left",
        border_style=BORDER,
        padding=(0, 1),
    ))
    console.print(f"  [{DIM}]{len(modified)} modified {get_icon('·')} {len(defaults)} at default[/{DIM}]")


def render_error(console: Console, message: str) -> None:
    console.print(f"  [{ERROR}]{escape(get_icon('✗'))} {escape(message)}[/{ERROR}]")
