from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import EngineConfig
from .gap_registry import GapRegistry, gap_controls
from .visibility import AnnotationOutcome

LINE_PREFIX = {"context": " ", "insert": "+", "delete": "-"}


def line_style(line_type: str, revealed: bool) -> str:
    if revealed:
        return "dim"
    if line_type == "insert":
        return "green"
    if line_type == "delete":
        return "red"
    return "white"


def outcome_style(status: str) -> str:
    if status == "revealed":
        return "green"
    if status == "unresolvable":
        return "yellow"
    return "white"


def _number(value: int | None) -> str:
    return "" if value is None else str(value)


def render_file(console: Console, registry: GapRegistry, config: EngineConfig, max_lines: int) -> None:
    table = Table(title=registry.file, header_style="bold magenta", show_lines=False)
    table.add_column("pos", justify="right", style="cyan")
    table.add_column("old", justify="right")
    table.add_column("new", justify="right")
    table.add_column("content", overflow="fold")

    shown = 0
    for segment in registry.segments():
        if shown >= max_lines:
            table.add_row("", "", "", Text(f"... truncated at {max_lines} rows", style="dim"))
            break
        shown += 1
        if segment.kind == "header" and segment.hunk is not None:
            table.add_row(
                _number(segment.hunk.header_position),
                "",
                "",
                Text(segment.hunk.header, style="bold blue"),
            )
        elif segment.kind == "gap" and segment.gap is not None:
            gap = segment.gap
            hidden = "?" if gap.hidden_count is None else str(gap.hidden_count)
            actions = "/".join(gap_controls(gap, config))
            table.add_row(
                "",
                _number(gap.old_start),
                _number(gap.new_start),
                Text(f"... {hidden} hidden lines [{gap.gap_id}] ({actions})", style="bold yellow"),
            )
        elif segment.line is not None:
            line = segment.line
            table.add_row(
                _number(line.diff_position),
                _number(line.old_number),
                _number(line.new_number),
                Text(LINE_PREFIX.get(line.type, "?") + line.content, style=line_style(line.type, line.revealed)),
            )
    console.print(table)


def render_outcomes(console: Console, outcomes: list[AnnotationOutcome]) -> None:
    table = Table(title=f"Annotations ({len(outcomes)})", header_style="bold magenta")
    table.add_column("file", overflow="ellipsis")
    table.add_column("lines", no_wrap=True)
    table.add_column("side", no_wrap=True)
    table.add_column("status", no_wrap=True)
    table.add_column("reason", overflow="fold")
    for outcome in outcomes:
        group = outcome.group
        table.add_row(
            group.file,
            f"{group.line_start}-{group.line_end}",
            group.side,
            Text(outcome.status, style=outcome_style(outcome.status)),
            outcome.error.reason if outcome.error else "",
        )
    console.print(table)


def render_errors(console: Console, errors: dict[str, list[str]]) -> None:
    if not errors:
        return
    body = "\n".join(f"{file}: {message}" for file, messages in errors.items() for message in messages)
    console.print(Panel(body, title="Parse warnings", border_style="yellow"))
