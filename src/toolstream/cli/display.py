"""Rich rendering for CLI output."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Sequence

_TRUNCATE_LEN = 80


def _truncate(text: str, limit: int = _TRUNCATE_LEN) -> str:
    """Truncate text to *limit* characters with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + " ..."


def render_tools(
    stage: str,
    descriptors: Sequence[dict[str, object]],
    console: Console | None = None,
) -> None:
    """Print a stage's tools as a table of name, parameters, description."""
    console = console or Console()
    if not descriptors:
        console.print(f"[yellow]Registry '{stage}' advertises no tools.[/yellow]")
        return

    table = Table(title=f"Tools ({stage})", show_lines=False)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Parameters")
    table.add_column("Description")

    for d in descriptors:
        schema = d.get("input_schema")
        props = schema.get("properties", {}) if isinstance(schema, dict) else {}
        table.add_row(
            str(d.get("name", "")),
            ", ".join(props) if isinstance(props, dict) else "",
            _truncate(str(d.get("description", ""))),
        )

    console.print(table)
