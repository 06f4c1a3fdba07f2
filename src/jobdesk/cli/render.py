from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.table import Table

from jobdesk.core.controller import PageState

console = Console()


def render_table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    table = Table(show_lines=False)
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row))
    console.print(table)


def render_fields(title: str, fields: Sequence[tuple[str, Any]]) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    for name, value in fields:
        table.add_row(name, "" if value is None else str(value))
    console.print(table)


def render_page(state: PageState, shown: int) -> None:
    if state.total_items == 0:
        console.print("(no records)")
        return
    console.print(
        f"Page {state.page_index + 1} of {state.total_pages} "
        f"({shown} shown, {state.total_items} total)"
    )
