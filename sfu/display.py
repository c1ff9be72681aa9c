"""
Display Utilities Module

Handles formatting and displaying Salesforce data in a readable way.
"""
import json
from typing import Any, Dict, List

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .bulk import JobOutcome
from .export import flatten_record


console = Console()

MAX_TABLE_ROWS = 50


def display_records(records: List[Dict[str, Any]], title: str, max_rows: int = MAX_TABLE_ROWS):
    """
    Display records in a formatted table.

    Args:
        records: List of Salesforce records
        title: Table title
        max_rows: Maximum number of rows to render
    """
    if not records:
        console.print("\n[yellow]No records found[/yellow]\n")
        return

    rows = [flatten_record(r) if isinstance(r, dict) else {'value': r} for r in records]

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan"
    )

    table.add_column("#", style="dim", width=4)
    field_names: List[str] = []
    for row in rows:
        for key in row:
            if key not in field_names:
                field_names.append(key)
    for field in field_names:
        table.add_column(field, style="blue" if field == 'Id' else "white")

    for idx, row in enumerate(rows[:max_rows], 1):
        table.add_row(str(idx), *[
            '' if row.get(field) is None else str(row.get(field)) for field in field_names
        ])

    console.print()
    console.print(table)
    if len(rows) > max_rows:
        console.print(f"\n[dim]Showing {max_rows} of {len(rows):,} records[/dim]\n")
    else:
        console.print(f"\n[dim]Found {len(rows)} record(s)[/dim]\n")


def display_json(data: Any, title: str):
    """Display a JSON document in a panel."""
    text = json.dumps(data, indent=2, default=str)
    console.print()
    console.print(Panel(
        Syntax(text, "json", word_wrap=True),
        title=title,
        border_style="blue",
        box=box.ROUNDED,
    ))


def display_explain_plans(plans: List[Dict[str, Any]]):
    """Display query plans as a table."""
    if not plans:
        console.print("\n[yellow]No explain plan available[/yellow]\n")
        return

    table = Table(title="Explain Plan", box=box.ROUNDED, header_style="bold cyan")
    for column in ("#", "SObject", "Operation", "Cardinality", "Relative Cost", "Fields", "Notes"):
        table.add_column(column)

    for idx, plan in enumerate(plans, 1):
        notes = '; '.join(n.get('description', '') for n in plan.get('notes') or [])
        table.add_row(
            str(idx),
            str(plan.get('sobjectType') or 'N/A'),
            str(plan.get('leadingOperationType') or 'N/A'),
            str(plan.get('cardinality', 'N/A')),
            str(plan.get('relativeCost', 'N/A')),
            ', '.join(plan.get('fields') or []),
            notes,
        )
    console.print()
    console.print(table)


def display_job_outcome(outcome: JobOutcome):
    """Display the final status of a Bulk API job."""
    state_style = "green" if outcome.state == 'JobComplete' else "red"
    lines = [
        f"[cyan]{'Job Id':24}[/cyan] {outcome.job_id}",
        f"[cyan]{'State':24}[/cyan] [{state_style}]{outcome.state}[/{state_style}]",
        f"[cyan]{'Records Processed':24}[/cyan] {outcome.records_processed}",
        f"[cyan]{'Records Failed':24}[/cyan] {outcome.records_failed}",
        f"[cyan]{'Processing Time (ms)':24}[/cyan] {outcome.total_processing_time or 'N/A'}",
    ]
    if outcome.results_fetched:
        lines.append(f"[cyan]{'Successful Rows':24}[/cyan] {len(outcome.accepted)}")
        lines.append(f"[cyan]{'Failed Rows':24}[/cyan] {len(outcome.rejected)}")

    console.print()
    console.print(Panel(
        "\n".join(lines),
        title="Final Job Status",
        border_style=state_style,
        box=box.ROUNDED,
        padding=(1, 2)
    ))
    for note in outcome.diagnostics:
        display_warning(note)


def display_apex_result(result: Dict[str, Any]):
    """Display the result of an anonymous Apex execution."""
    if not result.get('compiled'):
        display_error(
            f"Compile problem at line {result.get('line')}, column {result.get('column')}: "
            f"{result.get('compileProblem')}"
        )
    elif not result.get('success'):
        display_error(f"{result.get('exceptionMessage')}\n{result.get('exceptionStackTrace') or ''}")
    else:
        display_success("Apex executed successfully")
    display_json(result, "Apex Execution Result")


def display_menu(title: str, options: List[str]):
    """
    Display a menu with options.

    Args:
        title: Menu title
        options: List of menu options
    """
    console.print(f"\n[bold cyan]{title}[/bold cyan]")
    for idx, option in enumerate(options, 1):
        console.print(f"  [yellow]{idx}.[/yellow] {option}")
    console.print()


def display_error(message: str):
    """Display an error message."""
    console.print(f"\n[bold red]Error:[/bold red] {escape(message)}\n")


def display_success(message: str):
    """Display a success message."""
    console.print(f"\n[bold green]✓[/bold green] {escape(message)}\n")


def display_info(message: str):
    """Display an info message."""
    console.print(f"\n[cyan]ℹ[/cyan] {escape(message)}\n")


def display_warning(message: str):
    """Display a warning message."""
    console.print(f"\n[yellow]⚠[/yellow] {escape(message)}\n")
