#!/usr/bin/env python3
"""
tidysql Interactive Explorer

A command-line console to browse a database through lazy relations and
see the SQL they compile to.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from tidysql import (
    ExecutionError,
    ResultTable,
    SchemaError,
    UnsupportedOperationError,
    connect,
)
from tidysql.db import Connection


console = Console()

_last_sql: str | None = None


# -----------------------------
# Display Functions
# -----------------------------


def show_header(conn: Connection):
    """Display the application header."""
    header = Text()
    header.append("tidysql", style="bold bright_cyan")
    header.append(f" - {conn.backend.name} ({conn.dialect.name} dialect)", style="dim")

    console.print()
    console.print(Panel(header, box=box.DOUBLE, border_style="bright_blue", padding=(0, 2)))
    console.print()


def show_help():
    """Display help information."""
    help_text = Text()
    help_text.append("Available Commands:\n", style="bold cyan")
    help_text.append("  tables                ", style="green")
    help_text.append("- List tables\n")
    help_text.append("  schema <table>        ", style="green")
    help_text.append("- Show the columns of a table\n")
    help_text.append("  preview <table> [n]   ", style="green")
    help_text.append("- Show the first n rows (default 10)\n")
    help_text.append("  count <table> <col>   ", style="green")
    help_text.append("- Count rows per value of a column\n")
    help_text.append("  sql                   ", style="green")
    help_text.append("- Show the SQL of the last query\n")
    help_text.append("  exit / quit           ", style="green")
    help_text.append("- Exit the application\n")

    console.print(Panel(help_text, title="[bold]Help[/bold]", border_style="dim"))


def show_result(result: ResultTable, title: str):
    """Display a materialized result."""
    table = Table(
        title=f"[bold cyan]{title}[/bold cyan]",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
    )
    for column in result.columns:
        table.add_column(column)
    for row in result.rows:
        table.add_row(*["NULL" if v is None else str(v) for v in row])

    console.print(table)
    console.print(f"[dim]{result.row_count} row(s)[/dim]")
    console.print()


def show_sql():
    if _last_sql is None:
        console.print("[yellow]No query has been run yet[/yellow]")
        return
    console.print(Panel(
        Syntax(_last_sql, "sql", theme="monokai", word_wrap=True),
        title="[bold]SQL[/bold]",
        border_style="cyan",
    ))


# -----------------------------
# Commands
# -----------------------------


def run_relation(relation, title: str):
    global _last_sql
    _last_sql = relation.show_query()
    show_result(relation.collect(), title)


def cmd_tables(conn: Connection, args: list[str]):
    table = Table(box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Table", style="cyan")
    for name in conn.list_tables():
        table.add_row(name)
    console.print(table)


def cmd_schema(conn: Connection, args: list[str]):
    if len(args) != 1:
        console.print("[yellow]Usage: schema <table>[/yellow]")
        return
    relation = conn.table(args[0])
    table = Table(title=f"[bold cyan]{args[0]}[/bold cyan]", box=box.ROUNDED)
    table.add_column("#", style="dim")
    table.add_column("Column", style="green")
    for i, column in enumerate(relation.columns, 1):
        table.add_row(str(i), column)
    console.print(table)


def cmd_preview(conn: Connection, args: list[str]):
    if not args or len(args) > 2:
        console.print("[yellow]Usage: preview <table> [n][/yellow]")
        return
    n = int(args[1]) if len(args) == 2 else 10
    run_relation(conn.table(args[0]).head(n), f"{args[0]} (first {n})")


def cmd_count(conn: Connection, args: list[str]):
    if len(args) != 2:
        console.print("[yellow]Usage: count <table> <column>[/yellow]")
        return
    name, column = args
    run_relation(conn.table(name).count(column, sort=True), f"{name} by {column}")


COMMANDS = {
    "tables": cmd_tables,
    "schema": cmd_schema,
    "preview": cmd_preview,
    "count": cmd_count,
}


# -----------------------------
# Main Loop
# -----------------------------


def main():
    """Main entry point."""
    with connect() as conn:
        show_header(conn)
        show_help()

        while True:
            try:
                line = Prompt.ask("[bold bright_cyan]tidysql[/bold bright_cyan]").strip()
            except (KeyboardInterrupt, EOFError):
                console.print("\n[dim]Goodbye![/dim]")
                break

            if not line:
                continue
            command, *args = line.split()
            command = command.lower()

            if command in ("exit", "quit", "q"):
                console.print("[dim]Goodbye![/dim]")
                break
            if command == "help":
                show_help()
                continue
            if command == "sql":
                show_sql()
                continue

            handler = COMMANDS.get(command)
            if handler is None:
                console.print(f"[red]Unknown command '{command}'. Type 'help'.[/red]")
                continue

            try:
                handler(conn, args)
            except SchemaError as e:
                console.print(f"[red]Schema error:[/red] {e}")
            except UnsupportedOperationError as e:
                console.print(f"[red]Unsupported:[/red] {e}")
            except ExecutionError as e:
                console.print(f"[red]Execution failed:[/red] {e}")
            except ValueError as e:
                console.print(f"[red]Error:[/red] {e}")


if __name__ == "__main__":
    main()
