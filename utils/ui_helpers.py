import os
import json
from typing import List, Any
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable that controls CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def _print_rows(title: str, columns: List[str], rows: List[List[Any]], empty_message: str) -> None:
    """Print rows as 'a - b - c' lines, a JSON array of objects, or a rich table."""
    mode = get_output_mode()

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        payload = [dict(zip(columns, row)) for row in rows]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column.replace("_", " ").title())
        for row in rows:
            table.add_row(*["" if value is None else str(value) for value in row])
        _console.print(table)
    else:
        for row in rows:
            print(" - ".join("" if value is None else str(value) for value in row))

def print_book_list(books: List[Any]) -> None:
    rows = [[b.id, b.name, b.type.value] for b in books]
    _print_rows("📚 Books", ["id", "name", "type"], rows, "No books in library.")

def print_user_list(users: List[Any]) -> None:
    rows = [[u.id, u.name, u.age] for u in users]
    _print_rows("👤 Users", ["id", "name", "age"], rows, "No users registered.")

def print_book_stats(stats: List[Any]) -> None:
    rows = [[s.type.value, s.count] for s in stats]
    _print_rows("📊 Books by type", ["type", "count"], rows, "No statistics available.")

def print_loan_histories(views: List[Any]) -> None:
    rows = [[v.name, h.book_name, "RETURNED" if h.is_return else "LOANED"]
            for v in views for h in v.books]
    _print_rows("📖 Loan history", ["user", "book", "status"], rows, "No loans recorded.")

def print_loaned_count(count: int) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps({"loaned": count}))
    elif mode == "rich":
        _console.print(Panel.fit(f"[bold]Books on loan:[/] {count}", title="📖 Loans", border_style="blue"))
    else:
        print(f"Books on loan: {count}")
