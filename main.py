import os
import subprocess
import sys
from functools import wraps
from typing import Optional

import typer
from rich.console import Console

from config import settings
from database import Database, initialize_database
from errors import LibraryError
from library import BookService, UserService
from utils.ui_helpers import (
    set_output_mode,
    print_book_list,
    print_book_stats,
    print_loan_histories,
    print_loaned_count,
    print_user_list,
)

APP_NAME = "Library CLI"

console = Console()

app = typer.Typer(help=APP_NAME)


def _database(ctx: typer.Context) -> Database:
    return ctx.obj["database"]

def handle_library_errors(func):
    """Print domain errors as 'Error: ...' and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibraryError as e:
            print(f"Error: {e}")
            raise typer.Exit(code=1)
    return wrapper


@app.callback()
def _global_options(
    ctx: typer.Context,
    db: str = typer.Option(settings.database_file, "--db", help="SQLite database file"),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global options (database file, output mode)."""
    if output:
        set_output_mode(output)
    ctx.obj = {"database": initialize_database(db)}

# --- Books ---
@app.command("add-book")
@handle_library_errors
def cli_add_book(ctx: typer.Context, name: str, type: str):
    """Register a book under a type (COMPUTER, ECONOMY, SOCIETY, LANGUAGE, SCIENCE)."""
    book = BookService.from_database(_database(ctx)).save_book(name, type)
    print(f"Book added: {book.name} ({book.type.value})")

@app.command("books")
@handle_library_errors
def cli_books(ctx: typer.Context):
    """List every book in the catalog."""
    print_book_list(BookService.from_database(_database(ctx)).get_books())

@app.command("loan")
@handle_library_errors
def cli_loan(ctx: typer.Context, user_name: str, book_name: str):
    """Loan a book to a user."""
    BookService.from_database(_database(ctx)).loan_book(user_name, book_name)
    print(f"{book_name} loaned to {user_name}.")

@app.command("return")
@handle_library_errors
def cli_return(ctx: typer.Context, user_name: str, book_name: str):
    """Record that a user returned a book."""
    BookService.from_database(_database(ctx)).return_book(user_name, book_name)
    print(f"{book_name} returned by {user_name}.")

@app.command("loaned")
@handle_library_errors
def cli_loaned(ctx: typer.Context):
    """Show how many books are currently on loan."""
    print_loaned_count(BookService.from_database(_database(ctx)).count_loaned_book())

@app.command("stats")
@handle_library_errors
def cli_stats(ctx: typer.Context):
    """Show the number of books per type."""
    print_book_stats(BookService.from_database(_database(ctx)).get_book_statistics())

# --- Users ---
@app.command("add-user")
@handle_library_errors
def cli_add_user(ctx: typer.Context, name: str,
                 age: Optional[int] = typer.Option(None, "--age", help="Age of the user")):
    """Register a user."""
    user = UserService.from_database(_database(ctx)).save_user(name, age)
    print(f"User added: {user.name}")

@app.command("users")
@handle_library_errors
def cli_users(ctx: typer.Context):
    """List registered users."""
    print_user_list(UserService.from_database(_database(ctx)).get_users())

@app.command("history")
@handle_library_errors
def cli_history(ctx: typer.Context):
    """Show every user's loan history."""
    print_loan_histories(UserService.from_database(_database(ctx)).get_user_loan_histories())

@app.command("serve")
def cli_serve(ctx: typer.Context):
    """Start the HTTP API with Uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    env = dict(os.environ, LIBRARY_DB_FILE=_database(ctx).path)
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, env=env)
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped.[/]")


if __name__ == "__main__":
    app()
