import json

import pytest
from typer.testing import CliRunner
from unittest.mock import patch

from main import app
from utils.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture
def db_args(tmp_path, monkeypatch):
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    return ["--db", str(tmp_path / "cli.db")]


def test_books_empty(db_args):
    result = runner.invoke(app, db_args + ["books"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout

def test_add_book_and_list(db_args):
    result = runner.invoke(app, db_args + ["add-book", "Alice in Wonderland", "computer"])
    assert result.exit_code == 0
    assert "Book added: Alice in Wonderland (COMPUTER)" in result.stdout

    result = runner.invoke(app, db_args + ["books"])
    assert "1 - Alice in Wonderland - COMPUTER" in result.stdout

def test_add_book_unknown_type(db_args):
    result = runner.invoke(app, db_args + ["add-book", "A", "FANTASY"])
    assert result.exit_code == 1
    assert "Error: Unknown book type" in result.stdout

def test_loan_conflict_and_return(db_args):
    runner.invoke(app, db_args + ["add-book", "X", "SCIENCE"])
    runner.invoke(app, db_args + ["add-user", "Jin", "--age", "26"])

    result = runner.invoke(app, db_args + ["loan", "Jin", "X"])
    assert result.exit_code == 0
    assert "X loaned to Jin." in result.stdout

    result = runner.invoke(app, db_args + ["loan", "Jin", "X"])
    assert result.exit_code == 1
    assert "Error: 이미 대출되어 있는 책입니다" in result.stdout

    result = runner.invoke(app, db_args + ["loaned"])
    assert "Books on loan: 1" in result.stdout

    result = runner.invoke(app, db_args + ["return", "Jin", "X"])
    assert result.exit_code == 0

    result = runner.invoke(app, db_args + ["history"])
    assert "Jin - X - RETURNED" in result.stdout

def test_stats_json_output(db_args):
    runner.invoke(app, db_args + ["add-book", "A", "COMPUTER"])
    runner.invoke(app, db_args + ["add-book", "B", "SCIENCE"])
    runner.invoke(app, db_args + ["add-book", "C", "COMPUTER"])

    result = runner.invoke(app, db_args + ["--output", "json", "stats"])
    assert result.exit_code == 0
    assert json.loads(result.stdout.strip().splitlines()[-1]) == [
        {"type": "COMPUTER", "count": 2},
        {"type": "SCIENCE", "count": 1},
    ]

def test_users_listing(db_args):
    runner.invoke(app, db_args + ["add-user", "Jin"])
    result = runner.invoke(app, db_args + ["users"])
    assert "1 - Jin - " in result.stdout

@patch("subprocess.run")
def test_serve_command(mock_subprocess_run, db_args):
    result = runner.invoke(app, db_args + ["serve"])
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    mock_subprocess_run.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args
    assert mock_subprocess_run.call_args.kwargs["env"]["LIBRARY_DB_FILE"].endswith("cli.db")
