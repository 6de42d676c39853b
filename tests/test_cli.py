import json
from datetime import date
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from libcatalog.book import Book
from libcatalog.library import Library
from libcatalog.user import User
from main import LibraryManager, app
from utils.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture
def cli_lib(data_file, monkeypatch):
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    LibraryManager.reset()
    yield LibraryManager.get_instance()
    LibraryManager.reset()

def _reload(data_file):
    lib = Library(data_file=data_file)
    lib.load_data()
    return lib

def test_list_no_books(cli_lib):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books available." in result.stdout

def test_add_book_persists(cli_lib, data_file):
    result = runner.invoke(app, ["add-book", "Dune", "Frank Herbert", "--genre", "Fiction"])
    assert result.exit_code == 0
    assert "Added: Dune by Frank Herbert" in result.stdout

    saved = _reload(data_file)
    assert saved.find_book("dune").genre == "Fiction"

def test_add_book_rejects_blank_title(cli_lib):
    result = runner.invoke(app, ["add-book", "  ", "Someone"])
    assert result.exit_code == 0
    assert "Title cannot be empty." in result.stdout
    assert cli_lib.count_books() == 0

def test_borrow_and_return(cli_lib, data_file):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    cli_lib.add_user(User("Alice"))

    result = runner.invoke(app, ["borrow", "Alice", "Dune", "--due", "2099-01-01"])
    assert result.exit_code == 0
    assert "Alice borrowed Dune (due 2099-01-01)" in result.stdout
    assert _reload(data_file).find_book("Dune").available is False

    result = runner.invoke(app, ["borrow", "Alice", "Dune"])
    assert "Book 'Dune' is currently borrowed." in result.stdout

    result = runner.invoke(app, ["return", "alice", "dune"])
    assert result.exit_code == 0
    assert "alice returned Dune" in result.stdout
    saved = _reload(data_file)
    assert saved.find_book("Dune").available is True
    assert len(saved.find_user("Alice").history) == 1

def test_borrow_with_bad_date(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    cli_lib.add_user(User("Alice"))
    result = runner.invoke(app, ["borrow", "Alice", "Dune", "--due", "tomorrow"])
    assert result.exit_code == 0
    assert "Invalid date 'tomorrow'" in result.stdout
    assert cli_lib.find_book("Dune").available is True

def test_return_failed(cli_lib):
    result = runner.invoke(app, ["return", "Nobody", "Dune"])
    assert result.exit_code == 0
    assert "Return failed: User 'Nobody' not found." in result.stdout

def test_remove_book_on_loan(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    cli_lib.add_user(User("Alice"))
    cli_lib.borrow_book("Alice", "Dune", date(2099, 1, 1))

    result = runner.invoke(app, ["remove-book", "Dune"])
    assert "is on loan and cannot be removed" in result.stdout
    assert cli_lib.find_book("Dune") is not None

    result = runner.invoke(app, ["remove-user", "Alice"])
    assert "still has 1 borrowed book(s)" in result.stdout

def test_remove_book_success(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    result = runner.invoke(app, ["remove-book", "dune"])
    assert "Book 'Dune' has been removed." in result.stdout
    assert cli_lib.count_books() == 0

def test_find_book(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert", "Fiction"))
    result = runner.invoke(app, ["find", "DUNE"])
    assert "Book Found" in result.stdout
    assert "Author: Frank Herbert" in result.stdout
    assert "Status: Available" in result.stdout

    result = runner.invoke(app, ["find", "Emma"])
    assert "Book 'Emma' not found." in result.stdout

def test_search_and_sorted_list(cli_lib):
    cli_lib.add_book(Book("Foundation", "Isaac Asimov"))
    cli_lib.add_book(Book("Dune", "Frank Herbert"))

    result = runner.invoke(app, ["search", "du"])
    assert "Dune by Frank Herbert (Available)" in result.stdout
    assert "Foundation" not in result.stdout

    result = runner.invoke(app, ["search", "asimov", "--by", "author"])
    assert "Foundation by Isaac Asimov" in result.stdout

    result = runner.invoke(app, ["search", "zzz"])
    assert "No books match 'zzz'." in result.stdout

    result = runner.invoke(app, ["list", "--sort"])
    lines = [line for line in result.stdout.splitlines() if " by " in line]
    assert lines == ["Dune by Frank Herbert (Available)", "Foundation by Isaac Asimov (Available)"]

def test_list_json_output(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert", "Fiction"))
    result = runner.invoke(app, ["--output", "json", "list", "--available"])
    assert result.exit_code == 0
    assert json.loads(result.stdout.strip().splitlines()[-1]) == [
        {"title": "Dune", "author": "Frank Herbert", "genre": "Fiction", "status": "Available"}
    ]

def test_stats(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    cli_lib.add_user(User("Alice"))
    result = runner.invoke(app, ["stats"])
    assert "Total Books: 1" in result.stdout
    assert "Total Users: 1" in result.stdout

def test_export_and_import(cli_lib, tmp_path):
    cli_lib.add_book(Book("Dune", "Frank Herbert", "Fiction"))
    path = str(tmp_path / "out.csv")
    result = runner.invoke(app, ["export", "--file", path])
    assert f"Exported 1 books to {path}" in result.stdout

    result = runner.invoke(app, ["import", path])
    assert "Imported 1 books (0 malformed lines skipped)" in result.stdout
    assert cli_lib.count_books() == 2

def test_history_and_overdue(cli_lib):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    cli_lib.add_user(User("Alice"))
    cli_lib.borrow_book("Alice", "Dune", date(2000, 1, 1))

    result = runner.invoke(app, ["history", "Alice"])
    assert "Alice: Dune (due 2000-01-01) - Overdue" in result.stdout

    result = runner.invoke(app, ["overdue"])
    assert "Alice: Dune" in result.stdout

def test_menu_exit_saves(cli_lib, data_file):
    cli_lib.add_book(Book("Dune", "Frank Herbert"))
    result = runner.invoke(app, [], input="3\n0\n")
    assert result.exit_code == 0
    assert "Dune by Frank Herbert (Available)" in result.stdout
    assert "Data saved successfully." in result.stdout
    assert _reload(data_file).count_books() == 1

def test_menu_add_and_borrow(cli_lib, data_file):
    keys = "\n".join([
        "1", "Dune", "Frank Herbert", "Fiction",
        "2", "Alice",
        "4", "Alice", "Dune", "2099-01-01",
        "0",
    ]) + "\n"
    result = runner.invoke(app, [], input=keys)
    assert result.exit_code == 0
    saved = _reload(data_file)
    assert saved.find_book("Dune").available is False
    assert saved.find_user("Alice").active_loans[0].due_date == date(2099, 1, 1)

@patch('subprocess.run')
@patch('webbrowser.open')
def test_serve_command(mock_webbrowser_open, mock_subprocess_run, cli_lib):
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    mock_webbrowser_open.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args

def test_menu_end_of_input_saves(cli_lib, data_file):
    result = runner.invoke(app, [], input="1\nDune\nFrank Herbert\nFiction\n")
    assert result.exit_code == 0
    assert "Data saved successfully." in result.stdout
    saved = _reload(data_file)
    assert saved.count_books() == 1
    assert saved.find_book("Dune").genre == "Fiction"
