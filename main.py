import logging
import os
import subprocess
import sys
import webbrowser
from functools import wraps
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import settings
from libcatalog.book import Book
from libcatalog.errors import LibraryError, StorageError
from libcatalog.library import Library
from libcatalog.user import User
from utils.ui_helpers import (
    print_book_list,
    print_loan_list,
    print_stats_result,
    print_user_list,
    set_output_mode,
)
from utils.validators import DateValidator, TextValidator

APP_NAME = "Library Catalog"

logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

console = Console()


# Single Library instance per data file
class LibraryManager:
    _instance: Optional[Library] = None
    _data_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Library:
        """Get the Library for the configured data file, loading its snapshot on first use."""
        current = settings.data_file
        if cls._instance is None or current != cls._data_file_snapshot:
            lib = Library(data_file=current)
            lib.load_data()
            cls._instance = lib
            cls._data_file_snapshot = current
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._data_file_snapshot = None


def persist(func):
    """Save the snapshot after a command that changes the catalog."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        result = func(*args, **kwargs)
        try:
            LibraryManager.get_instance().save_data()
        except StorageError as e:
            print(f"Error: {e}")
        return result
    return wrapper


# --- Typer CLI application ---
app = typer.Typer(help="Library catalog CLI")

@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global options; without a command the interactive menu starts."""
    if output:
        set_output_mode(output)
    if ctx.invoked_subcommand is None:
        run_menu(LibraryManager.get_instance())

@app.command("add-book")
@persist
def cli_add_book(
    title: str,
    author: str,
    genre: str = typer.Option("", "--genre", "-g", help="Genre of the book"),
):
    """Add a book to the catalog."""
    lib = LibraryManager.get_instance()
    try:
        book = lib.add_book(Book(TextValidator.require(title, "Title"), TextValidator.require(author, "Author"), genre))
    except LibraryError as e:
        print(f"Error: {e}")
        return
    print(f"Added: {book.title} by {book.author}")

@app.command("add-user")
@persist
def cli_add_user(name: str):
    """Register a borrower."""
    lib = LibraryManager.get_instance()
    try:
        user = lib.add_user(User(TextValidator.require(name, "Name")))
    except LibraryError as e:
        print(f"Error: {e}")
        return
    print(f"Registered user: {user.name}")

@app.command("list")
def cli_list(
    sort: bool = typer.Option(False, "--sort", "-s", help="Sort by title"),
    available: Optional[bool] = typer.Option(None, "--available/--borrowed", help="Only available or only borrowed books"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Only books of this genre"),
):
    """List books, optionally filtered and sorted."""
    lib = LibraryManager.get_instance()
    books = lib.sort_by_title() if sort else lib.list_books()
    if available is not None:
        wanted = {id(b) for b in lib.filter_by_availability(available)}
        books = [b for b in books if id(b) in wanted]
    if genre is not None:
        wanted = {id(b) for b in lib.filter_by_genre(genre)}
        books = [b for b in books if id(b) in wanted]
    print_book_list(books)

@app.command("users")
def cli_users():
    """List registered users."""
    print_user_list(LibraryManager.get_instance().list_users())

@app.command("find")
def cli_find(title: str):
    """Find a book by title and show its details."""
    book = LibraryManager.get_instance().find_book(title)
    if book:
        print("Book Found")
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")
        print(f"Genre: {book.genre or '-'}")
        print(f"Status: {book.status}")
    else:
        print(f"Book '{title}' not found.")

@app.command("search")
def cli_search(
    query: str = typer.Argument(..., help="Text to look for"),
    by: str = typer.Option("title", "--by", "-b", help="Field to search: title | author"),
):
    """Case-insensitive substring search by title or author."""
    lib = LibraryManager.get_instance()
    if by.lower() == "author":
        books = lib.search_by_author(query)
    elif by.lower() == "title":
        books = lib.search_by_title(query)
    else:
        print(f"Unsupported search field: {by}. Use title or author.")
        return
    print_book_list(books, empty_message=f"No books match '{query}'.")

@app.command("borrow")
@persist
def cli_borrow(
    user: str,
    title: str,
    due: Optional[str] = typer.Option(None, "--due", "-d", help="Due date (YYYY-MM-DD)"),
):
    """Lend a book to a user."""
    lib = LibraryManager.get_instance()
    try:
        loan = lib.borrow_book(user, title, DateValidator.parse(due))
    except LibraryError as e:
        print(f"Error: {e}")
        return
    print(f"{user} borrowed {loan.book.title} (due {loan.due_date.isoformat()})")

@app.command("return")
@persist
def cli_return(user: str, title: str):
    """Return a borrowed book."""
    lib = LibraryManager.get_instance()
    try:
        loan = lib.return_book(user, title)
    except LibraryError as e:
        print(f"Return failed: {e}")
        return
    print(f"{user} returned {loan.book.title}")

@app.command("remove-book")
@persist
def cli_remove_book(title: str):
    """Remove an available book."""
    lib = LibraryManager.get_instance()
    try:
        book = lib.remove_book(title)
    except LibraryError as e:
        print(f"Error: {e}")
        return
    print(f"Book '{book.title}' has been removed.")

@app.command("remove-user")
@persist
def cli_remove_user(name: str):
    """Remove a user without open loans."""
    lib = LibraryManager.get_instance()
    try:
        user = lib.remove_user(name)
    except LibraryError as e:
        print(f"Error: {e}")
        return
    print(f"User '{user.name}' has been removed.")

@app.command("history")
def cli_history(name: str):
    """Show a user's open and returned loans."""
    user = LibraryManager.get_instance().find_user(name)
    if user is None:
        print(f"User '{name}' not found.")
        return
    rows = [(user.name, loan) for loan in user.active_loans + user.history]
    print_loan_list(rows, empty_message=f"{user.name} has no loans.")

@app.command("overdue")
def cli_overdue():
    """List every overdue loan."""
    rows = [(user.name, loan) for user, loan in LibraryManager.get_instance().overdue_loans()]
    print_loan_list(rows, empty_message="No overdue loans.")

@app.command("stats")
def cli_stats():
    """Show catalog statistics."""
    print_stats_result(LibraryManager.get_instance().get_statistics())

@app.command("export")
def cli_export(file: Optional[str] = typer.Option(None, "--file", "-f", help="CSV file to write")):
    """Export the catalog to CSV."""
    lib = LibraryManager.get_instance()
    path = file or settings.export_file
    try:
        count = lib.export_csv(path)
    except StorageError as e:
        print(f"Error: {e}")
        return
    print(f"Exported {count} books to {path}")

@app.command("import")
@persist
def cli_import(file: str):
    """Import books from a CSV file (header row first)."""
    lib = LibraryManager.get_instance()
    try:
        result = lib.import_csv(file)
    except StorageError as e:
        print(f"Error: {e}")
        return
    print(f"Imported {result.imported} books ({result.skipped} malformed lines skipped)")

@app.command("save")
def cli_save():
    """Write the catalog snapshot."""
    try:
        LibraryManager.get_instance().save_data()
    except StorageError as e:
        print(f"Error: {e}")
        return
    print("Data saved successfully.")

@app.command("serve")
def cli_serve(timeout: int = typer.Option(0, "--timeout", help="Seconds to run before stopping (0 = no timeout)")):
    """Start the HTTP API with Uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    try:
        webbrowser.open(url)
    except Exception:
        pass
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        if timeout and timeout > 0:
            start_new_session = os.name != "nt"
            proc = subprocess.Popen(args, start_new_session=start_new_session)
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
        else:
            subprocess.run(args)
    except FileNotFoundError:
        print("Error: uvicorn could not be started. Make sure it is installed.")


# --- Interactive menu ---
def _ask(prompt: str) -> str:
    return Prompt.ask(prompt, default="").strip()

def add_book_prompt(lib: Library) -> None:
    title = _ask("Enter book title")
    author = _ask("Enter author")
    genre = _ask("Enter genre (optional)")
    if not (TextValidator.validate_title(title) and TextValidator.validate_author(author)):
        console.print("[bold red]Title and author are required.[/]")
        return
    book = lib.add_book(Book(title, author, genre))
    console.print(f"[green]Added[/] [bold]{escape(book.title)}[/] by {escape(book.author)}")

def add_user_prompt(lib: Library) -> None:
    name = _ask("Enter user name")
    if not TextValidator.validate_name(name):
        console.print("[bold red]Name is required.[/]")
        return
    lib.add_user(User(name))
    console.print(f"[green]Registered[/] [bold]{escape(name)}[/]")

def display_books(lib: Library) -> None:
    print_book_list(lib.list_books())

def borrow_prompt(lib: Library) -> None:
    name = _ask("Enter user name")
    title = _ask("Enter book title")
    try:
        due = DateValidator.parse(_ask(f"Due date YYYY-MM-DD (Enter for {settings.loan_days} days)"))
        loan = lib.borrow_book(name, title, due)
    except LibraryError as e:
        console.print(f"[bold yellow]{escape(str(e))}[/]")
        return
    console.print(f"[green]{escape(name)} borrowed {escape(loan.book.title)}[/] (due {loan.due_date.isoformat()})")

def return_prompt(lib: Library) -> None:
    name = _ask("Enter user name")
    title = _ask("Enter book title")
    try:
        loan = lib.return_book(name, title)
    except LibraryError as e:
        console.print(f"[bold yellow]Return failed. {escape(str(e))}[/]")
        return
    console.print(f"[green]{escape(name)} returned {escape(loan.book.title)}[/]")

def search_prompt(lib: Library) -> None:
    field = Prompt.ask("Search by", choices=["title", "author"], default="title")
    query = _ask("Search text")
    books = lib.search_by_title(query) if field == "title" else lib.search_by_author(query)
    print_book_list(books, empty_message=f"No books match '{query}'.")

def filter_prompt(lib: Library) -> None:
    kind = Prompt.ask("Filter by", choices=["available", "borrowed", "genre"], default="available")
    if kind == "genre":
        books = lib.filter_by_genre(_ask("Genre"))
    else:
        books = lib.filter_by_availability(kind == "available")
    print_book_list(books, empty_message="No matching books.")

def sort_books(lib: Library) -> None:
    print_book_list(lib.sort_by_title())

def remove_book_prompt(lib: Library) -> None:
    title = _ask("Title of the book to remove")
    book = lib.find_book(title)
    if book is None:
        console.print(f"[yellow]Book '{escape(title)}' not found.[/]")
        return
    if not Confirm.ask(f"Remove '{escape(book.title)}'?", default=False):
        console.print("[blue]Cancelled.[/]")
        return
    try:
        lib.remove_book(title)
    except LibraryError as e:
        console.print(f"[bold yellow]{escape(str(e))}[/]")
        return
    console.print(f"[green]Removed[/] [bold]{escape(book.title)}[/]")

def remove_user_prompt(lib: Library) -> None:
    name = _ask("Name of the user to remove")
    try:
        user = lib.remove_user(name)
    except LibraryError as e:
        console.print(f"[bold yellow]{escape(str(e))}[/]")
        return
    console.print(f"[green]Removed[/] [bold]{escape(user.name)}[/]")

def show_users(lib: Library) -> None:
    print_user_list(lib.list_users())
    rows = [(u.name, loan) for u in lib.list_users() for loan in u.active_loans + u.history]
    if rows:
        print_loan_list(rows)

def show_overdue(lib: Library) -> None:
    rows = [(user.name, loan) for user, loan in lib.overdue_loans()]
    print_loan_list(rows, empty_message="No overdue loans.")

def export_prompt(lib: Library) -> None:
    path = _ask(f"CSV file (Enter for {settings.export_file})") or settings.export_file
    try:
        count = lib.export_csv(path)
    except StorageError as e:
        console.print(f"[bold red]{escape(str(e))}[/]")
        return
    console.print(f"[green]Exported {count} books to {escape(path)}[/]")

def import_prompt(lib: Library) -> None:
    path = _ask("CSV file to import")
    try:
        result = lib.import_csv(path)
    except StorageError as e:
        console.print(f"[bold red]{escape(str(e))}[/]")
        return
    console.print(f"[green]Imported {result.imported} books[/] ({result.skipped} malformed lines skipped)")

def show_stats(lib: Library) -> None:
    print_stats_result(lib.get_statistics())

MENU_ITEMS = [
    ("1", "Add book", "➕", add_book_prompt),
    ("2", "Register user", "👤", add_user_prompt),
    ("3", "Display books", "📚", display_books),
    ("4", "Borrow book", "📖", borrow_prompt),
    ("5", "Return book", "↩️", return_prompt),
    ("6", "Search books", "🔎", search_prompt),
    ("7", "Filter books", "🧮", filter_prompt),
    ("8", "Sort books by title", "🔤", sort_books),
    ("9", "Remove book", "🗑️", remove_book_prompt),
    ("10", "Remove user", "🚫", remove_user_prompt),
    ("11", "Users and loans", "📋", show_users),
    ("12", "Overdue loans", "⏰", show_overdue),
    ("13", "Export to CSV", "📤", export_prompt),
    ("14", "Import from CSV", "📥", import_prompt),
    ("15", "Statistics", "📊", show_stats),
]

def run_menu(lib: Library) -> None:
    """Numbered interactive menu. Leaving it always saves the catalog."""
    def render_menu() -> None:
        table = Table.grid(padding=(0, 2))
        table.add_column(justify="right", style="bold cyan", width=4)
        table.add_column(justify="left", style="white")
        for key, label, icon, _ in MENU_ITEMS:
            table.add_row(f"[reverse]{key}[/]", f"{icon} {label}")
        table.add_row("[reverse]0[/]", "🚪 Save & Exit")
        console.print(Panel(table, title=APP_NAME, border_style="cyan", box=box.HEAVY, padding=(1, 2)))

    actions = {key: action for key, _, _, action in MENU_ITEMS}
    try:
        while True:
            render_menu()
            choice = Prompt.ask("Choose an option", choices=list(actions) + ["0"], default="3").strip()
            if choice == "0":
                break
            actions[choice](lib)
            print()
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        try:
            lib.save_data()
            console.print("[green]Data saved successfully.[/]")
        except StorageError as e:
            console.print(f"[bold red]Error saving data: {escape(str(e))}[/]")
        console.print("Exiting...")

if __name__ == "__main__":
    app()
