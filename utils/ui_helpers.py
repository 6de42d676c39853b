import os
import json
from datetime import date
from typing import List, Any, Dict, Optional, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def print_book_list(books: List[Any], empty_message: str = "No books available.", title: str = "📚 Books") -> None:
    """Print books in the current output mode.
    - plain: 'Title by Author [Genre] (Status)' lines, or the empty message
    - json: JSON array of title, author, genre, status
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print(empty_message)
        return

    if mode == "json":
        payload = [
            {"title": b.title, "author": b.author, "genre": b.genre, "status": b.status}
            for b in books
        ]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="magenta")
        table.add_column("Status", no_wrap=True)
        for b in books:
            status = "[green]Available[/]" if b.available else "[yellow]Borrowed[/]"
            table.add_row(b.title, b.author, b.genre, status)
        _console.print(table)
    else:
        for b in books:
            genre = f" [{b.genre}]" if b.genre else ""
            print(f"{b.title} by {b.author}{genre} ({b.status})")

def print_user_list(users: List[Any]) -> None:
    mode = get_output_mode()

    if not users:
        print("No users registered.")
        return

    if mode == "json":
        payload = [
            {
                "name": u.name,
                "borrowed": [b.title for b in u.borrowed_books],
                "returned": len(u.history),
            }
            for u in users
        ]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👤 Users", show_lines=True, header_style="bold cyan")
        table.add_column("Name", style="white")
        table.add_column("Borrowed", style="yellow")
        table.add_column("Returned", justify="right")
        for u in users:
            table.add_row(u.name, ", ".join(b.title for b in u.borrowed_books) or "-", str(len(u.history)))
        _console.print(table)
    else:
        for u in users:
            print(f"User: {u.name} | Borrowed Books: {len(u.active_loans)}")

def print_loan_list(rows: Sequence[Tuple[str, Any]], now: Optional[date] = None, empty_message: str = "No loans.") -> None:
    """Print (user name, loan) pairs with their derived status."""
    mode = get_output_mode()
    now = now or date.today()

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        payload = [dict(loan.to_dict(now), user=name) for name, loan in rows]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📖 Loans", show_lines=True, header_style="bold cyan")
        table.add_column("User", style="white")
        table.add_column("Title", style="white")
        table.add_column("Due", no_wrap=True)
        table.add_column("Returned", no_wrap=True)
        table.add_column("Status")
        for name, loan in rows:
            returned = loan.returned_on.isoformat() if loan.returned_on else "-"
            table.add_row(name, loan.book.title, loan.due_date.isoformat(), returned, loan.status(now))
        _console.print(table)
    else:
        for name, loan in rows:
            returned = f", returned {loan.returned_on.isoformat()}" if loan.returned_on else ""
            print(f"{name}: {loan.book.title} (due {loan.due_date.isoformat()}{returned}) - {loan.status(now)}")

def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode.
    - plain: one 'Label: value' line per metric
    - json: JSON object
    - rich: Panel with the main metrics
    """
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = [
        ("total_books", "Total Books"),
        ("available_books", "Available Books"),
        ("borrowed_books", "Borrowed Books"),
        ("unique_authors", "Unique Authors"),
        ("total_users", "Total Users"),
        ("active_loans", "Active Loans"),
    ]

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels:
            print(f"{label}: {stats.get(key, 0)}")
