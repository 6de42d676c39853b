from datetime import date, timedelta

import pytest

from config import settings
from libcatalog.book import Book
from libcatalog.errors import (
    BookNotFoundError,
    BookOnLoanError,
    BookUnavailableError,
    InvalidStateError,
    LoanNotFoundError,
    NotFoundError,
    UserHasLoansError,
    UserNotFoundError,
)
from libcatalog.user import User

DUE = date(2099, 1, 1)


@pytest.fixture
def stocked(lib):
    lib.add_book(Book("Dune", "Frank Herbert", "Fiction"))
    lib.add_book(Book("Foundation", "Isaac Asimov", "Fiction"))
    lib.add_book(Book("Cosmos", "Carl Sagan", "Science"))
    lib.add_user(User("Alice"))
    lib.add_user(User("Bob"))
    return lib

def test_add_list_and_find(lib):
    assert lib.list_books() == []

    book = lib.add_book(Book("Ulysses", "James Joyce"))
    assert lib.count_books() == 1
    for query in ("Ulysses", "ulysses", "ULYSSES"):
        assert lib.find_book(query) is book
    assert lib.find_book("Dubliners") is None

def test_find_user_case_insensitive(stocked):
    assert stocked.find_user("alice").name == "Alice"
    assert stocked.find_user("carol") is None
    assert stocked.count_users() == 2

def test_add_book_allows_duplicate_titles(lib):
    first = lib.add_book(Book("Dune", "Herbert"))
    lib.add_book(Book("Dune", "Someone Else"))
    assert lib.count_books() == 2
    assert lib.find_book("dune") is first

def test_borrow_and_return_scenario(stocked):
    loan = stocked.borrow_book("Alice", "Dune", DUE)
    dune = stocked.find_book("Dune")
    alice = stocked.find_user("Alice")
    assert loan.book is dune
    assert dune.available is False
    assert alice.active_loans == [loan]

    returned = stocked.return_book("alice", "dune")
    assert returned is loan
    assert dune.available is True
    assert alice.active_loans == []
    assert len(alice.history) == 1
    assert alice.history[0].status() == "Returned"

def test_borrow_defaults_due_date_to_loan_period(stocked):
    loan = stocked.borrow_book("Bob", "Cosmos")
    assert loan.due_date == date.today() + timedelta(days=settings.loan_days)

def test_borrow_unavailable_book_leaves_state_unchanged(stocked):
    stocked.borrow_book("Alice", "Dune", DUE)
    with pytest.raises(BookUnavailableError):
        stocked.borrow_book("Bob", "Dune", DUE)
    assert stocked.find_user("Bob").active_loans == []
    assert len(stocked.find_user("Alice").active_loans) == 1

def test_borrow_unknown_user_or_book(stocked):
    with pytest.raises(UserNotFoundError):
        stocked.borrow_book("Carol", "Dune", DUE)
    with pytest.raises(BookNotFoundError):
        stocked.borrow_book("Alice", "Neuromancer", DUE)
    assert stocked.find_book("Dune").available is True

def test_return_failures(stocked):
    with pytest.raises(UserNotFoundError):
        stocked.return_book("Carol", "Dune")
    with pytest.raises(LoanNotFoundError) as excinfo:
        stocked.return_book("Alice", "Dune")
    assert isinstance(excinfo.value, NotFoundError)

def test_return_only_closes_own_loan(stocked):
    stocked.borrow_book("Alice", "Dune", DUE)
    with pytest.raises(LoanNotFoundError):
        stocked.return_book("Bob", "Dune")
    assert stocked.find_book("Dune").available is False

def test_remove_book_while_borrowed_fails(stocked):
    stocked.borrow_book("Alice", "Dune", DUE)
    with pytest.raises(BookOnLoanError) as excinfo:
        stocked.remove_book("Dune")
    assert isinstance(excinfo.value, InvalidStateError)
    assert stocked.find_book("Dune").available is False
    assert stocked.count_books() == 3

def test_remove_book_removes_exactly_one(lib):
    first = lib.add_book(Book("Dune", "Herbert"))
    second = lib.add_book(Book("Dune", "Herbert"))
    assert lib.remove_book("DUNE") is first
    assert lib.list_books() == [second]
    lib.remove_book("Dune")
    with pytest.raises(BookNotFoundError):
        lib.remove_book("Dune")

def test_remove_user_requires_no_active_loans(stocked):
    stocked.borrow_book("Alice", "Dune", DUE)
    with pytest.raises(UserHasLoansError):
        stocked.remove_user("Alice")
    assert stocked.count_users() == 2

    stocked.return_book("Alice", "Dune")
    assert stocked.remove_user("alice").name == "Alice"
    assert stocked.find_user("Alice") is None
    with pytest.raises(UserNotFoundError):
        stocked.remove_user("Alice")

def test_search_by_title_substring(lib):
    lib.add_book(Book("Dune", "Frank Herbert"))
    lib.add_book(Book("Foundation", "Isaac Asimov"))
    assert [b.title for b in lib.search_by_title("du")] == ["Dune"]
    assert lib.search_by_title("xyz") == []

def test_search_by_author(stocked):
    assert [b.title for b in stocked.search_by_author("SAGAN")] == ["Cosmos"]
    assert [b.title for b in stocked.search_by_author("a")] == ["Dune", "Foundation", "Cosmos"]

def test_filters(stocked):
    stocked.borrow_book("Alice", "Foundation", DUE)
    assert [b.title for b in stocked.filter_by_availability(True)] == ["Dune", "Cosmos"]
    assert [b.title for b in stocked.filter_by_availability(False)] == ["Foundation"]
    assert [b.title for b in stocked.filter_by_genre("fiction")] == ["Dune", "Foundation"]
    assert stocked.filter_by_genre("Poetry") == []

def test_sort_by_title_is_stable_and_idempotent(lib):
    a1 = lib.add_book(Book("b", "first"))
    lib.add_book(Book("a", "x"))
    a2 = lib.add_book(Book("b", "second"))
    lib.add_book(Book("B", "upper"))

    once = lib.sort_by_title()
    assert [b.title for b in once] == ["B", "a", "b", "b"]
    assert once[2] is a1 and once[3] is a2

    lib.books = once
    assert lib.sort_by_title() == once
    # the catalog order itself is not changed by sorting
    assert lib.list_books() == once

def test_overdue_loans(stocked):
    stocked.borrow_book("Alice", "Dune", date(2020, 1, 1))
    stocked.borrow_book("Bob", "Cosmos", DUE)
    overdue = stocked.overdue_loans(now=date(2021, 1, 1))
    assert [(u.name, l.book.title) for u, l in overdue] == [("Alice", "Dune")]
    assert overdue[0][1].status(now=date(2021, 1, 1)) == "Overdue"

def test_statistics(stocked):
    stocked.borrow_book("Alice", "Dune", DUE)
    stats = stocked.get_statistics()
    assert stats == {
        "total_books": 3,
        "available_books": 2,
        "borrowed_books": 1,
        "unique_authors": 3,
        "total_users": 2,
        "active_loans": 1,
    }
