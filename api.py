import io
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from threading import RLock
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.responses import Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from config import settings
from libcatalog.book import Book
from libcatalog.csv_io import dump_books_csv
from libcatalog.errors import (
    BookUnavailableError,
    InvalidStateError,
    LibraryError,
    MalformedInputError,
    NotFoundError,
    StorageError,
)
from libcatalog.library import Library
from libcatalog.user import User
from utils.validators import TextValidator

logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

library = Library()
library_lock = RLock()


@asynccontextmanager
async def lifespan(app: FastAPI):
    library.load_data()
    try:
        yield
    finally:
        try:
            with library_lock:
                library.save_data()
        except StorageError as e:
            logger.error(f"Snapshot not saved on shutdown: {e}")

app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, lifespan=lifespan)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that checks the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


def _raise_http(exc: LibraryError):
    if isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, (BookUnavailableError, InvalidStateError)):
        status = 409
    elif isinstance(exc, MalformedInputError):
        status = 422
    else:
        status = 500
    raise HTTPException(status_code=status, detail=str(exc)) from exc


# --- Models ---
class BookModel(BaseModel):
    title: str
    author: str
    genre: str = ""
    status: str

    @staticmethod
    def from_book(book: Book) -> "BookModel":
        return BookModel(title=book.title, author=book.author, genre=book.genre, status=book.status)

class BookCreateModel(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    genre: str = ""

class UserModel(BaseModel):
    name: str
    borrowed: List[str]
    returned: int

    @staticmethod
    def from_user(user: User) -> "UserModel":
        return UserModel(name=user.name, borrowed=[b.title for b in user.borrowed_books], returned=len(user.history))

class UserCreateModel(BaseModel):
    name: str = Field(..., min_length=1)

class LoanModel(BaseModel):
    user: str
    title: str
    due_date: date
    returned_on: Optional[date] = None
    status: str

class BorrowRequest(BaseModel):
    user: str
    title: str
    due_date: Optional[date] = None

class ReturnRequest(BaseModel):
    user: str
    title: str

class StatsModel(BaseModel):
    total_books: int
    available_books: int
    borrowed_books: int
    unique_authors: int
    total_users: int
    active_loans: int


def _loan_model(user: User, loan) -> LoanModel:
    return LoanModel(
        user=user.name,
        title=loan.book.title,
        due_date=loan.due_date,
        returned_on=loan.returned_on,
        status=loan.status(),
    )


# --- Health ---
@app.get("/health")
def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_books": library.count_books(),
        "total_users": library.count_users(),
    }

# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(
    q: Optional[str] = Query(None, description="Title substring"),
    author: Optional[str] = Query(None, description="Author substring"),
    genre: Optional[str] = Query(None, description="Exact genre"),
    available: Optional[bool] = Query(None),
    sort: Optional[str] = Query(None, description="'title' to sort by title"),
):
    with library_lock:
        books = library.sort_by_title() if sort == "title" else library.list_books()
        for selected in (
            library.search_by_title(q) if q is not None else None,
            library.search_by_author(author) if author is not None else None,
            library.filter_by_genre(genre) if genre is not None else None,
            library.filter_by_availability(available) if available is not None else None,
        ):
            if selected is not None:
                keep = {id(b) for b in selected}
                books = [b for b in books if id(b) in keep]
        return [BookModel.from_book(b) for b in books]

@app.get("/books/{title}", response_model=BookModel)
def get_book(title: str):
    book = library.find_book(title)
    if not book:
        raise HTTPException(status_code=404, detail=f"Book '{title}' not found.")
    return BookModel.from_book(book)

@app.post("/books", response_model=BookModel, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel):
    try:
        title = TextValidator.require(payload.title, "Title")
        author = TextValidator.require(payload.author, "Author")
    except MalformedInputError as e:
        _raise_http(e)
    with library_lock:
        book = library.add_book(Book(title, author, payload.genre))
    return BookModel.from_book(book)

@app.delete("/books/{title}", dependencies=[Depends(get_api_key)])
def delete_book(title: str):
    with library_lock:
        try:
            book = library.remove_book(title)
        except LibraryError as e:
            _raise_http(e)
    return {"message": f"Book '{book.title}' removed."}

# --- Users ---
@app.get("/users", response_model=List[UserModel])
def get_users():
    return [UserModel.from_user(u) for u in library.list_users()]

@app.post("/users", response_model=UserModel, dependencies=[Depends(get_api_key)])
def add_user(payload: UserCreateModel):
    try:
        name = TextValidator.require(payload.name, "Name")
    except MalformedInputError as e:
        _raise_http(e)
    with library_lock:
        user = library.add_user(User(name))
    return UserModel.from_user(user)

@app.delete("/users/{name}", dependencies=[Depends(get_api_key)])
def delete_user(name: str):
    with library_lock:
        try:
            user = library.remove_user(name)
        except LibraryError as e:
            _raise_http(e)
    return {"message": f"User '{user.name}' removed."}

@app.get("/users/{name}/loans", response_model=List[LoanModel])
def get_user_loans(name: str):
    user = library.find_user(name)
    if not user:
        raise HTTPException(status_code=404, detail=f"User '{name}' not found.")
    return [_loan_model(user, loan) for loan in user.active_loans + user.history]

# --- Loans ---
@app.post("/loans", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def borrow_book(request: BorrowRequest):
    with library_lock:
        try:
            loan = library.borrow_book(request.user, request.title, request.due_date)
        except LibraryError as e:
            _raise_http(e)
        return _loan_model(library.find_user(request.user), loan)

@app.post("/loans/return", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def return_book(request: ReturnRequest):
    with library_lock:
        try:
            loan = library.return_book(request.user, request.title)
        except LibraryError as e:
            _raise_http(e)
        return _loan_model(library.find_user(request.user), loan)

@app.get("/loans/overdue", response_model=List[LoanModel])
def get_overdue_loans():
    return [_loan_model(user, loan) for user, loan in library.overdue_loans()]

# --- Stats, export, save ---
@app.get("/stats", response_model=StatsModel)
def get_library_stats():
    return library.get_statistics()

@app.get("/export/csv")
def export_books_csv():
    output = io.StringIO()
    dump_books_csv(output, library.list_books())
    return Response(
        content=output.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=library_export.csv"},
    )

@app.post("/save", dependencies=[Depends(get_api_key)])
def save_snapshot():
    with library_lock:
        try:
            library.save_data()
        except LibraryError as e:
            _raise_http(e)
    return {"message": "Data saved successfully."}
