import sys
import pathlib

import pytest

# Add project root to sys.path so imports from repo root work when running the tests
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))

from library_engine import FixedDayClock, LendingEngine, MemoryTransactionLog
from library_records import Book, Role, User
from library_registry import Catalog, Directory

BOOKS = [
    ("111", "Dune", "Frank Herbert", "Chilton", 1965),
    ("222", "Emma", "Jane Austen", "John Murray", 1815),
    ("333", "Clean Code", "Robert C. Martin", "Prentice Hall", 2008),
    ("444", "Ulysses", "James Joyce", "Shakespeare and Company", 1922),
    ("555", "Beloved", "Toni Morrison", "Knopf", 1987),
    ("666", "Middlemarch", "George Eliot", "Blackwood", 1871),
]

USERS = [
    ("S1", "pw", "Student One", Role.STUDENT),
    ("S2", "pw", "Student Two", Role.STUDENT),
    ("F1", "pw", "Faculty One", Role.FACULTY),
    ("L1", "pw", "Librarian One", Role.LIBRARIAN),
]


@pytest.fixture
def clock():
    return FixedDayClock(100)


@pytest.fixture
def log():
    return MemoryTransactionLog()


@pytest.fixture
def catalog():
    cat = Catalog()
    for isbn, title, author, publisher, year in BOOKS:
        cat.add(Book(isbn, title, author, publisher, year))
    return cat


@pytest.fixture
def directory():
    users = Directory()
    for user_id, password, name, role in USERS:
        users.add(User(user_id, password, name, role))
    return users


@pytest.fixture
def engine(catalog, directory, clock, log):
    return LendingEngine(catalog, directory, clock=clock, log=log)


@pytest.fixture
def data_dir(tmp_path):
    """A data folder seeded with book and user records and an empty transaction log."""
    (tmp_path / "books.txt").write_text(
        "".join(f"{isbn},{title},{author},{publisher},{year},Available\n"
                for isbn, title, author, publisher, year in BOOKS),
        encoding="utf-8",
    )
    (tmp_path / "users.txt").write_text(
        "".join(f"{user_id},{password},{name},{role.value},0\n" for user_id, password, name, role in USERS),
        encoding="utf-8",
    )
    return tmp_path
