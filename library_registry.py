"""
library_registry.py

In-memory registries: the Catalog of books keyed by ISBN and the Directory of
users keyed by user ID. Both keep insertion order so listings and exports are
stable.
"""

from __future__ import annotations
import logging
from typing import Dict, Iterator, List, Optional

from library_records import (
    Account,
    Book,
    BookStatus,
    CannotRemoveBorrowedBook,
    CannotRemoveUserWithActiveBorrows,
    DuplicateISBN,
    DuplicateUserID,
    NotFound,
    User,
)

logger = logging.getLogger("LibraryRegistry")


class Catalog:
    """Registry of books keyed by ISBN."""

    def __init__(self) -> None:
        self._books: Dict[str, Book] = {}

    def __len__(self) -> int:
        return len(self._books)

    def __contains__(self, isbn: object) -> bool:
        return isbn in self._books

    def __iter__(self) -> Iterator[Book]:
        return iter(list(self._books.values()))

    def find(self, isbn: str) -> Optional[Book]:
        """Return the book with `isbn`, or None."""
        return self._books.get(isbn)

    def add(self, book: Book) -> None:
        """Register a new book. Raises DuplicateISBN if the ISBN is taken."""
        if book.isbn in self._books:
            raise DuplicateISBN(f"Book with ISBN {book.isbn} already exists.")
        self._books[book.isbn] = book
        logger.info("Added book %s", book.isbn)

    def remove(self, isbn: str) -> Book:
        """
        Remove a book from the catalog and return it.

        Raises NotFound for an unknown ISBN and CannotRemoveBorrowedBook while
        the book is out on loan.
        """
        book = self._books.get(isbn)
        if book is None:
            raise NotFound(f"Book not found: {isbn}")
        if book.status == BookStatus.BORROWED:
            raise CannotRemoveBorrowedBook(f"Cannot remove borrowed book {isbn}.")
        del self._books[isbn]
        logger.info("Removed book %s", isbn)
        return book

    def update(self, isbn: str, title: Optional[str] = None, author: Optional[str] = None,
               publisher: Optional[str] = None, year: Optional[int] = None) -> Book:
        """
        Change the descriptive fields of a book.

        Only the fields passed as non-None are touched; status and reservation
        are owned by the lending engine and cannot be edited here.
        """
        book = self._books.get(isbn)
        if book is None:
            raise NotFound(f"Book not found: {isbn}")
        if title is not None:
            book.title = title
        if author is not None:
            book.author = author
        if publisher is not None:
            book.publisher = publisher
        if year is not None:
            book.year = int(year)
        logger.info("Updated book %s", isbn)
        return book

    def all(self) -> List[Book]:
        """All books in insertion order."""
        return list(self._books.values())

    def available(self) -> List[Book]:
        return [b for b in self._books.values() if b.status == BookStatus.AVAILABLE]

    def borrowed(self) -> List[Book]:
        return [b for b in self._books.values() if b.status == BookStatus.BORROWED]


class Directory:
    """Registry of users keyed by user ID; each user carries its own Account."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users

    def __iter__(self) -> Iterator[User]:
        return iter(list(self._users.values()))

    def find(self, user_id: str) -> Optional[User]:
        """Return the user with `user_id`, or None."""
        return self._users.get(user_id)

    def add(self, user: User) -> None:
        """
        Register a new user with a fresh, empty Account.

        Raises DuplicateUserID if the ID is taken.
        """
        if user.user_id in self._users:
            raise DuplicateUserID(f"User with ID {user.user_id} already exists.")
        user.account = Account()
        self._users[user.user_id] = user
        logger.info("Added user %s (%s)", user.user_id, user.role.value)

    def remove(self, user_id: str) -> User:
        """Remove and return a user; refused while the user still has books out."""
        user = self._users.get(user_id)
        if user is None:
            raise NotFound(f"User not found: {user_id}")
        if user.account.borrowed_count() > 0:
            raise CannotRemoveUserWithActiveBorrows(
                f"Cannot remove user {user_id} who still borrows {user.account.borrowed_count()} book(s).")
        del self._users[user_id]
        logger.info("Removed user %s", user_id)
        return user

    def all(self) -> List[User]:
        return list(self._users.values())

    def authenticate(self, user_id: str, password: str) -> Optional[User]:
        """Return the user when the plaintext password matches, otherwise None."""
        user = self._users.get(user_id)
        if user is None or user.password != password:
            logger.debug("Failed login for %s", user_id)
            return None
        return user
