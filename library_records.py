"""
library_records.py

Record types shared by every part of the lending system: roles and their
borrowing policy, books, users with their embedded borrow accounts, and the
error taxonomy raised by the registries and the lending engine.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Policy constants
FINE_PER_DAY = 10.0
OVERDUE_LOCKOUT_GRACE_DAYS = 60


# ---------------- Roles & policy ----------------
class Role(Enum):
    STUDENT = "Student"
    FACULTY = "Faculty"
    LIBRARIAN = "Librarian"

    @classmethod
    def parse(cls, text: str) -> "Role":
        """
        Resolve a role from its record spelling ("Student", "Faculty", "Librarian").

        Raises ValueError for anything else.
        """
        return cls(str(text).strip())


@dataclass(frozen=True)
class RolePolicy:
    max_books: int
    max_days: int
    applies_fine: bool
    can_borrow: bool


ROLE_POLICIES: Dict[Role, RolePolicy] = {
    Role.STUDENT: RolePolicy(max_books=3, max_days=15, applies_fine=True, can_borrow=True),
    Role.FACULTY: RolePolicy(max_books=5, max_days=30, applies_fine=False, can_borrow=True),
    Role.LIBRARIAN: RolePolicy(max_books=0, max_days=0, applies_fine=False, can_borrow=False),
}


def policy_for(role: Role) -> RolePolicy:
    return ROLE_POLICIES[role]


# ---------------- Books ----------------
class BookStatus(Enum):
    AVAILABLE = "Available"
    BORROWED = "Borrowed"

    @classmethod
    def parse(cls, text: str) -> "BookStatus":
        # anything that is not exactly "Borrowed" is treated as on the shelf
        return cls.BORROWED if str(text).strip() == cls.BORROWED.value else cls.AVAILABLE


@dataclass
class Book:
    isbn: str
    title: str
    author: str
    publisher: str
    year: int
    status: BookStatus = BookStatus.AVAILABLE
    reserved_by: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status == BookStatus.AVAILABLE


# ---------------- Accounts & users ----------------
@dataclass
class Account:
    """
    Borrow ledger owned by a single user.

    Holds the active loans (isbn -> borrow day-stamp, insertion ordered), the
    append-only return history and the number of reservations placed. It does
    no validation; the lending engine is the only writer.
    """

    currently_borrowed: Dict[str, int] = field(default_factory=dict)
    history: List[str] = field(default_factory=list)
    reservations: int = 0

    def add_borrow(self, isbn: str, day: int) -> None:
        self.currently_borrowed[isbn] = int(day)

    def remove_borrow(self, isbn: str) -> bool:
        if isbn not in self.currently_borrowed:
            return False
        del self.currently_borrowed[isbn]
        self.history.append(isbn)
        return True

    def is_borrowing(self, isbn: str) -> bool:
        return isbn in self.currently_borrowed

    def borrowed_count(self) -> int:
        return len(self.currently_borrowed)

    def reservation_count(self) -> int:
        return self.reservations

    def set_reservation_count(self, n: int) -> None:
        self.reservations = int(n)

    def get_borrow_day(self, isbn: str) -> Optional[int]:
        return self.currently_borrowed.get(isbn)

    def current_borrows(self) -> List[Tuple[str, int]]:
        return list(self.currently_borrowed.items())


@dataclass
class User:
    user_id: str
    password: str
    name: str
    role: Role
    fine: float = 0.0
    account: Account = field(default_factory=Account, repr=False)

    @property
    def policy(self) -> RolePolicy:
        return policy_for(self.role)


# ---------------- Errors ----------------
class LendingError(Exception):
    """Base class for every recoverable lending failure."""

    code = "lending_error"


class NotFound(LendingError):
    code = "not_found"


class DuplicateISBN(LendingError):
    code = "duplicate_isbn"


class DuplicateUserID(LendingError):
    code = "duplicate_user_id"


class AlreadyBorrowing(LendingError):
    code = "already_borrowing"


class RoleForbidden(LendingError):
    code = "role_forbidden"


class UnpaidFineBlock(LendingError):
    code = "unpaid_fine"


class BorrowLimitReached(LendingError):
    code = "borrow_limit_reached"


class OverdueLockout(LendingError):
    code = "overdue_lockout"


class AlreadyReserved(LendingError):
    code = "already_reserved"

    def __init__(self, isbn: str, reserved_by: str):
        super().__init__(f"Book {isbn} is already reserved by {reserved_by}.")
        self.isbn = isbn
        self.reserved_by = reserved_by


class NotBorrowing(LendingError):
    code = "not_borrowing"


class CannotRemoveBorrowedBook(LendingError):
    code = "cannot_remove_borrowed_book"


class CannotRemoveUserWithActiveBorrows(LendingError):
    code = "cannot_remove_user_with_active_borrows"


class NotReservable(LendingError):
    code = "not_reservable"
