"""
library_engine.py

The lending state machine. `LendingEngine` applies borrow, reserve, return and
pay-fine requests to the Catalog and Directory, keeping each book's status and
the borrowing user's account in step, and emits one transaction record per
state change.

Every call reads "today" exactly once from an injected `DayClock`, so fine and
overdue arithmetic can be driven deterministically from tests.
"""

from __future__ import annotations
import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from library_records import (
    FINE_PER_DAY,
    OVERDUE_LOCKOUT_GRACE_DAYS,
    AlreadyBorrowing,
    AlreadyReserved,
    BookStatus,
    BorrowLimitReached,
    NotBorrowing,
    NotFound,
    NotReservable,
    OverdueLockout,
    Role,
    RoleForbidden,
    UnpaidFineBlock,
    User,
)
from library_registry import Catalog, Directory

logger = logging.getLogger("LendingEngine")

EPOCH = datetime.date(1970, 1, 1)

OP_BORROW = "borrow"
OP_RETURN = "return"
OP_RESERVE = "reserve"
OPERATIONS = (OP_BORROW, OP_RETURN, OP_RESERVE)


# ---------------- Clocks ----------------
class DayClock:
    """Source of the current day-stamp (whole days since 1970-01-01)."""

    def today(self) -> int:
        raise NotImplementedError


class SystemDayClock(DayClock):
    def today(self) -> int:
        now = datetime.datetime.now(datetime.timezone.utc)
        return (now.date() - EPOCH).days


class FixedDayClock(DayClock):
    """Clock that stays on a given day until moved explicitly."""

    def __init__(self, day: int = 0):
        self.day = int(day)

    def today(self) -> int:
        return self.day

    def advance(self, days: int) -> int:
        self.day += int(days)
        return self.day


# ---------------- Transaction sinks ----------------
@dataclass(frozen=True)
class TransactionRecord:
    user_id: str
    isbn: str
    operation: str
    day: int


class TransactionLog:
    """Append-only sink for transaction records."""

    def append(self, record: TransactionRecord) -> None:
        raise NotImplementedError


class MemoryTransactionLog(TransactionLog):
    def __init__(self) -> None:
        self.records: List[TransactionRecord] = []

    def append(self, record: TransactionRecord) -> None:
        self.records.append(record)


# ---------------- Results ----------------
class BorrowOutcome(Enum):
    BORROWED = "borrowed"
    RESERVATION_OFFERED = "reservation_offered"
    RESERVED = "reserved"


@dataclass
class BorrowResult:
    outcome: BorrowOutcome
    isbn: str
    title: str
    day: int
    due_day: Optional[int] = None

    @property
    def borrowed(self) -> bool:
        return self.outcome == BorrowOutcome.BORROWED

    @property
    def reservation_offered(self) -> bool:
        return self.outcome == BorrowOutcome.RESERVATION_OFFERED


@dataclass
class ReturnReceipt:
    isbn: str
    day: int
    days_late: int = 0
    fine_added: float = 0.0
    handed_off_to: Optional[str] = None
    dropped_reservation: Optional[str] = None


# ---------------- Engine ----------------
class LendingEngine:
    """
    Applies lending operations against a Catalog and a Directory.

    Args:
        catalog: books keyed by ISBN.
        directory: users keyed by user ID.
        clock: day-stamp source; defaults to the system clock.
        log: transaction sink; defaults to an in-memory log.
    """

    def __init__(self, catalog: Catalog, directory: Directory,
                 clock: Optional[DayClock] = None, log: Optional[TransactionLog] = None):
        self.catalog = catalog
        self.directory = directory
        self.clock = clock or SystemDayClock()
        self.log = log if log is not None else MemoryTransactionLog()

    def _emit(self, user_id: str, isbn: str, operation: str, day: int) -> None:
        self.log.append(TransactionRecord(user_id, isbn, operation, day))

    def has_overdue_lockout(self, user: User, today: int) -> bool:
        """True if any active loan is more than the grace period past its due day."""
        limit = user.policy.max_days + OVERDUE_LOCKOUT_GRACE_DAYS
        return any(today - day > limit for _, day in user.account.current_borrows())

    def _check_can_borrow(self, user: User, isbn: str, today: int) -> None:
        """
        Raise the first user-side reason `user` may not take `isbn`.

        Shared by borrow and reserve, since a reservation ends in a loan.
        """
        account = user.account
        policy = user.policy
        if account.is_borrowing(isbn):
            raise AlreadyBorrowing(f"{user.user_id} is already borrowing {isbn}.")
        if user.role == Role.LIBRARIAN:
            raise RoleForbidden("Librarians cannot borrow books.")
        if user.role == Role.STUDENT and user.fine > 0:
            raise UnpaidFineBlock(f"{user.user_id} has unpaid fines of {user.fine:.2f}; pay first.")
        if account.borrowed_count() + account.reservation_count() >= policy.max_books:
            raise BorrowLimitReached(
                f"{user.user_id} reached the limit of {policy.max_books} book(s) (borrowed + reserved).")
        if user.role == Role.FACULTY and self.has_overdue_lockout(user, today):
            raise OverdueLockout(
                f"{user.user_id} has a book overdue by more than {OVERDUE_LOCKOUT_GRACE_DAYS} days.")

    def borrow(self, user: User, isbn: str) -> BorrowResult:
        """
        Borrow a book for a user.

        Returns a BORROWED result when the book was on the shelf, or a
        RESERVATION_OFFERED result (with no state change) when somebody else
        holds it and nobody has reserved it yet. Raises a LendingError for
        every rejected request.
        """
        today = self.clock.today()
        account = user.account
        policy = user.policy
        self._check_can_borrow(user, isbn, today)

        book = self.catalog.find(isbn)
        if book is None:
            raise NotFound(f"Book not found: {isbn}")

        if book.status == BookStatus.AVAILABLE:
            book.status = BookStatus.BORROWED
            book.reserved_by = None
            account.add_borrow(isbn, today)
            self._emit(user.user_id, isbn, OP_BORROW, today)
            logger.info("Borrowed %s to %s on day %d", isbn, user.user_id, today)
            return BorrowResult(BorrowOutcome.BORROWED, isbn, book.title, today,
                                due_day=today + policy.max_days)

        if book.reserved_by:
            raise AlreadyReserved(isbn, book.reserved_by)

        logger.debug("Offering reservation of %s to %s", isbn, user.user_id)
        return BorrowResult(BorrowOutcome.RESERVATION_OFFERED, isbn, book.title, today)

    def reserve(self, user: User, isbn: str) -> BorrowResult:
        """
        Accept a reservation offer made by `borrow`.

        The user must still pass every borrow gate, and the book must still be
        held by someone else with no reservation on it.
        """
        today = self.clock.today()
        self._check_can_borrow(user, isbn, today)
        book = self.catalog.find(isbn)
        if book is None:
            raise NotFound(f"Book not found: {isbn}")
        if book.reserved_by:
            raise AlreadyReserved(isbn, book.reserved_by)
        if book.status != BookStatus.BORROWED:
            raise NotReservable(f"Book {isbn} is on the shelf; borrow it instead.")

        book.reserved_by = user.user_id
        user.account.set_reservation_count(user.account.reservation_count() + 1)
        self._emit(user.user_id, isbn, OP_RESERVE, today)
        logger.info("Reserved %s for %s", isbn, user.user_id)
        return BorrowResult(BorrowOutcome.RESERVED, isbn, book.title, today)

    def return_book(self, user: User, isbn: str) -> ReturnReceipt:
        """
        Return a book borrowed by `user`.

        Students are fined FINE_PER_DAY for each day past their limit; faculty
        lateness is only reported. A pending reservation is handed off within
        the same call when the reserving user still exists.
        """
        today = self.clock.today()
        account = user.account

        if user.role == Role.LIBRARIAN:
            raise RoleForbidden("Librarians do not borrow books.")
        if not account.is_borrowing(isbn):
            raise NotBorrowing(f"{user.user_id} is not borrowing {isbn}.")

        receipt = ReturnReceipt(isbn=isbn, day=today)
        diff = today - account.get_borrow_day(isbn)
        max_days = user.policy.max_days
        if diff > max_days:
            receipt.days_late = diff - max_days
            if user.role == Role.STUDENT:
                receipt.fine_added = receipt.days_late * FINE_PER_DAY
                user.fine += receipt.fine_added
                logger.info("Fined %s %.2f for %d day(s) late", user.user_id, receipt.fine_added,
                            receipt.days_late)
            else:
                logger.info("%s returned %s %d day(s) late (no fine)", user.user_id, isbn, receipt.days_late)

        account.remove_borrow(isbn)
        self._emit(user.user_id, isbn, OP_RETURN, today)

        book = self.catalog.find(isbn)
        if book is None:
            logger.warning("Returned book %s is missing from the catalog", isbn)
            return receipt
        book.status = BookStatus.AVAILABLE
        logger.info("Book %s returned by %s", isbn, user.user_id)

        if book.reserved_by:
            reserved_id = book.reserved_by
            book.reserved_by = None
            next_user = self.directory.find(reserved_id)
            if next_user is None:
                receipt.dropped_reservation = reserved_id
                logger.warning("Dropped reservation of %s for unknown user %s", isbn, reserved_id)
            else:
                book.status = BookStatus.BORROWED
                if not next_user.account.is_borrowing(isbn):
                    next_user.account.add_borrow(isbn, today)
                self._emit(reserved_id, isbn, OP_BORROW, today)
                receipt.handed_off_to = reserved_id
                logger.info("Handed %s off to reserving user %s", isbn, reserved_id)
        return receipt

    def pay_fine(self, user: User, amount: float) -> float:
        """Apply a payment and return the remaining fine."""
        if amount >= user.fine:
            user.fine = 0.0
            logger.info("Fine cleared for %s", user.user_id)
        else:
            user.fine -= amount
            logger.info("Partial payment by %s; remaining %.2f", user.user_id, user.fine)
        return user.fine
