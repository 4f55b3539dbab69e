#!/usr/bin/env python3
"""
library_system.py
"""

from __future__ import annotations
import argparse
import logging
import math
import pathlib
from typing import List, Optional, Tuple

import pandas as pd

import library_store as store
from library_engine import DayClock, LendingEngine, TransactionLog
from library_records import Book, LendingError, NotFound, Role, User
from library_registry import Catalog, Directory

# Configuration
DEFAULT_BOOKS_FILE = "books.txt"
DEFAULT_USERS_FILE = "users.txt"
DEFAULT_TRANSACTIONS_FILE = "transactions.txt"
DEFAULT_DATA_DIR = pathlib.Path(__file__).resolve().parent / "data"

logger = logging.getLogger("LibrarySystem")


class LibrarySystem:
    """
    LibrarySystem wires the catalog, the user directory and the lending engine to
    flat record files in a data directory.

    On construction it loads books and users, then replays the transaction log to
    rebuild loans and reservations. Operations return (success, message) tuples
    with a human-readable message; domain failures never raise out of here.
    """

    def __init__(self,
                 data_dir: Optional[pathlib.Path] = None,
                 books_file: str = DEFAULT_BOOKS_FILE,
                 users_file: str = DEFAULT_USERS_FILE,
                 transactions_file: str = DEFAULT_TRANSACTIONS_FILE,
                 clock: Optional[DayClock] = None,
                 log: Optional[TransactionLog] = None):
        """
        Initialize the LibrarySystem.

        Args:
            data_dir: folder holding the record files; defaults to ./data next to this module.
            books_file: catalog record file name.
            users_file: directory record file name.
            transactions_file: transaction log file name.
            clock: day-stamp source handed to the engine (system clock if omitted).
            log: transaction sink; defaults to appending to the transaction log file.
        """
        base_dir = pathlib.Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
        # Ensure the directory exists so saves and appends won't fail
        base_dir.mkdir(parents=True, exist_ok=True)

        self.books_path = base_dir / books_file
        self.users_path = base_dir / users_file
        self.transactions_path = base_dir / transactions_file

        self.catalog = Catalog()
        self.directory = Directory()
        self.transaction_log = log if log is not None else store.CsvTransactionLog(self.transactions_path)
        self.engine = LendingEngine(self.catalog, self.directory, clock=clock, log=self.transaction_log)

        # books and users must be in place before replay looks them up
        store.load_catalog(self.books_path, self.catalog)
        store.load_directory(self.users_path, self.directory)
        store.replay_transactions(store.read_transactions(self.transactions_path), self.catalog,
                                  self.directory)

    # ---------------- Persisting ----------------
    def save_state(self) -> None:
        """Write books and users back to their record files. The transaction log is append-only."""
        store.save_catalog(self.catalog, self.books_path)
        store.save_directory(self.directory, self.users_path)

    # -------------- Internal helpers ----------------
    def _require_user(self, user_id: str) -> User:
        user = self.directory.find(user_id)
        if user is None:
            raise NotFound(f"User not found: {user_id}")
        return user

    def login(self, user_id: str, password: str) -> Optional[User]:
        return self.directory.authenticate(user_id, password)

    # ---------------- Catalog management ----------------
    def add_book(self, isbn: str, title: str, author: str, publisher: str, year: int) -> Tuple[bool, str]:
        try:
            self.catalog.add(Book(isbn=isbn, title=title, author=author, publisher=publisher, year=int(year)))
        except LendingError as err:
            logger.debug("Add book rejected: %s", err)
            return False, str(err)
        return True, f"Book '{title}' ({isbn}) added."

    def remove_book(self, isbn: str) -> Tuple[bool, str]:
        try:
            book = self.catalog.remove(isbn)
        except LendingError as err:
            logger.debug("Remove book rejected: %s", err)
            return False, str(err)
        return True, f"Book '{book.title}' ({isbn}) removed."

    def update_book(self, isbn: str, title: Optional[str] = None, author: Optional[str] = None,
                    publisher: Optional[str] = None, year: Optional[int] = None) -> Tuple[bool, str]:
        try:
            self.catalog.update(isbn, title=title, author=author, publisher=publisher, year=year)
        except LendingError as err:
            logger.debug("Update book rejected: %s", err)
            return False, str(err)
        return True, f"Book {isbn} updated."

    # ---------------- Directory management ----------------
    def add_user(self, user_id: str, password: str, name: str, role: str) -> Tuple[bool, str]:
        try:
            parsed_role = Role.parse(role)
        except ValueError:
            return False, f"Invalid role: {role}"
        try:
            self.directory.add(User(user_id=user_id, password=password, name=name, role=parsed_role))
        except LendingError as err:
            logger.debug("Add user rejected: %s", err)
            return False, str(err)
        return True, f"User {user_id} ({parsed_role.value}) added."

    def remove_user(self, user_id: str) -> Tuple[bool, str]:
        try:
            self.directory.remove(user_id)
        except LendingError as err:
            logger.debug("Remove user rejected: %s", err)
            return False, str(err)
        return True, f"User {user_id} removed."

    # ---------------- Core operations ----------------
    def borrow_book(self, user_id: str, isbn: str) -> Tuple[bool, str, bool]:
        """
        Borrow a book for a user.

        Returns (success, message, reservation_offered). When the book is held by
        someone else and nobody has reserved it, success is False and
        reservation_offered is True; call `reserve_book` to accept.
        """
        try:
            result = self.engine.borrow(self._require_user(user_id), isbn)
        except LendingError as err:
            logger.debug("Borrow rejected for %s/%s: %s", user_id, isbn, err)
            return False, str(err), False
        if result.reservation_offered:
            return False, f"Book '{result.title}' ({isbn}) is already borrowed by someone else.", True
        return True, f"Book '{result.title}' borrowed by {user_id}. Due on day {result.due_day}.", False

    def reserve_book(self, user_id: str, isbn: str) -> Tuple[bool, str]:
        try:
            result = self.engine.reserve(self._require_user(user_id), isbn)
        except LendingError as err:
            logger.debug("Reserve rejected for %s/%s: %s", user_id, isbn, err)
            return False, str(err)
        return True, f"Book '{result.title}' reserved for {user_id}."

    def return_book(self, user_id: str, isbn: str) -> Tuple[bool, str]:
        """
        Process a book return.

        The message reports any fine added or faculty lateness, and an automatic
        hand-off to the reserving user.
        """
        try:
            receipt = self.engine.return_book(self._require_user(user_id), isbn)
        except LendingError as err:
            logger.debug("Return rejected for %s/%s: %s", user_id, isbn, err)
            return False, str(err)
        parts: List[str] = []
        if receipt.fine_added:
            parts.append(f"Book overdue by {receipt.days_late} days. Fine added: {receipt.fine_added:.2f}.")
        elif receipt.days_late:
            parts.append(f"Returned {receipt.days_late} days late. (No fine for faculty)")
        parts.append(f"Book {isbn} returned by {user_id}.")
        if receipt.handed_off_to:
            parts.append(f"Book auto-borrowed by reserved user: {receipt.handed_off_to}.")
        return True, " ".join(parts)

    def pay_fine(self, user_id: str, amount: float) -> Tuple[bool, str]:
        if not math.isfinite(amount) or amount < 0:
            return False, "Payment amount must be a non-negative number."
        try:
            remaining = self.engine.pay_fine(self._require_user(user_id), amount)
        except LendingError as err:
            return False, str(err)
        if remaining == 0:
            return True, "Fine cleared!"
        return True, f"Partial payment done. Remaining fine: {remaining:.2f}"

    # ---------------- Reports / Queries ----------------
    def export_report_books(self) -> pd.DataFrame:
        """All books with status and current reservation ("None" when unreserved)."""
        rows = [{
            "ISBN": b.isbn,
            "Title": b.title,
            "Author": b.author,
            "Publisher": b.publisher,
            "Year": b.year,
            "Status": b.status.value,
            "ReservedBy": b.reserved_by or "None",
        } for b in self.catalog.all()]
        return pd.DataFrame(rows, columns=["ISBN", "Title", "Author", "Publisher", "Year", "Status",
                                           "ReservedBy"])

    def export_report_users(self) -> pd.DataFrame:
        """All users with role, fine and current borrow/reservation counts."""
        rows = [{
            "UserID": u.user_id,
            "Name": u.name,
            "Role": u.role.value,
            "Fine": u.fine,
            "BorrowedCount": u.account.borrowed_count(),
            "Reservations": u.account.reservation_count(),
        } for u in self.directory.all()]
        return pd.DataFrame(rows, columns=["UserID", "Name", "Role", "Fine", "BorrowedCount",
                                           "Reservations"])

    def export_report_account(self, user_id: str) -> Optional[pd.DataFrame]:
        """
        One user's ledger: active loans (with their borrow day) followed by the return history.

        Returns None if the user does not exist.
        """
        user = self.directory.find(user_id)
        if user is None:
            return None
        rows = [{"ISBN": isbn, "BorrowedDay": day, "State": "Borrowed"}
                for isbn, day in user.account.current_borrows()]
        rows += [{"ISBN": isbn, "BorrowedDay": None, "State": "Returned"} for isbn in user.account.history]
        return pd.DataFrame(rows, columns=["ISBN", "BorrowedDay", "State"])

    def transactions_report(self) -> pd.DataFrame:
        return store.transactions_frame(self.transactions_path)


# ---------------- CLI ----------------
def input_prompt(prompt: str) -> str:
    """
    Wrapper around built-in input() that returns a stripped string and handles interrupts.

    Returns an empty string on EOF/KeyboardInterrupt.
    """
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return ""


def print_frame(df: pd.DataFrame, empty_text: str = "  None") -> None:
    if df.empty:
        print(empty_text)
    else:
        print(df.to_string(index=False))


def print_member_menu(role: Role) -> None:
    print(f"\n---- Menu ({role.value}) ----")
    print("1. Show all books")
    print("2. Borrow a book")
    print("3. Return a book")
    print("4. View borrowings")
    print("5. View transaction history")
    print("6. Pay fines")
    print("0. Save and logout")


def print_librarian_menu() -> None:
    print("\n---- Menu (Librarian) ----")
    print("1. Show all books")
    print("2. Show all users")
    print("3. Show all transactions")
    print("4. Show user account")
    print("5. Manage library (add/remove/update books, add/remove users)")
    print("0. Save and logout")


def print_manage_menu() -> None:
    print("\n-- Manage Library --")
    print("a) Add book")
    print("b) Remove book")
    print("c) Update book")
    print("d) Add user")
    print("e) Remove user")
    print("f) Back")


def member_session(lib: LibrarySystem, user: User) -> None:
    """Menu loop for students and faculty."""
    while True:
        print_member_menu(user.role)
        choice = input_prompt("Choice: ")
        if choice in ("0", ""):
            lib.save_state()
            print("Library data saved. Logging out...")
            break
        elif choice == "1":
            print_frame(lib.export_report_books())
        elif choice == "2":
            isbn = input_prompt("Enter ISBN to borrow: ")
            ok, msg, offered = lib.borrow_book(user.user_id, isbn)
            print(msg)
            if offered:
                ans = input_prompt("Do you want to reserve it? (y/n): ")
                if ans.lower().startswith("y"):
                    ok, msg = lib.reserve_book(user.user_id, isbn)
                    print(msg)
        elif choice == "3":
            isbn = input_prompt("Enter ISBN to return: ")
            ok, msg = lib.return_book(user.user_id, isbn)
            print(msg)
        elif choice == "4":
            print("Currently borrowed:")
            for isbn, day in user.account.current_borrows():
                print(f"  ISBN: {isbn}, BorrowedDay: {day}")
            if not user.account.borrowed_count():
                print("  None")
        elif choice == "5":
            print("History:")
            for isbn in user.account.history:
                print(f"  ISBN: {isbn}")
            if not user.account.history:
                print("  No history")
        elif choice == "6":
            print(f"Your outstanding fine is: {user.fine:.2f}")
            raw = input_prompt("Enter amount to pay: ")
            try:
                amount = float(raw)
            except ValueError:
                print("Invalid amount.")
                continue
            ok, msg = lib.pay_fine(user.user_id, amount)
            print(msg)
        else:
            print("Invalid choice.")


def manage_library(lib: LibrarySystem) -> None:
    """Librarian sub-menu for catalog and directory edits."""
    while True:
        print_manage_menu()
        choice = input_prompt("Choice: ").lower()
        if choice in ("f", ""):
            break
        elif choice == "a":
            isbn = input_prompt("Enter ISBN: ")
            title = input_prompt("Enter title: ")
            author = input_prompt("Enter author: ")
            publisher = input_prompt("Enter publisher: ")
            year_raw = input_prompt("Enter year: ")
            if not year_raw.lstrip("-").isdigit():
                print("Invalid year.")
                continue
            ok, msg = lib.add_book(isbn, title, author, publisher, int(year_raw))
            print(msg)
        elif choice == "b":
            ok, msg = lib.remove_book(input_prompt("Enter ISBN to remove: "))
            print(msg)
        elif choice == "c":
            isbn = input_prompt("Enter ISBN to update: ")
            # "." (or 0 for the year) keeps the current value
            title = input_prompt("Enter new title (or . to skip): ")
            author = input_prompt("Enter new author (or . to skip): ")
            publisher = input_prompt("Enter new publisher (or . to skip): ")
            year_raw = input_prompt("Enter new year (or 0 to skip): ")
            year = int(year_raw) if year_raw.isdigit() and int(year_raw) != 0 else None
            ok, msg = lib.update_book(
                isbn,
                title=None if title in (".", "") else title,
                author=None if author in (".", "") else author,
                publisher=None if publisher in (".", "") else publisher,
                year=year,
            )
            print(msg)
        elif choice == "d":
            user_id = input_prompt("Enter user ID: ")
            password = input_prompt("Enter password: ")
            name = input_prompt("Enter name: ")
            role = input_prompt("Enter role (Student/Faculty/Librarian): ")
            ok, msg = lib.add_user(user_id, password, name, role)
            print(msg)
        elif choice == "e":
            ok, msg = lib.remove_user(input_prompt("Enter user ID to remove: "))
            print(msg)
        else:
            print("Invalid choice.")


def librarian_session(lib: LibrarySystem) -> None:
    """Menu loop for librarians."""
    while True:
        print_librarian_menu()
        choice = input_prompt("Choice: ")
        if choice in ("0", ""):
            lib.save_state()
            print("Library data saved. Logging out...")
            break
        elif choice == "1":
            print_frame(lib.export_report_books())
        elif choice == "2":
            print_frame(lib.export_report_users())
        elif choice == "3":
            print_frame(lib.transactions_report(), empty_text="No transactions.")
        elif choice == "4":
            user_id = input_prompt("Enter user ID: ")
            account = lib.export_report_account(user_id)
            if account is None:
                print("No such user.")
                continue
            user = lib.directory.find(user_id)
            print(f"User: {user.name} ({user.role.value}), Fine: {user.fine:.2f}")
            print_frame(account)
        elif choice == "5":
            manage_library(lib)
        else:
            print("Invalid choice.")


def cli_loop(lib: LibrarySystem) -> None:
    """
    Interactive command loop: log in, run the session menu for the user's role,
    and save on exit.
    """
    while True:
        print("\n=====================")
        print("Welcome to the Library!")
        print("1. Login")
        print("0. Exit")
        choice = input_prompt("Choice: ")
        if choice in ("0", ""):
            lib.save_state()
            print("Exiting... Data saved.")
            break
        elif choice == "1":
            user_id = input_prompt("UserID: ")
            password = input_prompt("Password: ")
            user = lib.login(user_id, password)
            if user is None:
                print("Invalid credentials.")
                continue
            if user.role == Role.LIBRARIAN:
                librarian_session(lib)
            else:
                member_session(lib, user)
        else:
            print("Invalid choice.")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Library lending system (interactive CLI)")
    parser.add_argument("--data-dir", default=str(DEFAULT_DATA_DIR),
                        help="Folder holding books.txt, users.txt and transactions.txt")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format="%(levelname)s: %(message)s")
    lib = LibrarySystem(data_dir=pathlib.Path(args.data_dir))
    cli_loop(lib)


if __name__ == "__main__":
    main()
