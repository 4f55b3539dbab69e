"""
library_store.py

Flat-file persistence for the lending system.

Three headerless comma-separated record files are used:

- books:        isbn,title,author,publisher,year,status
- users:        userID,password,name,role,fine
- transactions: userID,isbn,operation,dayStamp

Loading is best-effort: a line that cannot be parsed, or that refers to an
unknown user or book, is logged and skipped instead of failing the whole
load. The transaction log is only ever appended to; `replay_transactions`
rebuilds loans and reservations from it after the catalog and directory have
been loaded.
"""

from __future__ import annotations
import logging
import math
import pathlib
from typing import List

import pandas as pd

from library_engine import (
    OP_BORROW,
    OP_RESERVE,
    OP_RETURN,
    OPERATIONS,
    TransactionLog,
    TransactionRecord,
)
from library_records import Book, BookStatus, LendingError, Role, User
from library_registry import Catalog, Directory

logger = logging.getLogger("LibraryStore")

BOOK_COLUMNS = ["isbn", "title", "author", "publisher", "year", "status"]
USER_COLUMNS = ["user_id", "password", "name", "role", "fine"]
TRANSACTION_COLUMNS = ["user_id", "isbn", "operation", "day"]


# ---------------- Reading ----------------
def read_records(path: pathlib.Path, columns: List[str]) -> pd.DataFrame:
    """
    Read a headerless record file into a DataFrame of strings.

    Missing or empty files yield an empty DataFrame with the expected columns.
    Lines with too many fields are dropped by the parser; short lines come
    back with empty trailing fields and are left for the caller to reject.
    """
    path = pathlib.Path(path)
    if not path.exists():
        logger.warning("Record file not found: %s (starting empty)", path)
        return pd.DataFrame(columns=columns)
    try:
        df = pd.read_csv(path, header=None, names=columns, dtype=str, keep_default_na=False,
                         skip_blank_lines=True, index_col=False, on_bad_lines="skip")
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=columns)
    return df.fillna("")


def parse_book(row: pd.Series) -> Book:
    isbn = str(row["isbn"]).strip()
    if not isbn:
        raise ValueError("missing isbn")
    return Book(
        isbn=isbn,
        title=str(row["title"]),
        author=str(row["author"]),
        publisher=str(row["publisher"]),
        year=int(str(row["year"]).strip()),
        status=BookStatus.parse(row["status"]),
    )


def parse_user(row: pd.Series) -> User:
    """Build a User from one record; raises ValueError on a bad role or fine."""
    user_id = str(row["user_id"]).strip()
    if not user_id:
        raise ValueError("missing user id")
    fine = float(str(row["fine"]).strip())
    if not math.isfinite(fine) or fine < 0:
        raise ValueError(f"invalid fine {fine}")
    return User(user_id=user_id, password=str(row["password"]), name=str(row["name"]),
                role=Role.parse(row["role"]), fine=fine)


def parse_transaction(row: pd.Series) -> TransactionRecord:
    """Build a TransactionRecord; raises ValueError on an unknown operation or day."""
    operation = str(row["operation"]).strip()
    if operation not in OPERATIONS:
        raise ValueError(f"unknown operation {operation!r}")
    return TransactionRecord(
        user_id=str(row["user_id"]).strip(),
        isbn=str(row["isbn"]).strip(),
        operation=operation,
        day=int(str(row["day"]).strip()),
    )


def load_catalog(path: pathlib.Path, catalog: Catalog) -> int:
    """Add every valid book record from `path` to `catalog`; returns the number added."""
    df = read_records(path, BOOK_COLUMNS)
    added = 0
    for idx, row in df.iterrows():
        try:
            catalog.add(parse_book(row))
        except (ValueError, LendingError) as err:
            logger.warning("Skipping book record %d in %s: %s", idx + 1, path, err)
            continue
        added += 1
    logger.info("Loaded %d books", added)
    return added


def load_directory(path: pathlib.Path, directory: Directory) -> int:
    """Add every valid user record from `path` to `directory`; returns the number added."""
    df = read_records(path, USER_COLUMNS)
    added = 0
    for idx, row in df.iterrows():
        try:
            directory.add(parse_user(row))
        except (ValueError, LendingError) as err:
            logger.warning("Skipping user record %d in %s: %s", idx + 1, path, err)
            continue
        added += 1
    logger.info("Loaded %d users", added)
    return added


def read_transactions(path: pathlib.Path) -> List[TransactionRecord]:
    """
    Read the transaction log in file order.

    Unparsable lines are logged at WARNING and skipped. A missing or empty file
    yields an empty list.
    """
    df = read_records(path, TRANSACTION_COLUMNS)
    records: List[TransactionRecord] = []
    for idx, row in df.iterrows():
        try:
            records.append(parse_transaction(row))
        except ValueError as err:
            logger.warning("Skipping transaction %d in %s: %s", idx + 1, path, err)
    return records


def replay_transactions(records: List[TransactionRecord], catalog: Catalog, directory: Directory) -> int:
    """
    Rebuild loans and reservations from logged transactions.

    Catalog and directory must already be loaded. A borrow marks the book
    borrowed, clears its reservation and opens a loan at the logged day; a
    return closes the loan and shelves the book but leaves `reserved_by` as
    it was; a reserve only sticks to a borrowed, unreserved book. Records
    naming an unknown user or book are skipped.

    Returns the number of records applied.
    """
    applied = 0
    for record in records:
        user = directory.find(record.user_id)
        book = catalog.find(record.isbn)
        if user is None or book is None:
            logger.warning("Skipping transaction %s/%s/%s: unknown user or book",
                           record.user_id, record.isbn, record.operation)
            continue
        if record.operation == OP_BORROW:
            book.status = BookStatus.BORROWED
            book.reserved_by = None
            if not user.account.is_borrowing(record.isbn):
                user.account.add_borrow(record.isbn, record.day)
        elif record.operation == OP_RETURN:
            user.account.remove_borrow(record.isbn)
            book.status = BookStatus.AVAILABLE
        elif record.operation == OP_RESERVE:
            if book.status == BookStatus.BORROWED and not book.reserved_by:
                book.reserved_by = record.user_id
        applied += 1
    logger.info("Replayed %d of %d transactions", applied, len(records))
    return applied


def transactions_frame(path: pathlib.Path) -> pd.DataFrame:
    """Raw transaction log as a DataFrame (UserID, ISBN, Operation, DayStamp)."""
    df = read_records(path, TRANSACTION_COLUMNS)
    return df.rename(columns={"user_id": "UserID", "isbn": "ISBN", "operation": "Operation",
                              "day": "DayStamp"})


# ---------------- Writing ----------------
def save_catalog(catalog: Catalog, path: pathlib.Path) -> None:
    """Overwrite `path` with one headerless record per book. Reservations are rebuilt from the log."""
    rows = [{"isbn": b.isbn, "title": b.title, "author": b.author, "publisher": b.publisher,
             "year": b.year, "status": b.status.value} for b in catalog.all()]
    out_df = pd.DataFrame(rows, columns=BOOK_COLUMNS)
    out_df.to_csv(path, header=False, index=False)
    logger.info("Saved %d books to %s", len(out_df), path)


def save_directory(directory: Directory, path: pathlib.Path) -> None:
    """Overwrite `path` with one headerless record per user."""
    rows = [{"user_id": u.user_id, "password": u.password, "name": u.name, "role": u.role.value,
             "fine": u.fine} for u in directory.all()]
    out_df = pd.DataFrame(rows, columns=USER_COLUMNS)
    out_df.to_csv(path, header=False, index=False)
    logger.info("Saved %d users to %s", len(out_df), path)


class CsvTransactionLog(TransactionLog):
    """
    Transaction sink appending one line per record to a file.

    Appends are best-effort: an I/O failure is logged and the in-memory state
    change that produced the record stands.
    """

    def __init__(self, path: pathlib.Path):
        self.path = pathlib.Path(path)

    def append(self, record: TransactionRecord) -> None:
        row = pd.DataFrame([[record.user_id, record.isbn, record.operation, record.day]],
                           columns=TRANSACTION_COLUMNS)
        try:
            row.to_csv(self.path, mode="a", header=False, index=False)
        except OSError as err:
            logger.error("Cannot append transaction to %s: %s", self.path, err)
