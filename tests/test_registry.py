import pytest

from library_records import (
    Book,
    BookStatus,
    CannotRemoveBorrowedBook,
    CannotRemoveUserWithActiveBorrows,
    DuplicateISBN,
    DuplicateUserID,
    NotFound,
    Role,
    User,
)


def test_catalog_find_and_all(catalog):
    assert catalog.find("111").title == "Dune"
    assert catalog.find("999") is None
    assert [b.isbn for b in catalog.all()] == ["111", "222", "333", "444", "555", "666"]
    assert "222" in catalog
    assert len(catalog) == 6


def test_catalog_rejects_duplicate_isbn(catalog):
    with pytest.raises(DuplicateISBN):
        catalog.add(Book("111", "Other", "Someone", "Pub", 2000))
    assert catalog.find("111").title == "Dune"


def test_catalog_remove(catalog):
    catalog.remove("666")
    assert catalog.find("666") is None
    with pytest.raises(NotFound):
        catalog.remove("666")


def test_catalog_cannot_remove_borrowed_book(catalog):
    catalog.find("111").status = BookStatus.BORROWED
    with pytest.raises(CannotRemoveBorrowedBook):
        catalog.remove("111")
    assert catalog.find("111") is not None


def test_catalog_update_changes_only_given_fields(catalog):
    catalog.update("222", title="Emma (Annotated)", year=2003)
    book = catalog.find("222")
    assert book.title == "Emma (Annotated)"
    assert book.year == 2003
    assert book.author == "Jane Austen"
    assert book.publisher == "John Murray"
    with pytest.raises(NotFound):
        catalog.update("999", title="Nope")


def test_catalog_status_queries(catalog):
    catalog.find("333").status = BookStatus.BORROWED
    assert [b.isbn for b in catalog.borrowed()] == ["333"]
    assert "333" not in [b.isbn for b in catalog.available()]


def test_directory_add_binds_fresh_account(directory):
    user = User("S9", "pw", "New", Role.STUDENT)
    user.account.add_borrow("111", 1)
    directory.add(user)
    assert directory.find("S9").account.borrowed_count() == 0
    with pytest.raises(DuplicateUserID):
        directory.add(User("S9", "x", "Again", Role.FACULTY))
    assert directory.find("S9").role is Role.STUDENT


def test_directory_remove(directory):
    directory.remove("S2")
    assert directory.find("S2") is None
    assert "S2" not in directory
    with pytest.raises(NotFound):
        directory.remove("S2")


def test_directory_cannot_remove_user_with_active_borrows(directory):
    directory.find("S1").account.add_borrow("111", 5)
    with pytest.raises(CannotRemoveUserWithActiveBorrows):
        directory.remove("S1")
    assert directory.find("S1") is not None


def test_directory_authenticate(directory):
    assert directory.authenticate("F1", "pw").user_id == "F1"
    assert directory.authenticate("F1", "wrong") is None
    assert directory.authenticate("nobody", "pw") is None
