import sqlite3

import pytest

from book import Book, BookType
from errors import ConflictError, StorageError, ValidationError
from user import User, UserLoanHistory, UserLoanStatus


def test_book_repository_save_and_find(book_repository):
    assert book_repository.find_all() == []

    saved = book_repository.save(Book("Sapiens", BookType.SOCIETY))

    assert saved.id is not None
    found = book_repository.find_by_name("Sapiens")
    assert found.id == saved.id
    assert found.type is BookType.SOCIETY
    assert book_repository.find_by_name("Missing") is None

def test_book_repository_delete_all(book_repository):
    book_repository.save_all([Book("A", BookType.COMPUTER), Book("B", BookType.ECONOMY)])
    book_repository.delete_all()
    assert book_repository.find_all() == []

def test_book_repository_count_by_type(book_repository):
    book_repository.save_all([
        Book("A", BookType.COMPUTER),
        Book("B", BookType.COMPUTER),
        Book("C", BookType.ECONOMY),
    ])
    assert book_repository.count_by_type() == {BookType.COMPUTER: 2, BookType.ECONOMY: 1}

def test_user_repository_update(user_repository):
    user = user_repository.save(User("Jin", 26))
    user.name = "Jinho"
    user_repository.save(user)

    assert user_repository.find_by_name("Jin") is None
    assert user_repository.find_by_id(user.id).name == "Jinho"
    assert len(user_repository.find_all()) == 1

def test_user_repository_delete_all_cascades_loans(user_repository, loan_repository):
    user = user_repository.save(User("Jin"))
    loan_repository.save(UserLoanHistory(user.id, "A"))

    user_repository.delete_all()

    assert user_repository.find_all() == []
    assert loan_repository.find_all() == []

def test_loan_repository_lookups(user_repository, loan_repository):
    jin = user_repository.save(User("Jin"))
    mina = user_repository.save(User("Mina"))
    loan_repository.save_all([
        UserLoanHistory(jin.id, "A", UserLoanStatus.RETURNED),
        UserLoanHistory(mina.id, "A"),
    ])

    active = loan_repository.find_by_book_name_and_status("A", UserLoanStatus.LOANED)
    assert active.user_id == mina.id
    assert loan_repository.find_by_user_id_and_book_name_and_status(
        jin.id, "A", UserLoanStatus.LOANED) is None
    assert [h.book_name for h in loan_repository.find_all_by_user_id(jin.id)] == ["A"]

def test_store_rejects_second_active_loan(user_repository, loan_repository):
    user = user_repository.save(User("Jin"))
    loan_repository.save(UserLoanHistory(user.id, "A"))

    with pytest.raises(ConflictError):
        loan_repository.save(UserLoanHistory(user.id, "A"))

    # RETURNED rows for the same title are fine
    loan_repository.save(UserLoanHistory(user.id, "A", UserLoanStatus.RETURNED))
    loan_repository.save(UserLoanHistory(user.id, "A", UserLoanStatus.RETURNED))
    assert len(loan_repository.find_all()) == 3

def test_save_all_is_atomic(user_repository, loan_repository):
    user = user_repository.save(User("Jin"))

    with pytest.raises(ConflictError):
        loan_repository.save_all([
            UserLoanHistory(user.id, "A"),
            UserLoanHistory(user.id, "B"),
            UserLoanHistory(user.id, "A"),
        ])

    assert loan_repository.find_all() == []

def test_loan_for_unknown_user_is_storage_error(loan_repository):
    with pytest.raises(StorageError) as exc_info:
        loan_repository.save(UserLoanHistory(999, "A"))
    assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)

def test_transaction_rolls_back_on_error(db, book_repository):
    with pytest.raises(RuntimeError):
        with db.transaction():
            book_repository.save(Book("A", BookType.COMPUTER))
            raise RuntimeError("boom")

    assert book_repository.find_all() == []

def test_nested_transaction_joins_outer(db, book_repository):
    with db.transaction():
        book_repository.save_all([Book("A", BookType.COMPUTER)])
        book_repository.save(Book("B", BookType.COMPUTER))

    assert [b.name for b in book_repository.find_all()] == ["A", "B"]

def test_unreachable_database_is_storage_error(tmp_path):
    from database import Database

    db = Database(str(tmp_path / "missing" / "library.db"))
    with pytest.raises(StorageError):
        db.create_tables()

def test_find_by_name_with_duplicate_users_fails(user_repository):
    user_repository.save(User("Jin", 26))
    user_repository.save(User("Jin", 31))

    with pytest.raises(ValidationError, match="ambiguous"):
        user_repository.find_by_name("Jin")

def test_find_by_name_single_match(user_repository):
    user_repository.save(User("Jin", 26))
    user_repository.save(User("Mina"))

    assert user_repository.find_by_name("Mina").age is None
    assert user_repository.find_by_name("Ghost") is None

def test_default_path_comes_from_settings(monkeypatch, tmp_path):
    from config import settings
    from database import Database

    path = str(tmp_path / "configured.db")
    monkeypatch.setattr(settings, "database_file", path)
    assert Database().path == path

class FailingRollbackConnection:
    """Connection stand-in whose ROLLBACK always fails."""
    in_transaction = True

    def execute(self, sql):
        if sql == "ROLLBACK":
            raise sqlite3.OperationalError("cannot rollback")

    def close(self):
        pass

def test_failed_rollback_keeps_original_error(db, monkeypatch):
    monkeypatch.setattr(db, "_connect", lambda: FailingRollbackConnection())

    with pytest.raises(RuntimeError, match="boom"):
        with db.transaction():
            raise RuntimeError("boom")

def test_failed_rollback_keeps_storage_error_cause(db, monkeypatch):
    monkeypatch.setattr(db, "_connect", lambda: FailingRollbackConnection())

    with pytest.raises(StorageError) as exc_info:
        with db.transaction():
            raise sqlite3.IntegrityError("constraint failed")
    assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)
