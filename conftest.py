import pytest

from book_statistics import BookStatistics
from database import Database
from library import BookService, UserService
from repositories import BookRepository, UserLoanHistoryRepository, UserRepository


@pytest.fixture
def db(tmp_path, request):
    # Unique database file per test
    database = Database(str(tmp_path / f"test_{request.node.name}.db"))
    database.create_tables()
    return database

@pytest.fixture
def book_repository(db):
    return BookRepository(db)

@pytest.fixture
def user_repository(db):
    return UserRepository(db)

@pytest.fixture
def loan_repository(db):
    return UserLoanHistoryRepository(db)

@pytest.fixture
def book_service(db, book_repository, user_repository, loan_repository):
    statistics = BookStatistics(book_repository, loan_repository)
    return BookService(db, book_repository, user_repository, loan_repository, statistics)

@pytest.fixture
def user_service(db, user_repository, loan_repository):
    return UserService(db, user_repository, loan_repository)
