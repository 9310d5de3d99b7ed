import logging
from dataclasses import dataclass, field
from typing import List, Optional

from book import Book, BookType
from book_statistics import BookStat, BookStatistics
from config import settings
from database import Database
from errors import ConflictError, NotFoundError
from repositories import BookRepository, UserLoanHistoryRepository, UserRepository
from user import User, UserLoanHistory, UserLoanStatus
from utils.validators import AgeValidator, TextValidator


# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


class BookService:
    """Registers books and runs the loan / return lifecycle.

    Every state-changing call runs its checks and its write inside one
    Database.transaction(), so the "one active loan per book name" check
    cannot race with another writer.
    """

    def __init__(self, db: Database, book_repository: BookRepository,
                 user_repository: UserRepository,
                 loan_repository: UserLoanHistoryRepository,
                 statistics: BookStatistics) -> None:
        self._db = db
        self._books = book_repository
        self._users = user_repository
        self._loans = loan_repository
        self._statistics = statistics

    @classmethod
    def from_database(cls, db: Database) -> "BookService":
        books = BookRepository(db)
        loans = UserLoanHistoryRepository(db)
        return cls(db, books, UserRepository(db), loans, BookStatistics(books, loans))

    # ------------------------- Catalog ------------------------- #
    def save_book(self, name: str, type: "BookType | str") -> Book:
        name = TextValidator.require_name(name, "Book name")
        book_type = BookType.parse(type)
        with self._db.transaction():
            book = self._books.save(Book(name=name, type=book_type))
        logger.info(f"Book registered: id={book.id} name={book.name!r} type={book.type.value}")
        return book

    def get_books(self) -> List[Book]:
        return self._books.find_all()

    # ------------------------- Loans ------------------------- #
    def loan_book(self, user_name: str, book_name: str) -> None:
        user_name = TextValidator.require_name(user_name, "User name")
        book_name = TextValidator.require_name(book_name, "Book name")

        with self._db.transaction():
            if self._books.find_by_name(book_name) is None:
                raise NotFoundError(f"Book not found: {book_name}")
            if self._loans.find_by_book_name_and_status(book_name, UserLoanStatus.LOANED) is not None:
                raise ConflictError()
            user = self._users.find_by_name(user_name)
            if user is None:
                raise NotFoundError(f"User not found: {user_name}")
            history = self._loans.save(UserLoanHistory(user_id=user.id, book_name=book_name))

        logger.info(f"Book loaned: {book_name!r} -> user {user.name!r} (loan id={history.id})")

    def return_book(self, user_name: str, book_name: str) -> None:
        user_name = TextValidator.require_name(user_name, "User name")
        book_name = TextValidator.require_name(book_name, "Book name")

        with self._db.transaction():
            user = self._users.find_by_name(user_name)
            if user is None:
                raise NotFoundError(f"User not found: {user_name}")
            history = self._loans.find_by_user_id_and_book_name_and_status(
                user.id, book_name, UserLoanStatus.LOANED
            )
            if history is None:
                raise NotFoundError(f"No active loan of {book_name!r} for user {user_name!r}")
            history.do_return()
            self._loans.save(history)

        logger.info(f"Book returned: {book_name!r} by user {user.name!r} (loan id={history.id})")

    # ------------------------- Statistics ------------------------- #
    def count_loaned_book(self) -> int:
        return self._statistics.count_loaned()

    def get_book_statistics(self) -> List[BookStat]:
        return self._statistics.book_type_counts()


@dataclass
class UserLoanHistoryView:
    """A user together with the books they have borrowed so far."""
    name: str
    books: List[UserLoanHistory] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "books": [{"name": h.book_name, "isReturn": h.is_return} for h in self.books],
        }


class UserService:
    """User registration and lookups that sit next to the loan core."""

    def __init__(self, db: Database, user_repository: UserRepository,
                 loan_repository: UserLoanHistoryRepository) -> None:
        self._db = db
        self._users = user_repository
        self._loans = loan_repository

    @classmethod
    def from_database(cls, db: Database) -> "UserService":
        return cls(db, UserRepository(db), UserLoanHistoryRepository(db))

    def save_user(self, name: str, age: Optional[int] = None) -> User:
        name = TextValidator.require_name(name, "User name")
        age = AgeValidator.require_age(age)
        with self._db.transaction():
            user = self._users.save(User(name=name, age=age))
        logger.info(f"User registered: id={user.id} name={user.name!r}")
        return user

    def get_users(self) -> List[User]:
        return self._users.find_all()

    def update_user_name(self, user_id: int, name: str) -> User:
        name = TextValidator.require_name(name, "User name")
        with self._db.transaction():
            user = self._users.find_by_id(user_id)
            if user is None:
                raise NotFoundError(f"User not found: id={user_id}")
            user.name = name
            self._users.save(user)
        logger.info(f"User renamed: id={user.id} name={user.name!r}")
        return user

    def get_user_loan_histories(self) -> List[UserLoanHistoryView]:
        return [UserLoanHistoryView(name=user.name, books=self._loans.find_all_by_user_id(user.id))
                for user in self._users.find_all()]
