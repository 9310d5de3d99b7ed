import sqlite3
from typing import Dict, Iterable, List, Optional

from book import Book, BookType
from database import ACTIVE_LOAN_INDEX, Database
from errors import ConflictError, ValidationError
from user import User, UserLoanHistory, UserLoanStatus


class BookRepository:
    """Catalog store backed by the books table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_all(self) -> List[Book]:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT id, name, type FROM books ORDER BY id").fetchall()
            return [Book.from_dict(dict(row)) for row in rows]

    def find_by_name(self, name: str) -> Optional[Book]:
        """Return the first book registered under name, if any."""
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT id, name, type FROM books WHERE name = ? ORDER BY id LIMIT 1", (name,)
            ).fetchone()
            return Book.from_dict(dict(row)) if row else None

    def save(self, book: Book) -> Book:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO books (name, type) VALUES (?, ?)", (book.name, book.type.value)
            )
            book.id = cursor.lastrowid
            return book

    def save_all(self, books: Iterable[Book]) -> List[Book]:
        with self._db.transaction():
            return [self.save(book) for book in books]

    def delete_all(self) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM books")

    def count_by_type(self) -> Dict[BookType, int]:
        """Group-by pushed down to SQLite."""
        with self._db.connection() as conn:
            rows = conn.execute("SELECT type, COUNT(*) AS count FROM books GROUP BY type").fetchall()
            return {BookType(row["type"]): row["count"] for row in rows}


class UserRepository:

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_all(self) -> List[User]:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT id, name, age FROM users ORDER BY id").fetchall()
            return [User.from_dict(dict(row)) for row in rows]

    def find_by_name(self, name: str) -> Optional[User]:
        """Return the user with that name.

        Names are not unique; when more than one user matches, raise instead
        of picking one.
        """
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT id, name, age FROM users WHERE name = ? ORDER BY id LIMIT 2", (name,)
            ).fetchall()
        if len(rows) > 1:
            raise ValidationError(f"User name is ambiguous: {name!r} matches more than one user")
        return User.from_dict(dict(rows[0])) if rows else None

    def find_by_id(self, user_id: int) -> Optional[User]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT id, name, age FROM users WHERE id = ?", (user_id,)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def save(self, user: User) -> User:
        with self._db.connection() as conn:
            if user.id is None:
                cursor = conn.execute(
                    "INSERT INTO users (name, age) VALUES (?, ?)", (user.name, user.age)
                )
                user.id = cursor.lastrowid
            else:
                conn.execute(
                    "UPDATE users SET name = ?, age = ? WHERE id = ?", (user.name, user.age, user.id)
                )
            return user

    def save_all(self, users: Iterable[User]) -> List[User]:
        with self._db.transaction():
            return [self.save(user) for user in users]

    def delete_all(self) -> None:
        with self._db.connection() as conn:
            # loan history rows go with their user (ON DELETE CASCADE)
            conn.execute("DELETE FROM users")


class UserLoanHistoryRepository:
    """Loan ledger store.

    The partial unique index on (book_name) WHERE status = 'LOANED' is the
    store-side guard for the one-active-loan rule; hitting it surfaces as
    ConflictError just like the service-side check.
    """

    _COLUMNS = "id, user_id, book_name, status"

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_all(self) -> List[UserLoanHistory]:
        with self._db.connection() as conn:
            rows = conn.execute(f"SELECT {self._COLUMNS} FROM user_loan_history ORDER BY id").fetchall()
            return [UserLoanHistory.from_dict(dict(row)) for row in rows]

    def find_all_by_user_id(self, user_id: int) -> List[UserLoanHistory]:
        with self._db.connection() as conn:
            rows = conn.execute(
                f"SELECT {self._COLUMNS} FROM user_loan_history WHERE user_id = ? ORDER BY id",
                (user_id,),
            ).fetchall()
            return [UserLoanHistory.from_dict(dict(row)) for row in rows]

    def find_by_book_name_and_status(self, book_name: str,
                                     status: UserLoanStatus) -> Optional[UserLoanHistory]:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {self._COLUMNS} FROM user_loan_history "
                "WHERE book_name = ? AND status = ? ORDER BY id LIMIT 1",
                (book_name, status.value),
            ).fetchone()
            return UserLoanHistory.from_dict(dict(row)) if row else None

    def find_by_user_id_and_book_name_and_status(self, user_id: int, book_name: str,
                                                 status: UserLoanStatus) -> Optional[UserLoanHistory]:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {self._COLUMNS} FROM user_loan_history "
                "WHERE user_id = ? AND book_name = ? AND status = ? ORDER BY id LIMIT 1",
                (user_id, book_name, status.value),
            ).fetchone()
            return UserLoanHistory.from_dict(dict(row)) if row else None

    def save(self, history: UserLoanHistory) -> UserLoanHistory:
        with self._db.connection() as conn:
            try:
                if history.id is None:
                    cursor = conn.execute(
                        "INSERT INTO user_loan_history (user_id, book_name, status) VALUES (?, ?, ?)",
                        (history.user_id, history.book_name, history.status.value),
                    )
                    history.id = cursor.lastrowid
                else:
                    conn.execute(
                        "UPDATE user_loan_history SET user_id = ?, book_name = ?, status = ? WHERE id = ?",
                        (history.user_id, history.book_name, history.status.value, history.id),
                    )
            except sqlite3.IntegrityError as exc:
                if ACTIVE_LOAN_INDEX in str(exc) or "user_loan_history.book_name" in str(exc):
                    raise ConflictError() from exc
                raise
            return history

    def save_all(self, histories: Iterable[UserLoanHistory]) -> List[UserLoanHistory]:
        with self._db.transaction():
            return [self.save(history) for history in histories]

    def delete_all(self) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM user_loan_history")
