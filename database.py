import sqlite3
import logging
import threading
from contextlib import contextmanager, suppress
from typing import Iterator, Optional

from config import settings
from errors import StorageError

# Name of the partial unique index that guards "one active loan per book name".
ACTIVE_LOAN_INDEX = "ux_user_loan_history_active_book"

logger = logging.getLogger(__name__)


class Database:
    """SQLite store shared by the repositories of one service instance.

    Connections are opened per operation. While a transaction() block is open,
    every connection() call reuses the transaction's connection so that the
    check and the write of a loan happen atomically.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        # defaults to LIBRARY_DB_FILE (settings.database_file)
        self.path = path or settings.database_file
        # connection of the open transaction, per thread
        self._local = threading.local()

    @property
    def _active(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "conn", None)

    def _connect(self) -> sqlite3.Connection:
        try:
            # isolation_level=None: transactions are opened explicitly in transaction()
            conn = sqlite3.connect(self.path, isolation_level=None, timeout=5.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open database {self.path}: {exc}") from exc
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection, joining the open transaction if there is one."""
        if self._active is not None:
            try:
                yield self._active
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
            return

        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block inside a single write transaction.

        BEGIN IMMEDIATE takes the write lock up front, so two concurrent loans
        of the same book cannot both see "no active loan". Nested calls join
        the outer transaction. Any exception rolls the whole block back.
        """
        if self._active is not None:
            yield self._active
            return

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            conn.close()
            raise StorageError(f"Could not start transaction: {exc}") from exc

        self._local.conn = conn
        try:
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback(conn)
            raise StorageError(str(exc)) from exc
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            self._local.conn = None
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        # a failing ROLLBACK must not replace the error being raised
        with suppress(sqlite3.Error):
            if conn.in_transaction:
                conn.execute("ROLLBACK")

    def create_tables(self) -> None:
        """Create the tables and indexes if they do not exist yet."""
        with self.connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    age INTEGER CHECK(age IS NULL OR age >= 0),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_loan_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    book_name TEXT NOT NULL,
                    status TEXT NOT NULL CHECK(status IN ('LOANED', 'RETURNED')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)

            # At most one LOANED row per book name
            conn.execute(
                f"CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_LOAN_INDEX} "
                "ON user_loan_history(book_name) WHERE status = 'LOANED'"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_name ON books(name)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_type ON books(type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_users_name ON users(name)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_user_loan_history_user_book "
                "ON user_loan_history(user_id, book_name, status)"
            )
        logger.debug(f"Schema ready in {self.path}")


def initialize_database(path: Optional[str] = None) -> Database:
    """Open the database at path (or the default file) and make sure the schema exists."""
    db = Database(path)
    db.create_tables()
    return db
