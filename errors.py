"""Error types raised by the loan core.

None of these are caught inside the core; the HTTP and CLI layers decide how
to present them.
"""

ALREADY_LOANED_MESSAGE = "이미 대출되어 있는 책입니다"


class LibraryError(Exception):
    """Base class for every error the library raises."""


class ValidationError(LibraryError):
    """Malformed input: empty name, unknown book type, negative age."""


class NotFoundError(LibraryError):
    """A referenced user, book or active loan does not exist."""


class ConflictError(LibraryError):
    """The book already has an active loan."""

    def __init__(self, message: str = ALREADY_LOANED_MESSAGE) -> None:
        super().__init__(message)


class StorageError(LibraryError):
    """The backing store failed (including an aborted transaction)."""
