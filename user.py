from __future__ import annotations

from enum import Enum

from errors import ValidationError


class UserLoanStatus(Enum):
    LOANED = "LOANED"
    RETURNED = "RETURNED"


class User:
    """A library member who can borrow books."""

    def __init__(self, name: str, age: int | None = None, id: int | None = None) -> None:
        self.name = name.strip()
        self.age = age
        self.id = id

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, name={self.name!r}, age={self.age!r})"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "age": self.age}

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(name=data["name"], age=data.get("age"), id=data.get("id"))


class UserLoanHistory:
    """One loan of a book (matched by name) to a user.

    Starts out LOANED and moves to RETURNED exactly once.
    """

    def __init__(self, user_id: int, book_name: str,
                 status: UserLoanStatus = UserLoanStatus.LOANED, id: int | None = None) -> None:
        self.user_id = user_id
        self.book_name = book_name
        self.status = status
        self.id = id

    @property
    def is_return(self) -> bool:
        return self.status is UserLoanStatus.RETURNED

    def do_return(self) -> None:
        if self.status is not UserLoanStatus.LOANED:
            raise ValidationError(f"Loan of '{self.book_name}' has already been returned.")
        self.status = UserLoanStatus.RETURNED

    def __repr__(self) -> str:
        return (f"UserLoanHistory(id={self.id!r}, user_id={self.user_id!r}, "
                f"book_name={self.book_name!r}, status={self.status.value})")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_name": self.book_name,
            "status": self.status.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "UserLoanHistory":
        return UserLoanHistory(
            user_id=data["user_id"],
            book_name=data["book_name"],
            status=UserLoanStatus(data["status"]),
            id=data.get("id"),
        )
