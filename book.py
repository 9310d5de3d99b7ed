from __future__ import annotations

from enum import Enum

from errors import ValidationError


class BookType(Enum):
    """Closed set of categories a book can be filed under."""
    COMPUTER = "COMPUTER"
    ECONOMY = "ECONOMY"
    SOCIETY = "SOCIETY"
    LANGUAGE = "LANGUAGE"
    SCIENCE = "SCIENCE"

    @classmethod
    def parse(cls, value: "BookType | str | None") -> "BookType":
        """Accept a member or its name (case-insensitive); reject anything else."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        raise ValidationError(f"Unknown book type: {value!r}")


class Book:
    """A single registered copy in the catalog."""

    def __init__(self, name: str, type: BookType, id: int | None = None) -> None:
        self.name = name.strip()
        self.type = type
        self.id = id

    def __repr__(self) -> str:
        return f"Book(id={self.id!r}, name={self.name!r}, type={self.type.value})"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.type.value}

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(name=data["name"], type=BookType(data["type"]), id=data.get("id"))
