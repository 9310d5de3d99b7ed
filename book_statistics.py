from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from book import Book, BookType
from repositories import BookRepository, UserLoanHistoryRepository
from user import UserLoanStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookStat:
    """Number of catalog books filed under one type."""
    type: BookType
    count: int

    def to_dict(self) -> dict:
        return {"type": self.type.value, "count": self.count}


def count_by_type(books: List[Book]) -> Dict[BookType, int]:
    """Group books by type in memory."""
    return dict(Counter(book.type for book in books))


class BookStatistics:
    """Read-only aggregation over the catalog and the loan ledger.

    The per-type grouping goes through a single callable so it can be swapped
    for a store-side group-by (see BookRepository.count_by_type) without
    changing what callers get back.
    """

    def __init__(self, book_repository: BookRepository,
                 loan_repository: UserLoanHistoryRepository,
                 aggregate: Optional[Callable[[], Dict[BookType, int]]] = None) -> None:
        self._books = book_repository
        self._loans = loan_repository
        self._aggregate = aggregate or (lambda: count_by_type(self._books.find_all()))

    def book_type_counts(self) -> List[BookStat]:
        counts = self._aggregate()
        # BookType declaration order keeps the output deterministic
        stats = [BookStat(type=book_type, count=counts[book_type])
                 for book_type in BookType if counts.get(book_type, 0) > 0]
        logger.debug(f"Book statistics computed for {len(stats)} type(s)")
        return stats

    def count_loaned(self) -> int:
        return sum(1 for history in self._loans.find_all()
                   if history.status is UserLoanStatus.LOANED)
