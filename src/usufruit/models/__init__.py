"""
usufruit models.

Pydantic v2 models returned by repositories and the service layer:

- Library: root aggregate
- Librarian: library member, optionally carrying its secret key
- Book: borrowable item
- Loan: borrow/return record with computed overdue status
"""

from .book import Book
from .librarian import Librarian
from .library import Library
from .loan import Loan

__all__ = [
    "Book",
    "Librarian",
    "Library",
    "Loan",
]
