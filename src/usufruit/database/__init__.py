"""
Database package for usufruit.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management, store capabilities and error translation (session.py)
- Repositories for libraries, librarians, books and loans
- Sample data generation (seed.py, imported explicitly)
"""

from .book_repository import BookCreateSchema, BookRepository, BookUpdateSchema
from .librarian_repository import (
    LibrarianCreateSchema,
    LibrarianDeletionResult,
    LibrarianRepository,
    LibrarianUpdateSchema,
)
from .library_repository import LibraryCreateSchema, LibraryRepository, LibraryUpdateSchema
from .loan_repository import LoanRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams, generate_id
from .schema import Base, Book, Librarian, Library, Loan
from .session import DatabaseManager, safe_commit, safe_query

__all__ = [
    "Base",
    "BaseRepository",
    "Book",
    "BookCreateSchema",
    "BookRepository",
    "BookUpdateSchema",
    "DatabaseManager",
    "Librarian",
    "LibrarianCreateSchema",
    "LibrarianDeletionResult",
    "LibrarianRepository",
    "LibrarianUpdateSchema",
    "Library",
    "LibraryCreateSchema",
    "LibraryRepository",
    "LibraryUpdateSchema",
    "Loan",
    "LoanRepository",
    "PaginatedResponse",
    "PaginationParams",
    "generate_id",
    "safe_commit",
    "safe_query",
]
