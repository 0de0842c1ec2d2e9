"""
Book repository for usufruit.

This repository provides data access for borrowable items:

1. **CRUD** scoped to a library; a book is only found under its own library
2. **Lexical search** - substring match over title, author and description,
   paginated in the database
3. **Embedding storage** - vectors are written after creation by the
   embedding job queue or the search backfill, and read back for similarity
"""

import json
import logging
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import Select, func, or_, select

from ..errors import NotFoundError
from ..models.book import Book as BookModel
from .repository import BaseRepository, PaginatedResponse, PaginationParams, generate_id
from .schema import Book as BookDB
from .schema import Loan as LoanDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class BookCreateSchema(BaseModel):
    """Schema for creating a book."""

    library_id: str
    librarian_id: str
    title: str = Field(..., min_length=1, max_length=500)
    author: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=5000)
    borrow_duration_days: int = Field(default=14, ge=1, le=365)
    organizing_rules: str | None = None
    check_in_instructions: str | None = None
    check_out_instructions: str | None = None

    model_config = {"str_strip_whitespace": True}


class BookUpdateSchema(BaseModel):
    """Schema for updating a book - all fields optional."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=5000)
    borrow_duration_days: int | None = Field(None, ge=1, le=365)
    organizing_rules: str | None = None
    check_in_instructions: str | None = None
    check_out_instructions: str | None = None
    librarian_id: str | None = None

    model_config = {"str_strip_whitespace": True, "extra": "forbid"}


# Fields whose change makes a stored embedding stale
EMBEDDED_FIELDS = frozenset({"title", "author", "description"})


class BookRepository(BaseRepository[BookDB, BookModel]):
    """Repository for book data access."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def create(self, data: BookCreateSchema) -> BookModel:
        book = BookDB(id=generate_id("book"), **data.model_dump())
        self.session.add(book)
        safe_commit(self.session, "create book")
        self.session.refresh(book)

        logger.info("Created book %s in %s", book.id, book.library_id)
        return self._to_response_model(book)

    def get_in_library(self, library_id: str, book_id: str) -> BookModel:
        """
        Get a book that must belong to the given library.

        A book under another library is reported as not found.

        Raises:
            NotFoundError: If the book is missing or in another library
        """
        book = self.get_by_id(book_id)
        if book is None or book.library_id != library_id:
            raise NotFoundError(f"Book {book_id} not found in library {library_id}")
        return book

    def update(self, book_id: str, data: BookUpdateSchema) -> BookModel:
        """
        Update a book. Changing a text field used for search clears the stored
        embedding so it gets regenerated.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = self._get_db_obj(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(book, field, value)
        if EMBEDDED_FIELDS & changes.keys():
            book.embedding = None
        book.updated_at = datetime.now()

        safe_commit(self.session, "update book")
        self.session.refresh(book)
        return self._to_response_model(book)

    def delete(self, book_id: str) -> int:
        """
        Delete a book and its loan history.

        Returns:
            Number of loans removed with the book

        Raises:
            NotFoundError: If the book does not exist
        """
        book = self._get_db_obj(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")

        loans = safe_query(
            self.session,
            lambda s: s.execute(select(LoanDB).where(LoanDB.book_id == book_id)).scalars().all(),
            "Failed to get loans for book deletion",
        )
        for loan in loans:
            self.session.delete(loan)
        self.session.delete(book)
        safe_commit(self.session, "delete book")

        logger.info("Deleted book %s with %d loan(s)", book_id, len(loans))
        return len(loans)

    def _lexical_query(self, library_id: str, query: str | None, case_insensitive: bool) -> Select:
        stmt = select(BookDB).where(BookDB.library_id == library_id)
        if query and query.strip():
            term = f"%{query.strip()}%"
            columns = (BookDB.title, BookDB.author, BookDB.description)
            if case_insensitive:
                stmt = stmt.where(or_(*(c.ilike(term) for c in columns)))
            else:
                stmt = stmt.where(or_(*(c.like(term) for c in columns)))
        return stmt

    def search(
        self,
        library_id: str,
        query: str | None = None,
        pagination: PaginationParams | None = None,
        case_insensitive: bool = True,
    ) -> PaginatedResponse[BookModel]:
        """
        Substring search over title, author and description.

        An empty query lists every book of the library. Results are ordered by
        title so pages are stable.
        """
        stmt = self._lexical_query(library_id, query, case_insensitive).order_by(
            BookDB.title, BookDB.id
        )
        return self._paginate(stmt, pagination)

    def lexical_match_ids(
        self, library_id: str, query: str, case_insensitive: bool = True
    ) -> set[str]:
        """Ids of every lexical match, across all pages."""
        stmt = self._lexical_query(library_id, query, case_insensitive).with_only_columns(
            BookDB.id
        )
        return set(
            safe_query(
                self.session,
                lambda s: s.execute(stmt).scalars().all(),
                "Failed to collect lexical matches",
            )
        )

    def get_many(self, book_ids: list[str]) -> list[BookModel]:
        """Fetch books by id, preserving the order of ``book_ids``."""
        if not book_ids:
            return []
        results = safe_query(
            self.session,
            lambda s: s.execute(select(BookDB).where(BookDB.id.in_(book_ids))).scalars().all(),
            "Failed to fetch books",
        )
        by_id = {book.id: book for book in results}
        return [self._to_response_model(by_id[i]) for i in book_ids if i in by_id]

    # === Embeddings ===

    def set_embedding(self, book_id: str, vector: list[float]) -> bool:
        """Store an embedding. Returns False when the book no longer exists."""
        book = self._get_db_obj(book_id)
        if book is None:
            return False
        book.embedding = json.dumps([float(x) for x in vector])
        safe_commit(self.session, "store book embedding")
        return True

    def count_embedded(self, library_id: str) -> int:
        count = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(BookDB)
                .where(BookDB.library_id == library_id, BookDB.embedding.is_not(None))
            ).scalar(),
            "Failed to count embedded books",
        )
        return count or 0

    def missing_embeddings(self, library_id: str, limit: int) -> list[BookModel]:
        """Books of the library that have no embedding yet, oldest first."""
        stmt = (
            select(BookDB)
            .where(BookDB.library_id == library_id, BookDB.embedding.is_(None))
            .order_by(BookDB.created_at, BookDB.id)
            .limit(limit)
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(stmt).scalars().all(),
            "Failed to list books without embeddings",
        )
        return [self._to_response_model(b) for b in results]

    def embedded_vectors(self, library_id: str) -> list[tuple[str, list[float]]]:
        """(book id, vector) for every embedded book of the library."""
        stmt = select(BookDB).where(
            BookDB.library_id == library_id, BookDB.embedding.is_not(None)
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(stmt).scalars().all(),
            "Failed to load book embeddings",
        )
        vectors = []
        for book in results:
            vector = book.embedding_vector()
            if vector is None:
                logger.warning("Ignoring unreadable embedding on book %s", book.id)
                continue
            vectors.append((book.id, vector))
        return vectors
