"""
SQLAlchemy database schema for usufruit.

Four tables back the identity store:

1. libraries - root aggregate, owns librarians and books
2. librarians - members of one library, authenticated by a unique secret key
3. books - borrowable items assigned to one librarian
4. loans - borrow/return history; at most one active loan per book

The "one active loan per book" invariant is enforced by the store itself with
a partial unique index, so concurrent borrows cannot both commit.
"""

import json

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

Base = declarative_base()


class Library(Base):
    """
    Libraries table - a community lending library.

    Libraries are never deleted; everything else hangs off a library id.
    """

    __tablename__ = "libraries"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    location = Column(String(500), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    librarians = relationship("Librarian", back_populates="library")
    books = relationship("Book", back_populates="library")

    __table_args__ = (CheckConstraint("id LIKE 'library_%'", name="check_library_id_format"),)


class Librarian(Base):
    """
    Librarians table - members of a library.

    The secret key is the bearer credential: it is the sole authentication
    lookup key, so it is unique across all libraries.
    """

    __tablename__ = "librarians"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    contact_info = Column(String(500), nullable=False)
    is_super = Column(Boolean, nullable=False, default=False)
    secret_key = Column(String(128), nullable=False, unique=True)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    library = relationship("Library", back_populates="librarians")
    books = relationship("Book", back_populates="librarian")
    loans = relationship("Loan", back_populates="librarian")

    __table_args__ = (
        Index("idx_librarian_library", "library_id"),
        CheckConstraint("id LIKE 'librarian_%'", name="check_librarian_id_format"),
    )

    @validates("library_id")
    def validate_library_id(self, key, value):  # noqa: ARG002
        """A librarian never moves to another library."""
        if self.library_id is not None and value != self.library_id:
            raise ValueError("A librarian's library cannot be changed")
        return value


class Book(Base):
    """
    Books table - borrowable items.

    The assigned librarian is the owner for authorization purposes. The
    embedding column holds a JSON array produced out-of-band after creation.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    borrow_duration_days = Column(Integer, nullable=False, default=14)
    organizing_rules = Column(Text, nullable=True)
    check_in_instructions = Column(Text, nullable=True)
    check_out_instructions = Column(Text, nullable=True)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False)
    librarian_id = Column(String(50), ForeignKey("librarians.id"), nullable=False)

    # JSON-serialized float array (Text for SQLite compatibility)
    embedding = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    library = relationship("Library", back_populates="books")
    librarian = relationship("Librarian", back_populates="books")
    loans = relationship("Loan", back_populates="book")

    __table_args__ = (
        Index("idx_book_library", "library_id"),
        Index("idx_book_librarian", "librarian_id"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
        CheckConstraint("borrow_duration_days >= 1", name="check_borrow_duration_positive"),
    )

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def embedding_vector(self) -> list[float] | None:
        """Decode the stored embedding, or None when absent or unreadable."""
        if not self.embedding:
            return None
        try:
            vector = json.loads(self.embedding)
        except json.JSONDecodeError:
            return None
        return vector if isinstance(vector, list) else None


class Loan(Base):
    """
    Loans table - one row per borrow.

    A loan is active while returned_at is NULL. The partial unique index
    idx_loan_one_active_per_book lets at most one such row exist per book.
    """

    __tablename__ = "loans"

    id = Column(String(50), primary_key=True)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    librarian_id = Column(String(50), ForeignKey("librarians.id"), nullable=False)
    borrowed_at = Column(DateTime, nullable=False, default=func.now())
    due_date = Column(Date, nullable=True)
    returned_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    book = relationship("Book", back_populates="loans")
    librarian = relationship("Librarian", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_book", "book_id"),
        Index("idx_loan_librarian", "librarian_id"),
        Index("idx_loan_due_date", "due_date"),
        Index(
            "idx_loan_one_active_per_book",
            "book_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
        CheckConstraint("id LIKE 'loan_%'", name="check_loan_id_format"),
    )
