"""
Loan repository for usufruit.

Implements the two-state loan lifecycle of a book:

    Available --borrow--> CheckedOut --return--> Available

A book is checked out while it has a loan with ``returned_at IS NULL``. The
check for an existing active loan and the insert happen in one transaction,
and the partial unique index ``idx_loan_one_active_per_book`` rejects any
concurrent borrow that slipped past the check. Both paths surface as the same
ConflictError.

Note: like the rest of the store, timestamps use naive local time; a due date
is the calendar date of the borrow plus the book's loan period.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update

from ..errors import ConflictError, NotFoundError
from ..models.loan import Loan as LoanModel
from .repository import BaseRepository, PaginatedResponse, PaginationParams, generate_id
from .schema import Book as BookDB
from .schema import Librarian as LibrarianDB
from .schema import Loan as LoanDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class LoanRepository(BaseRepository[LoanDB, LoanModel]):
    """Repository for borrowing and returning books."""

    @property
    def model_class(self):
        return LoanDB

    @property
    def response_schema(self):
        return LoanModel

    def get_active_for_book(self, book_id: str) -> LoanModel | None:
        query = select(LoanDB).where(LoanDB.book_id == book_id, LoanDB.returned_at.is_(None))
        loan = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to check active loan",
        )
        return self._to_response_model(loan) if loan else None

    def borrow(self, library_id: str, book_id: str, librarian_id: str) -> LoanModel:
        """
        Check a book out to a librarian.

        Raises:
            NotFoundError: If the book or borrower is missing or outside the library
            ConflictError: If the book is already on loan
        """
        book = safe_query(
            self.session,
            lambda s: s.get(BookDB, book_id),
            "Failed to get book for borrowing",
        )
        if book is None or book.library_id != library_id:
            raise NotFoundError(f"Book {book_id} not found in library {library_id}")

        borrower = safe_query(
            self.session,
            lambda s: s.get(LibrarianDB, librarian_id),
            "Failed to get borrower",
        )
        if borrower is None or borrower.library_id != library_id:
            raise NotFoundError(f"Librarian {librarian_id} not found in library {library_id}")

        already_on_loan = f"Book {book_id} is already on loan"
        if self.get_active_for_book(book_id) is not None:
            raise ConflictError(already_on_loan)

        borrowed_at = datetime.now()
        loan = LoanDB(
            id=generate_id("loan"),
            book_id=book_id,
            librarian_id=librarian_id,
            borrowed_at=borrowed_at,
            due_date=borrowed_at.date() + timedelta(days=book.borrow_duration_days),
        )
        self.session.add(loan)

        try:
            safe_commit(self.session, "borrow book")
        except ConflictError as e:
            # Another transaction committed an active loan for this book first
            raise ConflictError(already_on_loan) from e
        self.session.refresh(loan)

        logger.info("Book %s borrowed by %s until %s", book_id, librarian_id, loan.due_date)
        return self._to_response_model(loan)

    def return_loan(self, library_id: str, loan_id: str, book_id: str | None = None) -> LoanModel:
        """
        Mark a loan returned.

        Raises:
            NotFoundError: If the loan is missing, is not for ``book_id``, or its
                book is outside the library
            ConflictError: If the loan was already returned
        """
        loan = self._get_db_obj(loan_id)
        if loan is None or (book_id is not None and loan.book_id != book_id):
            raise NotFoundError(f"Loan {loan_id} not found")

        book = safe_query(
            self.session,
            lambda s: s.get(BookDB, loan.book_id),
            "Failed to get book for return",
        )
        if book is None or book.library_id != library_id:
            raise NotFoundError(f"Loan {loan_id} not found in library {library_id}")

        now = datetime.now()
        # Guarded on returned_at so two racing returns cannot both succeed
        guarded = (
            update(LoanDB)
            .where(LoanDB.id == loan_id, LoanDB.returned_at.is_(None))
            .values(returned_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(guarded), "Failed to mark loan returned"
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise ConflictError(f"Loan {loan_id} has already been returned")

        safe_commit(self.session, "return book")
        self.session.refresh(loan)

        logger.info("Loan %s returned for book %s", loan_id, loan.book_id)
        return self._to_response_model(loan)

    def history_for_book(
        self, book_id: str, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LoanModel]:
        """All loans of a book, newest first."""
        query = (
            select(LoanDB)
            .where(LoanDB.book_id == book_id)
            .order_by(LoanDB.borrowed_at.desc(), LoanDB.id)
        )
        return self._paginate(query, pagination)

    def active_for_library(
        self, library_id: str, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LoanModel]:
        """Active loans of a library, earliest due first."""
        query = (
            select(LoanDB)
            .join(BookDB, LoanDB.book_id == BookDB.id)
            .where(BookDB.library_id == library_id, LoanDB.returned_at.is_(None))
            .order_by(LoanDB.due_date, LoanDB.id)
        )
        return self._paginate(query, pagination)

    def for_borrower(self, librarian_id: str, active_only: bool = False) -> list[LoanModel]:
        """Loans taken out by a librarian, newest first."""
        query = select(LoanDB).where(LoanDB.librarian_id == librarian_id)
        if active_only:
            query = query.where(LoanDB.returned_at.is_(None))
        query = query.order_by(LoanDB.borrowed_at.desc(), LoanDB.id)
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to get borrower loans",
        )
        return [self._to_response_model(r) for r in results]
