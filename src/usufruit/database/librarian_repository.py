"""
Librarian repository for usufruit.

Besides plain CRUD this repository owns the two sensitive pieces of the
librarian lifecycle:

1. **Secure reads** - ``get_by_id_secure`` and ``list_by_library_secure``
   resolve the requesting librarian and strip secret keys the requester may
   not see. Single and list reads apply the same rule.
2. **Deletion with disposition** - a librarian that owns books or has loans
   can only be removed together with an explicit instruction: reassign the
   dependents to another librarian of the same library, or delete them. The
   whole deletion is one transaction; a rejected deletion mutates nothing.
"""

import logging
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..auth.policy import redact_librarians
from ..errors import (
    ConflictError,
    DependencyError,
    InvalidInputError,
    NotFoundError,
    UsufruitError,
)
from ..models.librarian import Librarian as LibrarianModel
from .repository import BaseRepository, PaginatedResponse, PaginationParams, generate_id
from .schema import Book as BookDB
from .schema import Librarian as LibrarianDB
from .schema import Loan as LoanDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class LibrarianCreateSchema(BaseModel):
    """Schema for registering a librarian. The secret key is generated, never supplied."""

    library_id: str
    name: str = Field(..., min_length=1, max_length=200)
    contact_info: str = Field(..., min_length=1, max_length=500)
    is_super: bool = False

    model_config = {"str_strip_whitespace": True}


class LibrarianUpdateSchema(BaseModel):
    """
    Schema for updating a librarian's details.

    Only name and contact info are accepted; ``is_super`` has its own
    operation and ``library_id`` never changes.
    """

    name: str | None = Field(None, min_length=1, max_length=200)
    contact_info: str | None = Field(None, min_length=1, max_length=500)

    model_config = {"str_strip_whitespace": True, "extra": "forbid"}


class LibrarianDeletionResult(BaseModel):
    """What a librarian deletion did to the librarian's dependents."""

    librarian_id: str
    reassigned_to: str | None = None
    books_reassigned: int = 0
    loans_reassigned: int = 0
    books_deleted: int = 0
    loans_deleted: int = 0


class LibrarianRepository(BaseRepository[LibrarianDB, LibrarianModel]):
    """
    Repository for librarian data access.

    Plain ``get_by_id`` returns records *with* the secret key and is meant for
    internal use (authentication, policy checks). Anything handed to a caller
    goes through the ``*_secure`` methods.
    """

    @property
    def model_class(self):
        return LibrarianDB

    @property
    def response_schema(self):
        return LibrarianModel

    def create(self, data: LibrarianCreateSchema, secret_key: str) -> LibrarianModel:
        """
        Insert a librarian with a freshly generated secret key.

        Returns the record including its plaintext key; this is the only
        response that carries it without a secure read.

        Raises:
            ConflictError: If the key collides or the library does not exist
        """
        librarian = LibrarianDB(
            id=generate_id("librarian"),
            name=data.name,
            contact_info=data.contact_info,
            is_super=data.is_super,
            secret_key=secret_key,
            library_id=data.library_id,
        )
        self.session.add(librarian)
        safe_commit(self.session, "create librarian")
        self.session.refresh(librarian)

        logger.info(
            "Created %s librarian %s in %s",
            "super" if librarian.is_super else "regular",
            librarian.id,
            librarian.library_id,
        )
        return self._to_response_model(librarian)

    def get_by_secret_key(self, secret_key: str) -> LibrarianModel | None:
        """Look up a librarian by exact secret key."""
        query = select(LibrarianDB).where(LibrarianDB.secret_key == secret_key)
        librarian = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to look up librarian by credential",
        )
        return self._to_response_model(librarian) if librarian else None

    def _requester(self, requesting_librarian_id: str | None) -> LibrarianModel | None:
        if not requesting_librarian_id:
            return None
        return self.get_by_id(requesting_librarian_id)

    def get_by_id_secure(
        self, id: str, requesting_librarian_id: str | None = None
    ) -> LibrarianModel | None:
        """
        Get a librarian with the secret key redacted for the requester.

        The key is kept when the requester is a super librarian of the same
        library, or is the librarian being read.
        """
        librarian = self.get_by_id(id)
        if librarian is None:
            return None
        requester = self._requester(requesting_librarian_id)
        return redact_librarians([librarian], requester, librarian.library_id)[0]

    def list_by_library(self, library_id: str) -> list[LibrarianModel]:
        query = (
            select(LibrarianDB)
            .where(LibrarianDB.library_id == library_id)
            .order_by(LibrarianDB.created_at, LibrarianDB.id)
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list librarians",
        )
        return [self._to_response_model(r) for r in results]

    def list_by_library_secure(
        self, library_id: str, requesting_librarian_id: str | None = None
    ) -> list[LibrarianModel]:
        """List a library's librarians with keys redacted for the requester."""
        requester = self._requester(requesting_librarian_id)
        return redact_librarians(self.list_by_library(library_id), requester, library_id)

    def search_by_library_secure(
        self,
        library_id: str,
        requesting_librarian_id: str | None = None,
        query: str | None = None,
        pagination: PaginationParams | None = None,
        case_insensitive: bool = True,
    ) -> PaginatedResponse[LibrarianModel]:
        """
        Paginated librarian listing with optional name/contact filter.

        Redaction is applied to the page after slicing, with the same rule as
        ``list_by_library_secure``.
        """
        stmt = select(LibrarianDB).where(LibrarianDB.library_id == library_id)
        if query and query.strip():
            term = f"%{query.strip()}%"
            if case_insensitive:
                stmt = stmt.where(
                    or_(LibrarianDB.name.ilike(term), LibrarianDB.contact_info.ilike(term))
                )
            else:
                stmt = stmt.where(
                    or_(LibrarianDB.name.like(term), LibrarianDB.contact_info.like(term))
                )
        stmt = stmt.order_by(LibrarianDB.created_at, LibrarianDB.id)

        page = self._paginate(stmt, pagination)
        requester = self._requester(requesting_librarian_id)
        page.items = redact_librarians(page.items, requester, library_id)
        return page

    def update_details(self, id: str, data: LibrarianUpdateSchema) -> LibrarianModel:
        """
        Partially update name and contact info.

        Raises:
            NotFoundError: If the librarian does not exist
        """
        librarian = self._get_db_obj(id)
        if librarian is None:
            raise NotFoundError(f"Librarian {id} not found")

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(librarian, field, value)
        librarian.updated_at = datetime.now()

        safe_commit(self.session, "update librarian")
        self.session.refresh(librarian)
        return self._to_response_model(librarian)

    def update_super_status(
        self, id: str, is_super: bool, acting_librarian_id: str
    ) -> LibrarianModel:
        """
        Grant or revoke super status.

        The acting librarian is recorded in the log for audit; it is not
        persisted.

        Raises:
            NotFoundError: If the librarian does not exist
        """
        librarian = self._get_db_obj(id)
        if librarian is None:
            raise NotFoundError(f"Librarian {id} not found")

        previous = librarian.is_super
        librarian.is_super = is_super
        librarian.updated_at = datetime.now()
        safe_commit(self.session, "update librarian super status")
        self.session.refresh(librarian)

        logger.info(
            "Librarian %s changed super status of %s from %s to %s",
            acting_librarian_id,
            id,
            previous,
            is_super,
        )
        return self._to_response_model(librarian)

    def count_dependents(self, id: str) -> tuple[int, int]:
        """Return (owned books, loans touching the librarian or their books)."""
        books = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count()).select_from(BookDB).where(BookDB.librarian_id == id)
            ).scalar(),
            "Failed to count librarian books",
        )
        owned_book_ids = select(BookDB.id).where(BookDB.librarian_id == id)
        loans = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(LoanDB)
                .where(or_(LoanDB.librarian_id == id, LoanDB.book_id.in_(owned_book_ids)))
            ).scalar(),
            "Failed to count librarian loans",
        )
        return books or 0, loans or 0

    def delete(
        self,
        id: str,
        reassign_books_to: str | None = None,
        delete_books_and_loans: bool = False,
    ) -> LibrarianDeletionResult:
        """
        Delete a librarian, handling owned books and loans in one transaction.

        Args:
            id: Librarian to delete
            reassign_books_to: Librarian of the same library that takes over
                the books and loans
            delete_books_and_loans: Delete owned books, loans on them, and the
                librarian's own loans

        Raises:
            InvalidInputError: If both dispositions are given
            NotFoundError: If the librarian or the reassignment target is missing
            ConflictError: If dependents exist and no disposition is given, or
                the target is unusable
        """
        if reassign_books_to and delete_books_and_loans:
            raise InvalidInputError(
                "Choose either reassign_books_to or delete_books_and_loans, not both"
            )

        librarian = self._get_db_obj(id)
        if librarian is None:
            raise NotFoundError(f"Librarian {id} not found")

        result = LibrarianDeletionResult(librarian_id=id)

        try:
            if reassign_books_to:
                target = self._get_db_obj(reassign_books_to)
                if target is None:
                    raise NotFoundError(f"Reassignment target {reassign_books_to} not found")
                if target.id == librarian.id:
                    raise ConflictError("Cannot reassign books to the librarian being deleted")
                if target.library_id != librarian.library_id:
                    raise ConflictError("Reassignment target belongs to a different library")

                result.reassigned_to = target.id
                result.books_reassigned = self.session.execute(
                    update(BookDB)
                    .where(BookDB.librarian_id == id)
                    .values(librarian_id=target.id, updated_at=datetime.now()),
                    execution_options={"synchronize_session": False},
                ).rowcount
                result.loans_reassigned = self.session.execute(
                    update(LoanDB)
                    .where(LoanDB.librarian_id == id)
                    .values(librarian_id=target.id, updated_at=datetime.now()),
                    execution_options={"synchronize_session": False},
                ).rowcount

            elif delete_books_and_loans:
                owned_book_ids = select(BookDB.id).where(BookDB.librarian_id == id)
                loans_on_books = self.session.execute(
                    delete(LoanDB).where(LoanDB.book_id.in_(owned_book_ids)),
                    execution_options={"synchronize_session": False},
                ).rowcount
                result.books_deleted = self.session.execute(
                    delete(BookDB).where(BookDB.librarian_id == id),
                    execution_options={"synchronize_session": False},
                ).rowcount
                own_loans = self.session.execute(
                    delete(LoanDB).where(LoanDB.librarian_id == id),
                    execution_options={"synchronize_session": False},
                ).rowcount
                result.loans_deleted = loans_on_books + own_loans

            else:
                books, loans = self.count_dependents(id)
                if books or loans:
                    raise ConflictError(
                        f"Librarian {id} has {books} book(s) and {loans} loan(s); "
                        "reassign or delete them first"
                    )

            self.session.delete(librarian)
        except UsufruitError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Deleting librarian %s failed", id)
            raise DependencyError(f"Deleting librarian {id} failed") from e

        safe_commit(self.session, "delete librarian")
        logger.info(
            "Deleted librarian %s (reassigned %d books, %d loans; deleted %d books, %d loans)",
            id,
            result.books_reassigned,
            result.loans_reassigned,
            result.books_deleted,
            result.loans_deleted,
        )
        return result
