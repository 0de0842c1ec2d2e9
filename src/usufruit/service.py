"""
Operation surface of usufruit.

``LibraryService`` is the transport-agnostic API every caller goes through
(the MCP tools and resources in this repository, or any other front end).
Each operation:

1. Opens one session for the whole operation
2. Re-reads the acting librarian, so a revoked or deleted librarian loses
   privileges immediately
3. Checks that path-scoped records exist and belong to the library (404)
4. Asks the authorization policy (401/403)
5. Delegates to a repository, the loan state machine or the search engine

Collaborators (store handle, embedder, semantic cache, embedding queue) are
constructor-injected; the service holds no module-level state.
"""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from .auth.authenticator import SecretKeyAuthenticator, generate_secret_key
from .auth.policy import Action, AuthorizationPolicy, Decision, ResourceRef, redact_librarians
from .config import ServerConfig, get_config
from .database.book_repository import (
    EMBEDDED_FIELDS,
    BookCreateSchema,
    BookRepository,
    BookUpdateSchema,
)
from .database.librarian_repository import (
    LibrarianCreateSchema,
    LibrarianDeletionResult,
    LibrarianRepository,
    LibrarianUpdateSchema,
)
from .database.library_repository import (
    LibraryCreateSchema,
    LibraryRepository,
    LibraryUpdateSchema,
)
from .database.loan_repository import LoanRepository
from .database.repository import PaginatedResponse, PaginationParams
from .database.session import DatabaseManager
from .errors import InvalidInputError, NotFoundError, UnauthorizedError
from .models import Book, Librarian, Library, Loan
from .observability.metrics import record_denial, record_loan_event
from .search.cache import SemanticSearchCache
from .search.embeddings import Embedder, EmbeddingJobQueue, book_embedding_text
from .search.hybrid import HybridSearchEngine, SearchResult

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LibraryFounding(BaseModel):
    """A new library together with its founding super librarian."""

    library: Library
    librarian: Librarian


def validated(schema: type[SchemaT], **data: Any) -> SchemaT:
    """
    Build an input schema, reporting failures as InvalidInputError.

    Only field locations and messages are reported, never input values.
    """
    try:
        return schema(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors(include_input=False, include_url=False)
        )
        label = schema.__name__.removesuffix("Schema")
        raise InvalidInputError(f"Invalid {label}: {problems}") from e


def _provided(**fields: Any) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


class LibraryService:
    """Core operations for libraries, librarians, books, loans and search."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        config: ServerConfig | None = None,
        embedder: Embedder | None = None,
        cache: SemanticSearchCache | None = None,
        job_queue: EmbeddingJobQueue | None = None,
        policy: AuthorizationPolicy | None = None,
    ):
        self.db_manager = db_manager
        self.config = config or get_config()
        self.embedder = embedder
        self.cache = cache or SemanticSearchCache(
            ttl_seconds=self.config.semantic_cache_ttl,
            max_entries=self.config.semantic_cache_max_entries,
        )
        if job_queue is None and embedder is not None and self.config.enable_semantic_search:
            job_queue = EmbeddingJobQueue(
                embedder,
                db_manager,
                cache=self.cache,
                timeout=self.config.embedding_timeout,
                max_attempts=self.config.embedding_max_attempts,
            )
        self.job_queue = job_queue
        self.policy = policy or AuthorizationPolicy()
        self.authenticator = SecretKeyAuthenticator(db_manager)
        self.search_engine = HybridSearchEngine(db_manager, self.config, embedder, self.cache)

    async def close(self) -> None:
        """Stop background work."""
        if self.job_queue is not None:
            await self.job_queue.stop()

    # === Helpers ===

    def _pagination(self, page: int, page_size: int | None) -> PaginationParams:
        size = page_size or self.config.default_page_size
        pagination = PaginationParams(page=page, page_size=min(size, self.config.max_page_size))
        pagination.validate_params()
        return pagination

    @staticmethod
    def _fresh_actor(session: Session, actor: Librarian | None) -> Librarian | None:
        if actor is None:
            return None
        current = LibrarianRepository(session).get_by_id(actor.id)
        if current is None:
            logger.info("Acting librarian %s no longer exists", actor.id)
        return current

    @staticmethod
    def _require_library(session: Session, library_id: str) -> Library:
        return LibraryRepository(session).get_or_raise(library_id)

    @staticmethod
    def _require_librarian(session: Session, library_id: str, librarian_id: str) -> Librarian:
        librarian = LibrarianRepository(session).get_by_id(librarian_id)
        if librarian is None or librarian.library_id != library_id:
            raise NotFoundError(f"Librarian {librarian_id} not found in library {library_id}")
        return librarian

    def _authorize(
        self,
        actor: Librarian | None,
        library_id: str,
        action: Action,
        resource: ResourceRef | None = None,
    ) -> Decision:
        decision = self.policy.authorize(actor, library_id, action, resource)
        if not decision.allowed:
            record_denial(decision.kind.value if decision.kind else "forbidden", action.value)
        return decision.enforce()

    def _authorize_librarian(
        self,
        actor: Librarian | None,
        library_id: str,
        action: Action,
        resource: ResourceRef | None = None,
    ) -> Librarian:
        """Authorize an action that acts as a signed-in librarian and return that librarian."""
        self._authorize(actor, library_id, action, resource)
        if actor is None:
            raise UnauthorizedError("Authentication required")
        return actor

    def _schedule_embedding(self, book: Book) -> None:
        if self.job_queue is None:
            return
        text = book_embedding_text(book.title, book.author, book.description)
        self.job_queue.submit(book.id, book.library_id, text)

    # === Authentication ===

    async def authenticate(self, secret_key: str | None) -> Librarian | None:
        """Resolve a secret key to its librarian; unknown keys give None."""
        return self.authenticator.authenticate(secret_key)

    # === Libraries ===

    async def create_library(
        self, name: str, description: str | None = None, location: str | None = None
    ) -> Library:
        data = validated(
            LibraryCreateSchema, name=name, description=description, location=location
        )
        with self.db_manager.session_scope() as session:
            return LibraryRepository(session).create(data)

    async def create_library_with_founder(
        self,
        name: str,
        founder_name: str,
        founder_contact_info: str,
        description: str | None = None,
        location: str | None = None,
    ) -> LibraryFounding:
        """
        Create a library and its first librarian, who is a super librarian.

        Both records are written in one transaction. The founder's secret key
        is returned in plaintext.
        """
        data = validated(
            LibraryCreateSchema, name=name, description=description, location=location
        )
        with self.db_manager.session_scope() as session:
            library = LibraryRepository(session).create(data, commit=False)
            founder = validated(
                LibrarianCreateSchema,
                library_id=library.id,
                name=founder_name,
                contact_info=founder_contact_info,
                is_super=True,
            )
            librarian = LibrarianRepository(session).create(founder, generate_secret_key())
            library = LibraryRepository(session).get_or_raise(library.id)
        return LibraryFounding(library=library, librarian=librarian)

    async def list_libraries(
        self, page: int = 1, page_size: int | None = None
    ) -> PaginatedResponse[Library]:
        pagination = self._pagination(page, page_size)
        with self.db_manager.session_scope() as session:
            return LibraryRepository(session).list_libraries(pagination)

    async def get_library(self, library_id: str) -> Library:
        with self.db_manager.session_scope() as session:
            return self._require_library(session, library_id)

    async def update_library(
        self,
        actor: Librarian | None,
        library_id: str,
        name: str | None = None,
        description: str | None = None,
        location: str | None = None,
    ) -> Library:
        """Update a library. Super librarians of that library only."""
        fields = _provided(name=name, description=description, location=location)
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(actor, library_id, Action.MODIFY_LIBRARY)
            if not fields:
                raise InvalidInputError("No library fields to update")
            data = validated(LibraryUpdateSchema, **fields)
            library = LibraryRepository(session).update(library_id, data)
        logger.info("Library %s updated by %s", library_id, actor.id if actor else None)
        return library

    # === Librarians ===

    async def create_librarian(
        self,
        library_id: str,
        name: str,
        contact_info: str,
        is_super: bool = False,
        actor: Librarian | None = None,
    ) -> Librarian:
        """
        Register a librarian.

        Anyone may register a regular librarian; creating a super librarian
        takes a super librarian of the same library. The returned record
        carries the new secret key in plaintext, once.
        """
        data = validated(
            LibrarianCreateSchema,
            library_id=library_id,
            name=name,
            contact_info=contact_info,
            is_super=is_super,
        )
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            actor = self._fresh_actor(session, actor)
            action = Action.CREATE_SUPER_LIBRARIAN if is_super else Action.CREATE_LIBRARIAN
            self._authorize(actor, library_id, action)
            return LibrarianRepository(session).create(data, generate_secret_key())

    async def list_librarians_secure(
        self, library_id: str, actor: Librarian | None = None
    ) -> list[Librarian]:
        """All librarians of a library, secret keys redacted for the actor."""
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(actor, library_id, Action.READ_LIBRARIANS)
            return LibrarianRepository(session).list_by_library_secure(
                library_id, actor.id if actor else None
            )

    async def search_librarians_secure(
        self,
        library_id: str,
        actor: Librarian | None = None,
        query: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> PaginatedResponse[Librarian]:
        """Paginated librarian listing filtered by name or contact info."""
        pagination = self._pagination(page, page_size)
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(actor, library_id, Action.READ_LIBRARIANS)
            return LibrarianRepository(session).search_by_library_secure(
                library_id,
                actor.id if actor else None,
                query=query,
                pagination=pagination,
                case_insensitive=self.db_manager.supports_case_insensitive_contains,
            )

    async def get_librarian_secure(
        self, library_id: str, librarian_id: str, actor: Librarian | None = None
    ) -> Librarian:
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            self._require_librarian(session, library_id, librarian_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(actor, library_id, Action.READ_LIBRARIANS)
            librarian = LibrarianRepository(session).get_by_id_secure(
                librarian_id, actor.id if actor else None
            )
        if librarian is None:
            raise NotFoundError(f"Librarian {librarian_id} not found in library {library_id}")
        return librarian

    async def update_librarian_super_status(
        self, actor: Librarian | None, library_id: str, librarian_id: str, is_super: bool
    ) -> Librarian:
        """Grant or revoke super status. A super librarian cannot demote themself."""
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            self._require_librarian(session, library_id, librarian_id)
            actor = self._fresh_actor(session, actor)
            actor = self._authorize_librarian(
                actor,
                library_id,
                Action.CHANGE_SUPER_STATUS,
                ResourceRef(librarian_id=librarian_id, is_super=is_super),
            )
            librarian = LibrarianRepository(session).update_super_status(
                librarian_id, is_super, actor.id
            )
        return redact_librarians([librarian], actor, library_id)[0]

    async def update_librarian_details(
        self,
        actor: Librarian | None,
        library_id: str,
        librarian_id: str,
        name: str | None = None,
        contact_info: str | None = None,
    ) -> Librarian:
        """Change name and/or contact info. The librarian themself or a super librarian."""
        fields = _provided(name=name, contact_info=contact_info)
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            self._require_librarian(session, library_id, librarian_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(
                actor,
                library_id,
                Action.UPDATE_LIBRARIAN_DETAILS,
                ResourceRef(librarian_id=librarian_id),
            )
            if not fields:
                raise InvalidInputError("No librarian fields to update")
            data = validated(LibrarianUpdateSchema, **fields)
            librarian = LibrarianRepository(session).update_details(librarian_id, data)
        return redact_librarians([librarian], actor, library_id)[0]

    async def delete_librarian(
        self,
        actor: Librarian | None,
        library_id: str,
        librarian_id: str,
        reassign_books_to: str | None = None,
        delete_books_and_loans: bool = False,
    ) -> LibrarianDeletionResult:
        """
        Delete a librarian of the library (super librarians only, not themself).

        Owned books and loans need a disposition: ``reassign_books_to`` another
        librarian of the library, or ``delete_books_and_loans``.
        """
        if reassign_books_to and delete_books_and_loans:
            raise InvalidInputError(
                "Choose either reassign_books_to or delete_books_and_loans, not both"
            )
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            self._require_librarian(session, library_id, librarian_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(
                actor, library_id, Action.DELETE_LIBRARIAN, ResourceRef(librarian_id=librarian_id)
            )
            result = LibrarianRepository(session).delete(
                librarian_id,
                reassign_books_to=reassign_books_to,
                delete_books_and_loans=delete_books_and_loans,
            )
        self.cache.invalidate_library(library_id)
        logger.info("Librarian %s deleted by %s", librarian_id, actor.id if actor else None)
        return result

    # === Books ===

    async def create_book(
        self,
        actor: Librarian | None,
        library_id: str,
        title: str,
        author: str | None = None,
        description: str | None = None,
        borrow_duration_days: int = 14,
        organizing_rules: str | None = None,
        check_in_instructions: str | None = None,
        check_out_instructions: str | None = None,
        librarian_id: str | None = None,
    ) -> Book:
        """
        Add a book. It is assigned to ``librarian_id``, defaulting to the actor;
        only super librarians can assign books to someone else.
        """
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            actor = self._fresh_actor(session, actor)
            actor = self._authorize_librarian(
                actor, library_id, Action.CREATE_BOOK, ResourceRef(librarian_id=librarian_id)
            )
            owner_id = librarian_id or actor.id
            self._require_librarian(session, library_id, owner_id)
            data = validated(
                BookCreateSchema,
                library_id=library_id,
                librarian_id=owner_id,
                title=title,
                author=author,
                description=description,
                borrow_duration_days=borrow_duration_days,
                organizing_rules=organizing_rules,
                check_in_instructions=check_in_instructions,
                check_out_instructions=check_out_instructions,
            )
            book = BookRepository(session).create(data)

        self.cache.invalidate_library(library_id)
        self._schedule_embedding(book)
        return book

    async def get_book(self, library_id: str, book_id: str) -> Book:
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            return BookRepository(session).get_in_library(library_id, book_id)

    async def list_books(
        self, library_id: str, page: int = 1, page_size: int | None = None
    ) -> PaginatedResponse[Book]:
        pagination = self._pagination(page, page_size)
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            return BookRepository(session).search(
                library_id,
                pagination=pagination,
                case_insensitive=self.db_manager.supports_case_insensitive_contains,
            )

    async def update_book(
        self, actor: Librarian | None, library_id: str, book_id: str, **fields: Any
    ) -> Book:
        """
        Update a book's fields. Allowed for its assigned librarian and super
        librarians; handing the book to another librarian takes a super.
        """
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            books = BookRepository(session)
            current = books.get_in_library(library_id, book_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(
                actor,
                library_id,
                Action.UPDATE_BOOK,
                ResourceRef(librarian_id=current.librarian_id),
            )
            changes = _provided(**fields)
            if not changes:
                raise InvalidInputError("No book fields to update")
            data = validated(BookUpdateSchema, **changes)

            new_owner = data.librarian_id
            if new_owner is not None and new_owner != current.librarian_id:
                self._authorize(
                    actor, library_id, Action.CREATE_BOOK, ResourceRef(librarian_id=new_owner)
                )
                self._require_librarian(session, library_id, new_owner)

            book = books.update(book_id, data)

        self.cache.invalidate_library(library_id)
        if EMBEDDED_FIELDS & changes.keys():
            self._schedule_embedding(book)
        return book

    async def delete_book(self, actor: Librarian | None, library_id: str, book_id: str) -> Book:
        """Delete a book and its loan history."""
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            books = BookRepository(session)
            book = books.get_in_library(library_id, book_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(
                actor, library_id, Action.DELETE_BOOK, ResourceRef(librarian_id=book.librarian_id)
            )
            books.delete(book_id)
        self.cache.invalidate_library(library_id)
        return book

    # === Loans ===

    async def borrow_book(
        self,
        actor: Librarian | None,
        library_id: str,
        book_id: str,
        librarian_id: str | None = None,
    ) -> Loan:
        """
        Check a book out. The borrower defaults to the actor.

        Raises:
            ConflictError: If the book is already on loan
        """
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            BookRepository(session).get_in_library(library_id, book_id)
            actor = self._fresh_actor(session, actor)
            actor = self._authorize_librarian(actor, library_id, Action.BORROW)
            loan = LoanRepository(session).borrow(library_id, book_id, librarian_id or actor.id)
        record_loan_event("borrow", library_id)
        return loan

    async def return_loan(
        self, actor: Librarian | None, library_id: str, book_id: str, loan_id: str
    ) -> Loan:
        """
        Return a loan of the given book.

        Raises:
            ConflictError: If the loan was already returned
        """
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            BookRepository(session).get_in_library(library_id, book_id)
            actor = self._fresh_actor(session, actor)
            self._authorize(actor, library_id, Action.RETURN)
            loan = LoanRepository(session).return_loan(library_id, loan_id, book_id=book_id)
        record_loan_event("return", library_id)
        return loan

    async def get_loan_history(
        self, library_id: str, book_id: str, page: int = 1, page_size: int | None = None
    ) -> PaginatedResponse[Loan]:
        """Loans of a book, newest first."""
        pagination = self._pagination(page, page_size)
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            BookRepository(session).get_in_library(library_id, book_id)
            self._authorize(None, library_id, Action.READ_LOANS)
            return LoanRepository(session).history_for_book(book_id, pagination)

    async def list_active_loans(
        self, library_id: str, page: int = 1, page_size: int | None = None
    ) -> PaginatedResponse[Loan]:
        """Books currently out in a library, earliest due first."""
        pagination = self._pagination(page, page_size)
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            return LoanRepository(session).active_for_library(library_id, pagination)

    async def get_librarian_loans(
        self, library_id: str, librarian_id: str, active_only: bool = False
    ) -> list[Loan]:
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
            self._require_librarian(session, library_id, librarian_id)
            return LoanRepository(session).for_borrower(librarian_id, active_only=active_only)

    # === Search ===

    async def search_books(
        self, library_id: str, query: str | None = None, page: int = 1, limit: int = 20
    ) -> SearchResult:
        """Hybrid lexical + semantic search over a library's books."""
        with self.db_manager.session_scope() as session:
            self._require_library(session, library_id)
        return await self.search_engine.search(library_id, query, page=page, limit=limit)

    # === Health ===

    async def health(self) -> dict[str, Any]:
        """Store connectivity and background job status."""
        database_ok = self.db_manager.verify_connection()
        status: dict[str, Any] = {
            "status": "healthy" if database_ok else "unhealthy",
            "database": "connected" if database_ok else "unavailable",
            "semantic_search": self.search_engine.semantic_enabled,
        }
        if self.job_queue is not None:
            stats = self.job_queue.stats
            status["embedding_queue"] = {
                "running": self.job_queue.running,
                "pending": stats.pending,
                "succeeded": stats.succeeded,
                "failed": stats.failed,
            }
        return status


__all__ = ["LibraryFounding", "LibraryService", "validated"]
