"""Tests for the repository layer.

Repositories are exercised directly against an in-memory database; results
come back as Pydantic models, never ORM objects.
"""

from collections.abc import Generator

import pytest
from sqlalchemy.orm import Session

from usufruit.auth.authenticator import generate_secret_key
from usufruit.database import (
    BookCreateSchema,
    BookRepository,
    BookUpdateSchema,
    LibrarianCreateSchema,
    LibrarianRepository,
    LibrarianUpdateSchema,
    LibraryCreateSchema,
    LibraryRepository,
    LibraryUpdateSchema,
    LoanRepository,
)
from usufruit.database.repository import PaginatedResponse, PaginationParams, generate_id
from usufruit.database.session import DatabaseManager
from usufruit.errors import ConflictError, InvalidInputError, NotFoundError
from usufruit.models import Book, Library


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    s = db_manager.create_session()
    yield s
    s.close()


@pytest.fixture
def library(session: Session) -> Library:
    return LibraryRepository(session).create(LibraryCreateSchema(name="Main Street Library"))


@pytest.fixture
def staff(session: Session, library: Library):
    """One super librarian and two regular librarians."""
    repo = LibrarianRepository(session)

    def add(name: str, is_super: bool = False):
        data = LibrarianCreateSchema(
            library_id=library.id,
            name=name,
            contact_info=f"{name.lower()}@example.org",
            is_super=is_super,
        )
        return repo.create(data, generate_secret_key())

    return add("Ada", is_super=True), add("Ben"), add("Cleo")


def add_book(session: Session, library_id: str, librarian_id: str, title: str, **extra) -> Book:
    return BookRepository(session).create(
        BookCreateSchema(library_id=library_id, librarian_id=librarian_id, title=title, **extra)
    )


class TestPagination:
    def test_offset(self):
        assert PaginationParams(page=3, page_size=10).offset == 20

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (1, 101)])
    def test_invalid_params(self, page, page_size):
        with pytest.raises(InvalidInputError):
            PaginationParams(page=page, page_size=page_size).validate_params()

    def test_build_metadata(self):
        pagination = PaginationParams(page=2, page_size=2)
        page = PaginatedResponse[int].build([1, 2], total=5, pagination=pagination)
        assert page.total_pages == 3
        assert page.has_next is True
        assert page.has_previous is True

    def test_generated_ids_are_prefixed_and_unique(self):
        ids = {generate_id("book") for _ in range(20)}
        assert len(ids) == 20
        assert all(i.startswith("book_") for i in ids)


class TestLibraryRepository:
    def test_create_and_get(self, session: Session):
        repo = LibraryRepository(session)
        created = repo.create(LibraryCreateSchema(name="  Seed Library ", location="Hall B"))

        assert created.id.startswith("library_")
        assert created.name == "Seed Library"
        assert repo.get_or_raise(created.id).location == "Hall B"

    def test_missing_library(self, session: Session):
        with pytest.raises(NotFoundError):
            LibraryRepository(session).get_or_raise("library_missing")

    def test_update_only_given_fields(self, session: Session, library: Library):
        repo = LibraryRepository(session)
        updated = repo.update(library.id, LibraryUpdateSchema(description="Tools and games"))

        assert updated.description == "Tools and games"
        assert updated.name == "Main Street Library"

    def test_list_newest_first(self, session: Session):
        repo = LibraryRepository(session)
        for name in ("First", "Second", "Third"):
            repo.create(LibraryCreateSchema(name=name))

        page = repo.list_libraries(PaginationParams(page=1, page_size=2))
        assert page.total == 3
        assert len(page.items) == 2
        assert page.has_next is True


class TestLibrarianRepository:
    def test_create_returns_key_once(self, session: Session, staff):
        ada, _, _ = staff
        assert len(ada.secret_key) == 64
        assert LibrarianRepository(session).get_by_secret_key(ada.secret_key).id == ada.id

    def test_secure_list_for_super(self, session: Session, library: Library, staff):
        ada, _, _ = staff
        listed = LibrarianRepository(session).list_by_library_secure(library.id, ada.id)

        assert len(listed) == 3
        assert all(lib.secret_key for lib in listed)

    def test_secure_list_for_regular(self, session: Session, library: Library, staff):
        _, ben, _ = staff
        listed = LibrarianRepository(session).list_by_library_secure(library.id, ben.id)

        keys = {lib.id: lib.secret_key for lib in listed}
        assert keys[ben.id] == ben.secret_key
        assert sum(1 for key in keys.values() if key) == 1

    def test_secure_list_anonymous(self, session: Session, library: Library, staff):
        listed = LibrarianRepository(session).list_by_library_secure(library.id, None)
        assert all(lib.secret_key is None for lib in listed)

    def test_secure_get(self, session: Session, staff):
        ada, ben, cleo = staff
        repo = LibrarianRepository(session)

        assert repo.get_by_id_secure(cleo.id, ada.id).secret_key == cleo.secret_key
        assert repo.get_by_id_secure(cleo.id, cleo.id).secret_key == cleo.secret_key
        assert repo.get_by_id_secure(cleo.id, ben.id).secret_key is None
        assert repo.get_by_id_secure("librarian_missing", ada.id) is None

    def test_search_filters_and_redacts(self, session: Session, library: Library, staff):
        _, ben, _ = staff
        page = LibrarianRepository(session).search_by_library_secure(
            library.id, ben.id, query="CLEO", pagination=PaginationParams(page=1, page_size=10)
        )

        assert page.total == 1
        assert page.items[0].name == "Cleo"
        assert page.items[0].secret_key is None

    def test_update_details(self, session: Session, staff):
        _, ben, _ = staff
        updated = LibrarianRepository(session).update_details(
            ben.id, LibrarianUpdateSchema(contact_info="+44 20 7946 0018")
        )
        assert updated.contact_info == "+44 20 7946 0018"
        assert updated.name == "Ben"

    def test_update_schema_rejects_privileged_fields(self):
        with pytest.raises(ValueError):
            LibrarianUpdateSchema(is_super=True)
        with pytest.raises(ValueError):
            LibrarianUpdateSchema(secret_key="x" * 64)


class TestLibrarianDeletion:
    @pytest.fixture
    def owned(self, session: Session, library: Library, staff):
        """Ben owns two books; one is on loan to Cleo, Ben has borrowed Ada's book."""
        ada, ben, cleo = staff
        drill = add_book(session, library.id, ben.id, "Cordless Drill")
        add_book(session, library.id, ben.id, "Ladder")
        tent = add_book(session, library.id, ada.id, "Four-person Tent")

        loans = LoanRepository(session)
        loans.borrow(library.id, drill.id, cleo.id)
        loans.borrow(library.id, tent.id, ben.id)
        return staff

    def test_dependents_block_plain_delete(self, session: Session, owned):
        _, ben, _ = owned
        repo = LibrarianRepository(session)

        with pytest.raises(ConflictError):
            repo.delete(ben.id)

        assert repo.get_by_id(ben.id) is not None
        assert repo.count_dependents(ben.id) == (2, 2)

    def test_reassign(self, session: Session, library: Library, owned):
        ada, ben, _ = owned
        result = LibrarianRepository(session).delete(ben.id, reassign_books_to=ada.id)

        assert result.reassigned_to == ada.id
        assert result.books_reassigned == 2
        assert result.loans_reassigned == 1

        session.expire_all()
        page = BookRepository(session).search(library.id)
        assert {book.librarian_id for book in page.items} == {ada.id}
        assert LibrarianRepository(session).get_by_id(ben.id) is None

    def test_delete_books_and_loans(self, session: Session, library: Library, owned):
        _, ben, _ = owned
        result = LibrarianRepository(session).delete(ben.id, delete_books_and_loans=True)

        assert result.books_deleted == 2
        assert result.loans_deleted == 2

        session.expire_all()
        titles = [book.title for book in BookRepository(session).search(library.id).items]
        assert titles == ["Four-person Tent"]
        assert LoanRepository(session).active_for_library(library.id).total == 0

    def test_both_dispositions_rejected(self, session: Session, owned):
        ada, ben, _ = owned
        with pytest.raises(InvalidInputError):
            LibrarianRepository(session).delete(
                ben.id, reassign_books_to=ada.id, delete_books_and_loans=True
            )

    def test_reassign_to_self_or_missing(self, session: Session, owned):
        _, ben, _ = owned
        repo = LibrarianRepository(session)

        with pytest.raises(ConflictError):
            repo.delete(ben.id, reassign_books_to=ben.id)
        with pytest.raises(NotFoundError):
            repo.delete(ben.id, reassign_books_to="librarian_missing")
        assert repo.get_by_id(ben.id) is not None

    def test_reassign_across_libraries_rejected(self, session: Session, owned):
        _, ben, _ = owned
        elsewhere = LibraryRepository(session).create(LibraryCreateSchema(name="Elsewhere"))
        stranger = LibrarianRepository(session).create(
            LibrarianCreateSchema(library_id=elsewhere.id, name="Dev", contact_info="dev@x.org"),
            generate_secret_key(),
        )

        with pytest.raises(ConflictError):
            LibrarianRepository(session).delete(ben.id, reassign_books_to=stranger.id)

        session.expire_all()
        assert BookRepository(session).search(elsewhere.id).total == 0


class TestBookRepository:
    def test_get_in_library_scopes_by_library(self, session: Session, library: Library, staff):
        ada, _, _ = staff
        book = add_book(session, library.id, ada.id, "Sewing Machine")
        other = LibraryRepository(session).create(LibraryCreateSchema(name="Other"))

        repo = BookRepository(session)
        assert repo.get_in_library(library.id, book.id).title == "Sewing Machine"
        with pytest.raises(NotFoundError):
            repo.get_in_library(other.id, book.id)

    def test_search_matches_title_author_description(
        self, session: Session, library: Library, staff
    ):
        ada, _, _ = staff
        add_book(session, library.id, ada.id, "Arduino Projects", author="Simon Monk")
        add_book(session, library.id, ada.id, "Bike Repair Manual", description="Fix punctures")
        add_book(session, library.id, ada.id, "Tent")
        repo = BookRepository(session)

        assert [b.title for b in repo.search(library.id, "arduino").items] == ["Arduino Projects"]
        assert [b.title for b in repo.search(library.id, "MONK").items] == ["Arduino Projects"]
        assert [b.title for b in repo.search(library.id, "punct").items] == ["Bike Repair Manual"]
        assert repo.search(library.id).total == 3
        assert repo.lexical_match_ids(library.id, "a") == {
            b.id for b in repo.search(library.id, "a").items
        }

    def test_update_clears_stale_embedding(self, session: Session, library: Library, staff):
        ada, _, _ = staff
        book = add_book(session, library.id, ada.id, "Arduino Projects")
        repo = BookRepository(session)
        repo.set_embedding(book.id, [1.0, 0.0, 0.0, 0.0])
        assert repo.get_by_id(book.id).has_embedding is True

        repo.update(book.id, BookUpdateSchema(borrow_duration_days=7))
        assert repo.get_by_id(book.id).has_embedding is True

        repo.update(book.id, BookUpdateSchema(description="Microcontroller builds"))
        assert repo.get_by_id(book.id).has_embedding is False

    def test_embedding_bookkeeping(self, session: Session, library: Library, staff):
        ada, _, _ = staff
        first = add_book(session, library.id, ada.id, "First")
        second = add_book(session, library.id, ada.id, "Second")
        repo = BookRepository(session)

        repo.set_embedding(first.id, [0.6, 0.8])
        assert repo.count_embedded(library.id) == 1
        assert [b.id for b in repo.missing_embeddings(library.id, 10)] == [second.id]
        assert repo.embedded_vectors(library.id) == [(first.id, [0.6, 0.8])]
        assert repo.set_embedding("book_missing", [1.0]) is False

    def test_get_many_preserves_order(self, session: Session, library: Library, staff):
        ada, _, _ = staff
        a = add_book(session, library.id, ada.id, "A")
        b = add_book(session, library.id, ada.id, "B")
        repo = BookRepository(session)

        assert [x.id for x in repo.get_many([b.id, "book_missing", a.id])] == [b.id, a.id]

    def test_delete_removes_loans(self, session: Session, library: Library, staff):
        ada, ben, _ = staff
        book = add_book(session, library.id, ada.id, "Pressure Washer")
        loans = LoanRepository(session)
        loan = loans.borrow(library.id, book.id, ben.id)
        loans.return_loan(library.id, loan.id)
        loans.borrow(library.id, book.id, ben.id)

        assert BookRepository(session).delete(book.id) == 2
        assert BookRepository(session).get_by_id(book.id) is None

    def test_invalid_duration_rejected(self):
        with pytest.raises(ValueError):
            BookCreateSchema(
                library_id="library_x",
                librarian_id="librarian_x",
                title="X",
                borrow_duration_days=0,
            )
