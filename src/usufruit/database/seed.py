"""
Sample data for usufruit.

Generates a small, reproducible community library setup with Faker:

- one or more libraries, each with a super librarian and a few regular ones
- a catalogue of borrowable items spread over those librarians
- a handful of loans, some returned and one still out

Everything goes through the repositories, so the seeded data obeys the same
invariants as data created through the service.
"""

import logging
import random

from faker import Faker
from pydantic import BaseModel, Field

from ..auth.authenticator import generate_secret_key
from .book_repository import BookCreateSchema, BookRepository
from .librarian_repository import LibrarianCreateSchema, LibrarianRepository
from .library_repository import LibraryCreateSchema, LibraryRepository
from .loan_repository import LoanRepository
from .session import DatabaseManager

logger = logging.getLogger(__name__)

SAMPLE_ITEMS = [
    ("The Art of Community", "Jono Bacon", "Building the new age of participation"),
    ("Patterns of Software", "Richard Gabriel", "Tales from the software community"),
    ("Arduino Projects", "Simon Monk", "Microcontroller builds for beginners"),
    ("Bike Repair Manual", "Chris Sidwells", "Fixing brakes, gears and punctures"),
    ("Cordless Drill (18V)", "Makita", "Two batteries and a charger included"),
    ("Camping Tent", "Vango", "Four-person dome tent with groundsheet"),
    ("Sourdough Starter Guide", "Sarah Owens", "Keeping a starter alive and baking bread"),
    ("Soldering Iron Kit", None, "Temperature controlled iron, stand and solder"),
    ("Seed Saving Handbook", "Suzanne Ashworth", "Collecting and storing vegetable seeds"),
    ("Board Game: Catan", "Klaus Teuber", "Trading and building for 3-4 players"),
]


class SeedSummary(BaseModel):
    """Ids created by a seeding run."""

    library_ids: list[str] = Field(default_factory=list)
    super_librarian_ids: list[str] = Field(default_factory=list)
    librarian_ids: list[str] = Field(default_factory=list)
    book_ids: list[str] = Field(default_factory=list)
    loan_ids: list[str] = Field(default_factory=list)


def seed_database(
    db_manager: DatabaseManager,
    num_libraries: int = 1,
    librarians_per_library: int = 3,
    seed: int = 42,
) -> SeedSummary:
    """
    Populate the database with sample libraries, librarians, books and loans.

    The schema must already exist. Runs are reproducible for a given seed,
    except for ids and secret keys, which are always random.
    """
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)
    summary = SeedSummary()

    with db_manager.session_scope() as session:
        libraries = LibraryRepository(session)
        librarians = LibrarianRepository(session)
        books = BookRepository(session)
        loans = LoanRepository(session)

        for _ in range(num_libraries):
            library = libraries.create(
                LibraryCreateSchema(
                    name=f"{fake.city()} Community Library",
                    description="A distributed community library for sharing things",
                    location=fake.street_address(),
                )
            )
            summary.library_ids.append(library.id)

            members = []
            for i in range(librarians_per_library):
                librarian = librarians.create(
                    LibrarianCreateSchema(
                        library_id=library.id,
                        name=fake.name(),
                        contact_info=fake.email(),
                        is_super=i == 0,
                    ),
                    secret_key=generate_secret_key(),
                )
                members.append(librarian)
                summary.librarian_ids.append(librarian.id)
                if librarian.is_super:
                    summary.super_librarian_ids.append(librarian.id)

            for title, author, description in SAMPLE_ITEMS:
                owner = rng.choice(members)
                book = books.create(
                    BookCreateSchema(
                        library_id=library.id,
                        librarian_id=owner.id,
                        title=title,
                        author=author,
                        description=description,
                        borrow_duration_days=rng.choice([7, 14, 21]),
                        organizing_rules=f"Shelf {rng.choice('ABCDE')}",
                        check_in_instructions="Check condition and clean if needed",
                    )
                )
                summary.book_ids.append(book.id)

            # A few completed loans, then one still out
            for book_id in rng.sample(summary.book_ids[-len(SAMPLE_ITEMS) :], 3):
                borrower = rng.choice(members)
                loan = loans.borrow(library.id, book_id, borrower.id)
                loans.return_loan(library.id, loan.id)
                summary.loan_ids.append(loan.id)
            loan = loans.borrow(library.id, summary.book_ids[-1], members[-1].id)
            summary.loan_ids.append(loan.id)

            logger.info(
                "Seeded library %s with %d librarians and %d books",
                library.id,
                len(members),
                len(SAMPLE_ITEMS),
            )

    return summary
