"""Test configuration and fixtures for usufruit.

Every test gets its own in-memory database and its own service instance, so
nothing leaks between tests:

1. Isolated databases - a fresh DatabaseManager per test
2. Configuration overrides - explicit ServerConfig objects, no env lookups
3. Deterministic embeddings - FakeEmbedder maps keywords to fixed axes
4. Logfire configured locally, never sending data

The embedding fakes live in fakes.py.
"""

from collections.abc import Generator
from pathlib import Path

import logfire
import pytest
import pytest_asyncio
from pydantic import BaseModel

from usufruit.config import ServerConfig, reset_config
from usufruit.database.session import DatabaseManager
from usufruit.models import Librarian, Library
from usufruit.service import LibraryService

from fakes import FakeEmbedder


def pytest_configure(config):
    """Keep Logfire local for the whole run."""
    logfire.configure(send_to_logfire=False, console=False)
    config.addinivalue_line("markers", "concurrency: tests that race real threads")


# === Configuration Fixtures ===


@pytest.fixture(autouse=True)
def isolated_config() -> Generator[None, None, None]:
    """Reset the process-wide configuration around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_config(tmp_path: Path) -> ServerConfig:
    """Lexical-only configuration with small pages."""
    return ServerConfig(
        server_name="usufruit-test",
        database_path=tmp_path / "usufruit.db",
        database_url="sqlite:///:memory:",
        default_page_size=20,
        enable_semantic_search=False,
    )


@pytest.fixture
def semantic_config(tmp_path: Path) -> ServerConfig:
    """Semantic search on, backfill on first search, FakeEmbedder dimensions."""
    return ServerConfig(
        server_name="usufruit-test",
        database_path=tmp_path / "usufruit.db",
        database_url="sqlite:///:memory:",
        default_page_size=20,
        enable_semantic_search=True,
        semantic_threshold=0.4,
        embedding_dimensions=4,
        embedding_timeout=2.0,
        min_embedded_books=5,
        embedding_backfill_batch_size=20,
    )


# === Database Fixtures ===


@pytest.fixture
def db_manager() -> Generator[DatabaseManager, None, None]:
    """A fresh in-memory database with the schema created."""
    manager = DatabaseManager("sqlite:///:memory:")
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def file_db_manager(tmp_path: Path) -> Generator[DatabaseManager, None, None]:
    """A file-backed database, for tests that need real concurrent connections."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'concurrency.db'}")
    manager.init_database()
    yield manager
    manager.close()


# === Service Fixtures ===


@pytest_asyncio.fixture
async def service(db_manager: DatabaseManager, test_config: ServerConfig):
    svc = LibraryService(db_manager, config=test_config)
    yield svc
    await svc.close()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest_asyncio.fixture
async def semantic_service(
    db_manager: DatabaseManager, semantic_config: ServerConfig, fake_embedder: FakeEmbedder
):
    svc = LibraryService(db_manager, config=semantic_config, embedder=fake_embedder)
    yield svc
    await svc.close()


class LibrarySetup(BaseModel):
    """A library with one super librarian and two regular members."""

    library: Library
    founder: Librarian
    member: Librarian
    other_member: Librarian


async def build_library(svc: LibraryService, name: str = "Tool Shed") -> LibrarySetup:
    founding = await svc.create_library_with_founder(
        name=name,
        founder_name="Ada Okafor",
        founder_contact_info="ada@example.org",
        description="Community tool library",
        location="Back of the community centre",
    )
    member = await svc.create_librarian(founding.library.id, "Ben Ito", "ben@example.org")
    other = await svc.create_librarian(founding.library.id, "Cleo Park", "cleo@example.org")
    return LibrarySetup(
        library=founding.library,
        founder=founding.librarian,
        member=member,
        other_member=other,
    )


@pytest_asyncio.fixture
async def library_setup(service: LibraryService) -> LibrarySetup:
    return await build_library(service)


@pytest.fixture
def library_factory():
    """``await library_factory(service, name)`` builds another staffed library."""
    return build_library
