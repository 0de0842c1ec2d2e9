"""Tests for the read-only MCP resources and server assembly."""

import pytest
import pytest_asyncio
from fastmcp import FastMCP
from fastmcp.exceptions import ResourceError

from usufruit.resources import CatalogResources, HealthResources, LoanResources, build_resources
from usufruit.server import create_server, load_embedder


@pytest.fixture
def catalog(service):
    return CatalogResources(service)


@pytest.fixture
def loans(service):
    return LoanResources(service)


@pytest_asyncio.fixture
async def stocked(service, library_setup):
    library_id = library_setup.library.id
    ladder = await service.create_book(library_setup.member, library_id, title="Ladder")
    await service.create_book(library_setup.member, library_id, title="Axe")
    loan = await service.borrow_book(library_setup.other_member, library_id, ladder.id)
    return ladder, loan


class TestCatalogResources:
    async def test_list_libraries(self, catalog, library_factory, service):
        await library_factory(service, name="First")
        await library_factory(service, name="Second")

        data = await catalog.list_libraries()
        assert data["total"] == 2
        assert {item["name"] for item in data["items"]} == {"First", "Second"}

    async def test_get_library(self, catalog, library_setup):
        data = await catalog.get_library(library_id=library_setup.library.id)
        assert data["name"] == "Tool Shed"

    async def test_catalog_is_ordered_by_title(self, catalog, library_setup, stocked):
        data = await catalog.list_books(library_id=library_setup.library.id)
        assert [item["title"] for item in data["items"]] == ["Axe", "Ladder"]

    async def test_get_book(self, catalog, library_setup, stocked):
        ladder, _loan = stocked
        data = await catalog.get_book(library_id=library_setup.library.id, book_id=ladder.id)
        assert data["id"] == ladder.id

    async def test_missing_records_raise_resource_error(self, catalog, library_setup):
        with pytest.raises(ResourceError, match="not found"):
            await catalog.get_library(library_id="library_missing")
        with pytest.raises(ResourceError):
            await catalog.get_book(library_id=library_setup.library.id, book_id="book_missing")


class TestLoanResources:
    async def test_book_history(self, loans, library_setup, stocked):
        ladder, loan = stocked
        data = await loans.book_history(library_id=library_setup.library.id, book_id=ladder.id)
        assert [item["id"] for item in data["items"]] == [loan.id]

    async def test_active_loans(self, loans, library_setup, stocked):
        data = await loans.active_loans(library_id=library_setup.library.id)
        assert data["total"] == 1
        assert data["overdue_count"] == 0

    async def test_borrower_loans(self, loans, library_setup, stocked):
        _ladder, loan = stocked
        data = await loans.borrower_loans(
            library_id=library_setup.library.id, librarian_id=library_setup.other_member.id
        )
        assert data["active_count"] == 1
        assert data["items"][0]["id"] == loan.id

    async def test_borrower_from_other_library(
        self, loans, library_setup, library_factory, service
    ):
        elsewhere = await library_factory(service, name="Elsewhere")
        with pytest.raises(ResourceError):
            await loans.borrower_loans(
                library_id=library_setup.library.id, librarian_id=elsewhere.member.id
            )


class TestServerAssembly:
    async def test_health_resource(self, service):
        data = await HealthResources(service).health()
        assert data["status"] == "healthy"

    def test_build_resources(self, service):
        resources = build_resources(service)
        uris = {r.get("uri_template", r.get("uri")) for r in resources}

        assert "usufruit://libraries" in uris
        assert "usufruit://health" in uris
        assert "usufruit://libraries/{library_id}/books/{book_id}/loans" in uris
        assert all(r["mime_type"] == "application/json" for r in resources)

    def test_create_server(self, test_config, db_manager):
        mcp, service = create_server(test_config, db_manager=db_manager)

        assert isinstance(mcp, FastMCP)
        assert service.db_manager is db_manager
        assert service.job_queue is None

    def test_load_embedder_disabled(self, test_config):
        assert load_embedder(test_config) is None
