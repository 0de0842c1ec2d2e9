"""Catalog Resources - Libraries and Books

Read-only views of the lending catalog. These need no credential: library
details, catalogs and books are public within the deployment.

Resources:
- usufruit://libraries - Newest libraries first
- usufruit://libraries/{library_id} - Library details
- usufruit://libraries/{library_id}/books - The library's catalog (first page)
- usufruit://libraries/{library_id}/books/{book_id} - Book details
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..errors import UsufruitError
from ..service import LibraryService

logger = logging.getLogger(__name__)


class CatalogResources:
    """Resource handlers for libraries and books."""

    def __init__(self, service: LibraryService):
        self.service = service

    async def list_libraries(self) -> dict[str, Any]:
        """Returns the first page of libraries, newest first."""
        try:
            page = await self.service.list_libraries()
            return page.model_dump(mode="json")
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    async def get_library(self, library_id: str) -> dict[str, Any]:
        try:
            library = await self.service.get_library(library_id)
            return library.model_dump(mode="json")
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    async def list_books(self, library_id: str) -> dict[str, Any]:
        """Returns the first page of a library's catalog, ordered by title."""
        try:
            page = await self.service.list_books(library_id)
            return page.model_dump(mode="json")
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    async def get_book(self, library_id: str, book_id: str) -> dict[str, Any]:
        try:
            book = await self.service.get_book(library_id, book_id)
            return book.model_dump(mode="json")
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "uri": "usufruit://libraries",
                "name": "Libraries",
                "description": "Community lending libraries, newest first",
                "mime_type": "application/json",
                "handler": self.list_libraries,
            },
            {
                "uri_template": "usufruit://libraries/{library_id}",
                "name": "Library Details",
                "description": "Name, description and location of a library",
                "mime_type": "application/json",
                "handler": self.get_library,
            },
            {
                "uri_template": "usufruit://libraries/{library_id}/books",
                "name": "Library Catalog",
                "description": (
                    "Items a library lends, ordered by title. "
                    "Use the search_books tool for filtering and paging."
                ),
                "mime_type": "application/json",
                "handler": self.list_books,
            },
            {
                "uri_template": "usufruit://libraries/{library_id}/books/{book_id}",
                "name": "Book Details",
                "description": (
                    "A borrowable item with its loan period and check-in/check-out instructions"
                ),
                "mime_type": "application/json",
                "handler": self.get_book,
            },
        ]
