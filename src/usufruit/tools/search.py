"""
Search tool for usufruit.

Lexical matches on title, author and description come first. When semantic
search is enabled and the page has room, books that are similar in meaning
are appended; the response metadata says whether that happened.
"""

from typing import Any

from pydantic import BaseModel, Field

from ..service import LibraryService
from .responses import guarded, parse_arguments, success


class SearchBooksInput(BaseModel):
    """Input schema for the search_books tool."""

    library_id: str = Field(..., description="Library to search")
    query: str | None = Field(
        default=None,
        description="Search text; omit to list the whole catalog",
        max_length=500,
        examples=["electronics", "camping gear"],
    )
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, description="Results per page, capped at 100")


class SearchTools:
    def __init__(self, service: LibraryService):
        self.service = service

    async def search_books(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(SearchBooksInput, arguments)
            result = await self.service.search_books(
                params.library_id, params.query, page=params.page, limit=params.limit
            )
            lines = [
                f"Found {result.pagination.total} book(s)"
                + (f" for '{params.query}'" if params.query else "")
                + f" (page {result.pagination.page} of {max(result.pagination.total_pages, 1)})"
            ]
            lines.extend(
                f"- {book.title}" + (f" by {book.author}" if book.author else "")
                for book in result.items
            )
            return success("\n".join(lines), **result.model_dump(mode="json"))

        return await guarded("search_books", run)

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "name": "search_books",
                "description": (
                    "Search a library's catalog. Text matches come first; with semantic "
                    "search enabled, related items (e.g. 'electronics' finding "
                    "'Arduino Projects') fill the rest of the page."
                ),
                "inputSchema": SearchBooksInput.model_json_schema(),
                "handler": self.search_books,
            }
        ]
