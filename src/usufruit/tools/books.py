"""
Book tools for usufruit.

Books belong to a library and are assigned to one librarian, who may edit or
delete them; super librarians may do so for any book in their library.
"""

import logging
from typing import Any

from pydantic import Field

from ..service import LibraryService
from .responses import AuthenticatedInput, guarded, parse_arguments, success

logger = logging.getLogger(__name__)

_BOOK_FIELDS = (
    "title",
    "author",
    "description",
    "borrow_duration_days",
    "organizing_rules",
    "check_in_instructions",
    "check_out_instructions",
    "librarian_id",
)


class CreateBookInput(AuthenticatedInput):
    """Input schema for the create_book tool."""

    library_id: str = Field(..., description="Library to add the book to")
    title: str = Field(..., min_length=1, max_length=500, examples=["Cordless Drill (18V)"])
    author: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    borrow_duration_days: int = Field(default=14, ge=1, le=365)
    organizing_rules: str | None = None
    check_in_instructions: str | None = None
    check_out_instructions: str | None = None
    librarian_id: str | None = Field(
        default=None,
        description="Librarian to assign the book to; defaults to the caller",
    )


class UpdateBookInput(AuthenticatedInput):
    """Input schema for the update_book tool. Omitted fields are left unchanged."""

    library_id: str
    book_id: str
    title: str | None = Field(default=None, min_length=1, max_length=500)
    author: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    borrow_duration_days: int | None = Field(default=None, ge=1, le=365)
    organizing_rules: str | None = None
    check_in_instructions: str | None = None
    check_out_instructions: str | None = None
    librarian_id: str | None = Field(
        default=None, description="Hand the book to another librarian (super librarians)"
    )


class DeleteBookInput(AuthenticatedInput):
    library_id: str
    book_id: str


class BookTools:
    """Tool handlers for books."""

    def __init__(self, service: LibraryService):
        self.service = service

    async def create_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(CreateBookInput, arguments)
            actor = await self.service.authenticate(params.credential())
            book = await self.service.create_book(
                actor,
                params.library_id,
                title=params.title,
                author=params.author,
                description=params.description,
                borrow_duration_days=params.borrow_duration_days,
                organizing_rules=params.organizing_rules,
                check_in_instructions=params.check_in_instructions,
                check_out_instructions=params.check_out_instructions,
                librarian_id=params.librarian_id,
            )
            return success(f"Added '{book.title}'", book=book.model_dump(mode="json"))

        return await guarded("create_book", run)

    async def update_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(UpdateBookInput, arguments)
            actor = await self.service.authenticate(params.credential())
            fields = {name: getattr(params, name) for name in _BOOK_FIELDS}
            book = await self.service.update_book(
                actor, params.library_id, params.book_id, **fields
            )
            return success(f"Updated '{book.title}'", book=book.model_dump(mode="json"))

        return await guarded("update_book", run)

    async def delete_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(DeleteBookInput, arguments)
            actor = await self.service.authenticate(params.credential())
            book = await self.service.delete_book(actor, params.library_id, params.book_id)
            return success(
                f"Deleted '{book.title}' and its loan history",
                book=book.model_dump(mode="json"),
            )

        return await guarded("delete_book", run)

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "name": "create_book",
                "description": (
                    "Add a borrowable item to a library. It is assigned to the caller "
                    "unless a super librarian passes librarian_id."
                ),
                "inputSchema": CreateBookInput.model_json_schema(),
                "handler": self.create_book,
            },
            {
                "name": "update_book",
                "description": (
                    "Edit a book. Allowed for its assigned librarian and super librarians."
                ),
                "inputSchema": UpdateBookInput.model_json_schema(),
                "handler": self.update_book,
            },
            {
                "name": "delete_book",
                "description": (
                    "Delete a book together with its loan history. Allowed for its "
                    "assigned librarian and super librarians."
                ),
                "inputSchema": DeleteBookInput.model_json_schema(),
                "handler": self.delete_book,
            },
        ]
