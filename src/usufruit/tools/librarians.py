"""
Librarian tools for usufruit.

Librarians authenticate with their secret key. Every read of librarian
records goes through the secure service methods, so keys only appear for
their owner and for super librarians of the same library.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..errors import UnauthorizedError
from ..service import LibraryService
from .responses import AuthenticatedInput, dump_librarian, guarded, parse_arguments, success

logger = logging.getLogger(__name__)


class AuthenticateInput(AuthenticatedInput):
    """Input schema for the authenticate tool."""

    library_id: str | None = Field(
        default=None, description="Only accept a key that belongs to this library"
    )


class CreateLibrarianInput(AuthenticatedInput):
    """Input schema for the create_librarian tool."""

    library_id: str = Field(..., description="Library to join")
    name: str = Field(..., min_length=1, max_length=200)
    contact_info: str = Field(..., min_length=1, max_length=500)
    is_super: bool = Field(
        default=False,
        description="Create a super librarian (requires a super librarian's secret key)",
    )


class ListLibrariansInput(AuthenticatedInput):
    """Input schema for the list_librarians tool."""

    library_id: str
    query: str | None = Field(default=None, description="Filter by name or contact info")
    page: int | None = Field(default=None, ge=1)
    limit: int | None = Field(default=None, ge=1, description="Page size, capped at 100")


class GetLibrarianInput(AuthenticatedInput):
    library_id: str
    librarian_id: str


class UpdateLibrarianInput(AuthenticatedInput):
    """Input schema for the update_librarian tool."""

    library_id: str
    librarian_id: str
    name: str | None = Field(default=None, max_length=200)
    contact_info: str | None = Field(default=None, max_length=500)


class SetSuperStatusInput(AuthenticatedInput):
    library_id: str
    librarian_id: str
    is_super: bool


class DeleteLibrarianInput(AuthenticatedInput):
    """Input schema for the delete_librarian tool."""

    library_id: str
    librarian_id: str
    reassign_books_to: str | None = Field(
        default=None, description="Librarian of the same library who takes over books and loans"
    )
    delete_books_and_loans: bool = Field(
        default=False, description="Delete the librarian's books and loans instead"
    )

    @model_validator(mode="after")
    def one_disposition(self) -> "DeleteLibrarianInput":
        if self.reassign_books_to and self.delete_books_and_loans:
            raise ValueError("Choose either reassign_books_to or delete_books_and_loans")
        return self


class LibrarianTools:
    """Tool handlers for librarians."""

    def __init__(self, service: LibraryService):
        self.service = service

    async def authenticate(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(AuthenticateInput, arguments)
            librarian = await self.service.authenticate(params.credential())
            if librarian is None:
                raise UnauthorizedError("Invalid secret key")
            if params.library_id is not None and librarian.library_id != params.library_id:
                raise UnauthorizedError("Invalid secret key for this library")
            library = await self.service.get_library(librarian.library_id)
            return success(
                f"Authenticated as {librarian.name} of '{library.name}'",
                librarian=dump_librarian(librarian),
                library=library.model_dump(mode="json"),
            )

        return await guarded("authenticate", run)

    async def create_librarian(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(CreateLibrarianInput, arguments)
            actor = await self.service.authenticate(params.credential())
            librarian = await self.service.create_librarian(
                params.library_id,
                params.name,
                params.contact_info,
                is_super=params.is_super,
                actor=actor,
            )
            kind = "super librarian" if librarian.is_super else "librarian"
            return success(
                f"Registered {kind} {librarian.name}. The secret key in this response "
                "is the librarian's login credential.",
                librarian=dump_librarian(librarian),
            )

        return await guarded("create_librarian", run)

    async def list_librarians(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(ListLibrariansInput, arguments)
            actor = await self.service.authenticate(params.credential())
            if params.query is None and params.page is None and params.limit is None:
                librarians = await self.service.list_librarians_secure(params.library_id, actor)
                return success(
                    f"{len(librarians)} librarian(s)",
                    librarians=[dump_librarian(lib) for lib in librarians],
                )

            page = await self.service.search_librarians_secure(
                params.library_id,
                actor,
                query=params.query,
                page=params.page or 1,
                page_size=params.limit,
            )
            return success(
                f"Page {page.page} of {page.total_pages}: {len(page.items)} of "
                f"{page.total} librarian(s)",
                librarians=[dump_librarian(lib) for lib in page.items],
                pagination=page.model_dump(exclude={"items"}),
            )

        return await guarded("list_librarians", run)

    async def get_librarian(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(GetLibrarianInput, arguments)
            actor = await self.service.authenticate(params.credential())
            librarian = await self.service.get_librarian_secure(
                params.library_id, params.librarian_id, actor
            )
            return success(librarian.name, librarian=dump_librarian(librarian))

        return await guarded("get_librarian", run)

    async def update_librarian(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(UpdateLibrarianInput, arguments)
            actor = await self.service.authenticate(params.credential())
            librarian = await self.service.update_librarian_details(
                actor,
                params.library_id,
                params.librarian_id,
                name=params.name,
                contact_info=params.contact_info,
            )
            return success(
                f"Updated librarian {librarian.name}", librarian=dump_librarian(librarian)
            )

        return await guarded("update_librarian", run)

    async def set_super_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(SetSuperStatusInput, arguments)
            actor = await self.service.authenticate(params.credential())
            librarian = await self.service.update_librarian_super_status(
                actor, params.library_id, params.librarian_id, params.is_super
            )
            state = "now" if librarian.is_super else "no longer"
            return success(
                f"{librarian.name} is {state} a super librarian",
                librarian=dump_librarian(librarian),
            )

        return await guarded("set_super_status", run)

    async def delete_librarian(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(DeleteLibrarianInput, arguments)
            actor = await self.service.authenticate(params.credential())
            result = await self.service.delete_librarian(
                actor,
                params.library_id,
                params.librarian_id,
                reassign_books_to=params.reassign_books_to,
                delete_books_and_loans=params.delete_books_and_loans,
            )
            if result.reassigned_to:
                message = (
                    f"Deleted librarian {result.librarian_id}; {result.books_reassigned} book(s) "
                    f"and {result.loans_reassigned} loan(s) moved to {result.reassigned_to}"
                )
            else:
                message = (
                    f"Deleted librarian {result.librarian_id} with {result.books_deleted} "
                    f"book(s) and {result.loans_deleted} loan(s)"
                )
            return success(message, deletion=result.model_dump())

        return await guarded("delete_librarian", run)

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "name": "authenticate",
                "description": (
                    "Check a secret key and return the librarian and library it belongs to. "
                    "Pass library_id to reject keys from other libraries."
                ),
                "inputSchema": AuthenticateInput.model_json_schema(),
                "handler": self.authenticate,
            },
            {
                "name": "create_librarian",
                "description": (
                    "Register a librarian in a library. Regular librarians can self-register; "
                    "creating a super librarian needs a super librarian's secret key. "
                    "The new secret key is returned once."
                ),
                "inputSchema": CreateLibrarianInput.model_json_schema(),
                "handler": self.create_librarian,
            },
            {
                "name": "list_librarians",
                "description": (
                    "List a library's librarians. Secret keys are shown only to super "
                    "librarians of the library, or to each librarian for their own record. "
                    "Give query, page or limit for a paginated search."
                ),
                "inputSchema": ListLibrariansInput.model_json_schema(),
                "handler": self.list_librarians,
            },
            {
                "name": "get_librarian",
                "description": "Get one librarian, with the same secret-key visibility rules.",
                "inputSchema": GetLibrarianInput.model_json_schema(),
                "handler": self.get_librarian,
            },
            {
                "name": "update_librarian",
                "description": (
                    "Change a librarian's name or contact info. Allowed for the librarian "
                    "themself and for super librarians."
                ),
                "inputSchema": UpdateLibrarianInput.model_json_schema(),
                "handler": self.update_librarian,
            },
            {
                "name": "set_super_status",
                "description": (
                    "Grant or revoke super librarian status. Super librarians only; "
                    "nobody can revoke their own status."
                ),
                "inputSchema": SetSuperStatusInput.model_json_schema(),
                "handler": self.set_super_status,
            },
            {
                "name": "delete_librarian",
                "description": (
                    "Delete a librarian (super librarians only, not yourself). If the "
                    "librarian has books or loans, pass reassign_books_to or "
                    "delete_books_and_loans."
                ),
                "inputSchema": DeleteLibrarianInput.model_json_schema(),
                "handler": self.delete_librarian,
            },
        ]
