"""
Library tools for usufruit.

- create_library: register a library, optionally with its founding super
  librarian (whose secret key is returned once)
- update_library: edit name, description or location (super librarians)
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..service import LibraryService
from .responses import AuthenticatedInput, dump_librarian, guarded, parse_arguments, success

logger = logging.getLogger(__name__)


class CreateLibraryInput(BaseModel):
    """Input schema for the create_library tool."""

    name: str = Field(..., description="Library name", min_length=1, max_length=200)
    description: str | None = Field(default=None, description="What the library lends")
    location: str | None = Field(default=None, description="Where items are exchanged")
    founder_name: str | None = Field(
        default=None, description="Name of the first librarian, who becomes a super librarian"
    )
    founder_contact_info: str | None = Field(
        default=None, description="Contact info of the first librarian"
    )

    @model_validator(mode="after")
    def founder_fields_together(self) -> "CreateLibraryInput":
        if bool(self.founder_name) != bool(self.founder_contact_info):
            raise ValueError("founder_name and founder_contact_info must be given together")
        return self


class UpdateLibraryInput(AuthenticatedInput):
    """Input schema for the update_library tool."""

    library_id: str = Field(..., description="Library to update")
    name: str | None = Field(default=None, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, max_length=500)


class LibraryTools:
    """Tool handlers for libraries."""

    def __init__(self, service: LibraryService):
        self.service = service

    async def create_library(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(CreateLibraryInput, arguments)
            if params.founder_name and params.founder_contact_info:
                founding = await self.service.create_library_with_founder(
                    name=params.name,
                    founder_name=params.founder_name,
                    founder_contact_info=params.founder_contact_info,
                    description=params.description,
                    location=params.location,
                )
                return success(
                    f"Created library '{founding.library.name}' with super librarian "
                    f"'{founding.librarian.name}'. Store the secret key now; "
                    "it is only shown to its owner and super librarians.",
                    library=founding.library.model_dump(mode="json"),
                    librarian=dump_librarian(founding.librarian),
                )

            library = await self.service.create_library(
                params.name, description=params.description, location=params.location
            )
            return success(
                f"Created library '{library.name}'",
                library=library.model_dump(mode="json"),
            )

        return await guarded("create_library", run)

    async def update_library(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(UpdateLibraryInput, arguments)
            actor = await self.service.authenticate(params.credential())
            library = await self.service.update_library(
                actor,
                params.library_id,
                name=params.name,
                description=params.description,
                location=params.location,
            )
            return success(
                f"Updated library '{library.name}'", library=library.model_dump(mode="json")
            )

        return await guarded("update_library", run)

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "name": "create_library",
                "description": (
                    "Create a community lending library. Give founder_name and "
                    "founder_contact_info to register its first (super) librarian at the "
                    "same time; the response then includes that librarian's secret key."
                ),
                "inputSchema": CreateLibraryInput.model_json_schema(),
                "handler": self.create_library,
            },
            {
                "name": "update_library",
                "description": (
                    "Update a library's name, description or location. "
                    "Requires the secret key of a super librarian of that library."
                ),
                "inputSchema": UpdateLibraryInput.model_json_schema(),
                "handler": self.update_library,
            },
        ]
