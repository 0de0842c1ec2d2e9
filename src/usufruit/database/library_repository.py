"""
Library repository for usufruit.

Libraries are created freely and never deleted. Updates are limited to the
descriptive fields; who may update is decided by the policy engine before a
call reaches this layer.
"""

import logging
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import select

from ..errors import NotFoundError
from ..models.library import Library as LibraryModel
from .repository import BaseRepository, PaginatedResponse, PaginationParams, generate_id
from .schema import Library as LibraryDB
from .session import safe_commit

logger = logging.getLogger(__name__)


class LibraryCreateSchema(BaseModel):
    """Schema for creating a library."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    location: str | None = Field(None, max_length=500)

    model_config = {"str_strip_whitespace": True}


class LibraryUpdateSchema(BaseModel):
    """Schema for updating a library - all fields optional."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    location: str | None = Field(None, max_length=500)

    model_config = {"str_strip_whitespace": True}


class LibraryRepository(BaseRepository[LibraryDB, LibraryModel]):
    """Repository for library data access."""

    @property
    def model_class(self):
        return LibraryDB

    @property
    def response_schema(self):
        return LibraryModel

    def create(self, data: LibraryCreateSchema, commit: bool = True) -> LibraryModel:
        """
        Insert a library.

        With ``commit=False`` the row is only flushed, so the caller can add
        more records (such as the founding librarian) in the same transaction.
        """
        library = LibraryDB(
            id=generate_id("library"),
            name=data.name,
            description=data.description,
            location=data.location,
        )
        self.session.add(library)
        if not commit:
            self.session.flush()
            return self._to_response_model(library)
        safe_commit(self.session, "create library")
        self.session.refresh(library)

        logger.info("Created library %s", library.id)
        return self._to_response_model(library)

    def get_or_raise(self, library_id: str) -> LibraryModel:
        library = self.get_by_id(library_id)
        if library is None:
            raise NotFoundError(f"Library {library_id} not found")
        return library

    def list_libraries(
        self, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LibraryModel]:
        """List libraries, newest first."""
        query = select(LibraryDB).order_by(LibraryDB.created_at.desc(), LibraryDB.id)
        return self._paginate(query, pagination)

    def update(self, library_id: str, data: LibraryUpdateSchema) -> LibraryModel:
        """
        Update a library's descriptive fields.

        Raises:
            NotFoundError: If the library does not exist
        """
        library = self._get_db_obj(library_id)
        if library is None:
            raise NotFoundError(f"Library {library_id} not found")

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(library, field, value)
        library.updated_at = datetime.now()

        safe_commit(self.session, "update library")
        self.session.refresh(library)
        return self._to_response_model(library)
