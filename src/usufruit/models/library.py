"""
Library model for usufruit.

A library is the root aggregate of the lending core: librarians and books
always belong to exactly one library, and every authorization decision is
scoped by library id.

Library resources can be accessed via:
- usufruit://libraries
- usufruit://libraries/{library_id}
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Library(BaseModel):
    """A community lending library."""

    id: str = Field(
        ...,
        description="Unique identifier for the library",
        pattern=r"^library_[a-zA-Z0-9_]+$",
        examples=["library_4f1c2a9be0d84a7c9d1e0f3a2b6c5d7e"],
    )

    name: str = Field(
        ...,
        description="Display name of the library",
        min_length=1,
        max_length=200,
        examples=["Maple Street Tool Library", "Northside Seed Library"],
    )

    description: str | None = Field(
        None,
        description="What the library lends and who runs it",
        max_length=5000,
    )

    location: str | None = Field(
        None,
        description="Where items are picked up and returned",
        max_length=500,
        examples=["Community Center, 12 Maple St"],
    )

    created_at: datetime = Field(
        default_factory=datetime.now,
        description="Timestamp when the library was created",
    )

    updated_at: datetime = Field(
        default_factory=datetime.now,
        description="Timestamp when the library was last updated",
    )

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "id": "library_4f1c2a9be0d84a7c9d1e0f3a2b6c5d7e",
                "name": "Maple Street Tool Library",
                "description": "Power tools and garden equipment for neighbours",
                "location": "Community Center, 12 Maple St",
            }
        },
    )
