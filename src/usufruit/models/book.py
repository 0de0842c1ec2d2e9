"""
Book model for usufruit.

"Book" is the generic borrowable item: a drill, a tent or an actual book.
Each book is assigned to a librarian who owns it for authorization purposes.

The stored embedding vector never leaves the store layer; the model only
reports whether one exists.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Book(BaseModel):
    """A borrowable item in a library catalog."""

    id: str = Field(
        ...,
        description="Unique identifier for the book",
        pattern=r"^book_[a-zA-Z0-9_]+$",
    )

    title: str = Field(
        ...,
        description="Title of the item",
        min_length=1,
        max_length=500,
        examples=["Arduino Projects", "Cordless Drill (18V)"],
    )

    author: str | None = Field(
        None,
        description="Author or manufacturer",
        max_length=200,
    )

    description: str | None = Field(
        None,
        description="Free-text description, also used for search",
        max_length=5000,
    )

    borrow_duration_days: int = Field(
        default=14,
        description="Loan period in days",
        ge=1,
        le=365,
    )

    organizing_rules: str | None = Field(None, description="Where the item lives on the shelf")
    check_in_instructions: str | None = Field(None, description="What to do when returning")
    check_out_instructions: str | None = Field(None, description="What to do when borrowing")

    library_id: str = Field(..., description="Library owning the item")
    librarian_id: str = Field(..., description="Librarian the item is assigned to")

    has_embedding: bool = Field(
        default=False,
        description="Whether a semantic embedding has been generated",
    )

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "id": "book_9a8b7c6d5e4f40312233445566778899",
                "title": "Arduino Projects",
                "author": "Simon Monk",
                "description": "Microcontroller builds for beginners",
                "borrow_duration_days": 14,
                "library_id": "library_4f1c2a9be0d84a7c9d1e0f3a2b6c5d7e",
                "librarian_id": "librarian_0c1d2e3f405162738495a6b7c8d9e0f1",
            }
        },
    )
