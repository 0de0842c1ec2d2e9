"""
Librarian model for usufruit.

A librarian is a member of one library. Librarians authenticate with a secret
key, a 256-bit hex token that doubles as their only credential. Because the
key is a bearer capability, it is carried on the model as an optional field:
read paths return copies with the key stripped unless the requester is allowed
to see it.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Librarian(BaseModel):
    """
    Represents a librarian of a lending library.

    ``secret_key`` is ``None`` on redacted copies. It is excluded from
    ``repr`` so a logged model never leaks a credential.
    """

    id: str = Field(
        ...,
        description="Unique identifier for the librarian",
        pattern=r"^librarian_[a-zA-Z0-9_]+$",
    )

    name: str = Field(
        ...,
        description="Display name of the librarian",
        min_length=1,
        max_length=200,
        examples=["Ada Okafor"],
    )

    contact_info: str = Field(
        ...,
        description="How other members reach this librarian (email, phone, ...)",
        min_length=1,
        max_length=500,
        examples=["ada@example.org", "+44 20 7946 0018"],
    )

    is_super: bool = Field(
        default=False,
        description="Super librarians administer their library",
    )

    secret_key: str | None = Field(
        None,
        description="Bearer credential; present only when the requester may see it",
        repr=False,
    )

    library_id: str = Field(
        ...,
        description="Library this librarian belongs to",
    )

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
