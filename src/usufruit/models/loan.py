"""
Loan model for usufruit.

A loan is one borrow of one book. It starts active and becomes returned once
``returned_at`` is set; there is no other state. Overdue status is computed on
read from the due date and today's date.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Loan(BaseModel):
    """A borrow/return record."""

    id: str = Field(
        ...,
        description="Unique identifier for the loan",
        pattern=r"^loan_[a-zA-Z0-9_]+$",
    )

    book_id: str = Field(..., description="Borrowed book")
    librarian_id: str = Field(..., description="Borrowing librarian")

    borrowed_at: datetime = Field(..., description="When the book was borrowed")
    due_date: date | None = Field(None, description="Date the book should be back")
    returned_at: datetime | None = Field(None, description="When the book came back")

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_active(self) -> bool:
        return self.returned_at is None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_overdue(self) -> bool:
        """Active and past its due date."""
        if self.returned_at is not None or self.due_date is None:
            return False
        return self.due_date < date.today()

    @property
    def days_overdue(self) -> int:
        if not self.is_overdue or self.due_date is None:
            return 0
        return (date.today() - self.due_date).days

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )
