"""
Circulation tools for usufruit.

Borrowing creates an active loan due ``borrow_duration_days`` after today.
A book has at most one active loan; a second borrow is a conflict until the
first is returned, and a loan can only be returned once.
"""

import logging
from typing import Any

from pydantic import Field

from ..service import LibraryService
from .responses import AuthenticatedInput, guarded, parse_arguments, success

logger = logging.getLogger(__name__)


class BorrowBookInput(AuthenticatedInput):
    """Input schema for the borrow_book tool."""

    library_id: str = Field(..., description="Library the book belongs to")
    book_id: str = Field(..., description="Book to borrow")
    librarian_id: str | None = Field(
        default=None,
        description="Borrowing librarian, if not the caller (must be in the same library)",
    )


class ReturnBookInput(AuthenticatedInput):
    """Input schema for the return_book tool."""

    library_id: str
    book_id: str
    loan_id: str = Field(..., description="Loan being returned")


class CirculationTools:
    """Tool handlers for borrowing and returning."""

    def __init__(self, service: LibraryService):
        self.service = service

    async def borrow_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(BorrowBookInput, arguments)
            actor = await self.service.authenticate(params.credential())
            loan = await self.service.borrow_book(
                actor, params.library_id, params.book_id, params.librarian_id
            )
            book = await self.service.get_book(params.library_id, params.book_id)

            message = f"Borrowed '{book.title}'. Due back on {loan.due_date:%Y-%m-%d}."
            if book.check_out_instructions:
                message += f"\nCheck-out: {book.check_out_instructions}"
            return success(message, loan=loan.model_dump(mode="json"))

        return await guarded("borrow_book", run)

    async def return_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async def run() -> dict[str, Any]:
            params = parse_arguments(ReturnBookInput, arguments)
            actor = await self.service.authenticate(params.credential())
            loan = await self.service.return_loan(
                actor, params.library_id, params.book_id, params.loan_id
            )
            book = await self.service.get_book(params.library_id, params.book_id)

            message = f"Returned '{book.title}'."
            if book.check_in_instructions:
                message += f"\nCheck-in: {book.check_in_instructions}"
            return success(message, loan=loan.model_dump(mode="json"))

        return await guarded("return_book", run)

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "name": "borrow_book",
                "description": (
                    "Check out a book for the caller, or for another librarian of the "
                    "same library. Fails with a conflict if the book is already on loan."
                ),
                "inputSchema": BorrowBookInput.model_json_schema(),
                "handler": self.borrow_book,
            },
            {
                "name": "return_book",
                "description": (
                    "Return a loan. Any librarian of the library may check a book in; "
                    "returning the same loan twice is a conflict."
                ),
                "inputSchema": ReturnBookInput.model_json_schema(),
                "handler": self.return_book,
            },
        ]
