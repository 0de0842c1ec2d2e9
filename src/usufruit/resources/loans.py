"""Loan Resources - Circulation History

Resources:
- usufruit://libraries/{library_id}/books/{book_id}/loans - A book's loans, newest first
- usufruit://libraries/{library_id}/loans/active - What is out right now
- usufruit://libraries/{library_id}/librarians/{librarian_id}/loans - A borrower's loans

Overdue status is computed when the resource is read.
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..errors import UsufruitError
from ..service import LibraryService

logger = logging.getLogger(__name__)


class LoanResources:
    def __init__(self, service: LibraryService):
        self.service = service

    async def book_history(self, library_id: str, book_id: str) -> dict[str, Any]:
        try:
            page = await self.service.get_loan_history(library_id, book_id)
            return page.model_dump(mode="json")
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    async def active_loans(self, library_id: str) -> dict[str, Any]:
        try:
            page = await self.service.list_active_loans(library_id)
            data = page.model_dump(mode="json")
            data["overdue_count"] = sum(1 for loan in page.items if loan.is_overdue)
            return data
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    async def borrower_loans(self, library_id: str, librarian_id: str) -> dict[str, Any]:
        try:
            loans = await self.service.get_librarian_loans(library_id, librarian_id)
            return {
                "librarian_id": librarian_id,
                "items": [loan.model_dump(mode="json") for loan in loans],
                "active_count": sum(1 for loan in loans if loan.is_active),
            }
        except UsufruitError as e:
            raise ResourceError(e.message) from e

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "uri_template": "usufruit://libraries/{library_id}/books/{book_id}/loans",
                "name": "Loan History",
                "description": "Every loan of a book, newest first",
                "mime_type": "application/json",
                "handler": self.book_history,
            },
            {
                "uri_template": "usufruit://libraries/{library_id}/loans/active",
                "name": "Active Loans",
                "description": "Items currently on loan, earliest due first, with overdue count",
                "mime_type": "application/json",
                "handler": self.active_loans,
            },
            {
                "uri_template": (
                    "usufruit://libraries/{library_id}/librarians/{librarian_id}/loans"
                ),
                "name": "Borrower Loans",
                "description": "Loans taken out by one librarian, newest first",
                "mime_type": "application/json",
                "handler": self.borrower_loans,
            },
        ]
