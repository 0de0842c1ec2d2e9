"""Health resource: store connectivity and embedding queue status."""

from typing import Any

from ..service import LibraryService


class HealthResources:
    def __init__(self, service: LibraryService):
        self.service = service

    async def health(self) -> dict[str, Any]:
        return await self.service.health()

    def definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "uri": "usufruit://health",
                "name": "Server Health",
                "description": "Database connectivity, semantic search and embedding job status",
                "mime_type": "application/json",
                "handler": self.health,
            }
        ]
