"""
MCP tools for usufruit.

Each tool set wraps the ``LibraryService`` and exposes tool definitions as
dicts with a name, description, JSON input schema and async handler.
"""

from typing import Any

from ..service import LibraryService
from .books import BookTools
from .circulation import CirculationTools
from .librarians import LibrarianTools
from .libraries import LibraryTools
from .search import SearchTools


def build_tools(service: LibraryService) -> list[dict[str, Any]]:
    """All tool definitions, bound to one service instance."""
    tool_sets = [
        LibraryTools(service),
        LibrarianTools(service),
        BookTools(service),
        CirculationTools(service),
        SearchTools(service),
    ]
    return [definition for tool_set in tool_sets for definition in tool_set.definitions()]


__all__ = [
    "BookTools",
    "CirculationTools",
    "LibrarianTools",
    "LibraryTools",
    "SearchTools",
    "build_tools",
]
