"""usufruit MCP Resources Package

Resources are the read-only side of the server: browsing libraries, catalogs
and loan history. Anything that changes state or needs a secret key is a tool.
"""

from typing import Any

from ..service import LibraryService
from .catalog import CatalogResources
from .health import HealthResources
from .loans import LoanResources


def build_resources(service: LibraryService) -> list[dict[str, Any]]:
    """All resource definitions, bound to one service instance."""
    resource_sets = [
        CatalogResources(service),
        LoanResources(service),
        HealthResources(service),
    ]
    return [definition for rs in resource_sets for definition in rs.definitions()]


__all__ = ["CatalogResources", "HealthResources", "LoanResources", "build_resources"]
