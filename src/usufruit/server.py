"""usufruit MCP Server - FastMCP Implementation

Exposes the lending-library core to MCP clients.

Features exposed:
- Resources: Libraries, catalogs, book details, loan history, health
- Tools: Library and librarian management, books, borrow/return, search

Logs go to stderr so stdout stays clean for the stdio transport.
"""

import logging
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from .config import ServerConfig, get_config
from .database.session import DatabaseManager
from .observability import initialize_observability, trace_resource, trace_tool
from .observability.config import get_environment_config
from .resources import build_resources
from .search.embeddings import Embedder, SentenceTransformerEmbedder
from .service import LibraryService
from .tools import build_tools

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)


def load_embedder(config: ServerConfig) -> Embedder | None:
    """
    Load the configured sentence-transformers model.

    Returns None when semantic search is disabled or the model cannot be
    loaded; search then stays lexical.
    """
    if not config.enable_semantic_search:
        return None
    try:
        return SentenceTransformerEmbedder(config.embedding_model)
    except ImportError:
        logger.warning(
            "sentence-transformers is not installed (pip install 'usufruit[semantic]'); "
            "semantic search disabled"
        )
    except OSError as e:
        logger.warning("Could not load embedding model %s: %s", config.embedding_model, e)
    return None


def create_server(
    config: ServerConfig | None = None,
    db_manager: DatabaseManager | None = None,
    embedder: Embedder | None = None,
) -> tuple[FastMCP, LibraryService]:
    """
    Build the FastMCP server and the service behind it.

    The database schema is created if missing. The embedding worker lives
    for the duration of the server's lifespan.
    """
    config = config or get_config()
    db_manager = db_manager or DatabaseManager(config.get_database_url())
    db_manager.init_database()

    service = LibraryService(db_manager, config=config, embedder=embedder)

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        if service.job_queue is not None:
            service.job_queue.start()
        try:
            yield
        finally:
            await service.close()
            db_manager.close()
            logger.info("Shutdown complete")

    mcp = FastMCP(
        name=config.server_name,
        version=config.server_version,
        instructions=(
            "usufruit - community lending libraries for tools, gear and books. "
            "Use resources to browse libraries, catalogs and loan history. Use tools "
            "to register librarians, manage items, borrow, return and search. Tools that "
            "act for a librarian take that librarian's secret_key."
        ),
        lifespan=lifespan,
    )

    resources = build_resources(service)
    for resource in resources:
        uri = resource.get("uri_template", resource.get("uri"))
        logger.debug("Registering resource: %s with URI: %s", resource["name"], uri)
        try:
            mcp.resource(
                uri=uri,
                name=resource["name"],
                description=resource["description"],
                mime_type=resource["mime_type"],
            )(trace_resource(resource["name"])(resource["handler"]))
        except Exception:
            logger.exception("Failed to register resource %s", resource["name"])
            raise

    logger.info("Registered %d resources", len(resources))

    tools = build_tools(service)
    for tool in tools:
        logger.debug("Registering tool: %s", tool["name"])
        try:
            mcp.tool(
                name=tool["name"],
                description=tool["description"],
            )(trace_tool(tool["name"])(tool["handler"]))
        except Exception:
            logger.exception("Failed to register tool %s", tool["name"])
            raise

    logger.info("Registered %d tools", len(tools))
    return mcp, service


def run_server(mcp: FastMCP, config: ServerConfig) -> None:
    """Run on the configured transport until interrupted."""
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled - verbose protocol logging active")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if config.transport == "stdio":
        logger.info("Starting %s v%s on stdio", config.server_name, config.server_version)
        mcp.run(transport="stdio")
    else:
        logger.info(
            "Starting %s v%s on http://%s:%d",
            config.server_name,
            config.server_version,
            config.http_host,
            config.http_port,
        )
        mcp.run(transport="http", host=config.http_host, port=config.http_port)


def main() -> None:
    """Entry point for the ``usufruit`` command."""
    try:
        config = get_config()
        initialize_observability(get_environment_config())

        logger.info("=" * 60)
        logger.info("usufruit MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Transport: %s", config.transport)
        logger.info("Semantic search: %s", config.enable_semantic_search)
        logger.info("=" * 60)

        mcp, _service = create_server(config, embedder=load_embedder(config))
        run_server(mcp, config)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
