"""Configuration management for the usufruit server.

Settings come from ``USUFRUIT_*`` environment variables or a ``.env`` file and
are validated with Pydantic v2. They cover:

1. Server identity - name and version announced to MCP clients
2. Storage - SQLite file path or a full SQLAlchemy URL
3. Transport - stdio, or streamable HTTP on a host and port
4. Pagination limits shared by every list operation
5. Semantic search - threshold, cache policy, embedding model and job queue
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """usufruit server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="USUFRUIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Identity ===

    server_name: str = Field(
        default="usufruit",
        description="Name announced to MCP clients (lowercase, digits and dashes)",
        min_length=3,
        max_length=50,
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Semantic version announced to MCP clients",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Storage ===

    database_path: Path = Field(
        default=Path("data/usufruit.db"),
        description="SQLite file used when no database_url is set",
    )

    database_url: str | None = Field(
        default=None,
        description="Any SQLAlchemy URL; takes precedence over database_path",
    )

    # === Transport ===

    transport: str = Field(
        default="stdio",
        description="stdio for local clients, streamable_http to listen on a port",
        pattern=r"^(stdio|streamable_http)$",
    )

    http_host: str = Field(default="127.0.0.1", description="Bind address for HTTP")

    http_port: int = Field(default=8080, description="Port for HTTP", ge=1024, le=65535)

    debug: bool = Field(default=False, description="Verbose protocol logging")

    log_level: str = Field(
        default="INFO",
        description="Root log level when debug is off",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    # === Pagination ===

    default_page_size: int = Field(
        default=50,
        description="Page size used when a list request does not give one",
        ge=1,
        le=100,
    )

    max_page_size: int = Field(
        default=100,
        description="Hard cap on the page size of any list or search",
        ge=1,
        le=100,
    )

    # === Semantic Search ===

    enable_semantic_search: bool = Field(
        default=False,
        description="Merge embedding-similarity matches into lexical search results",
    )

    semantic_threshold: float = Field(
        default=0.4,
        description="Minimum cosine similarity for a semantic match",
        ge=0.0,
        le=1.0,
    )

    semantic_cache_ttl: int = Field(
        default=300,  # 5 minutes
        description="Lifetime of cached semantic results in seconds",
        ge=0,
    )

    semantic_cache_max_entries: int = Field(
        default=100,
        description="Cache size above which stale entries are evicted",
        ge=1,
    )

    embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Sentence-transformers model used for book and query embeddings",
    )

    embedding_dimensions: int = Field(
        default=384,
        description="Length of every embedding vector in this deployment",
        ge=1,
    )

    embedding_timeout: float = Field(
        default=10.0,
        description="Seconds to wait for a single embedding before giving up",
        gt=0,
    )

    embedding_backfill_batch_size: int = Field(
        default=20,
        description="Books embedded per lazy backfill pass",
        ge=1,
    )

    min_embedded_books: int = Field(
        default=5,
        description="Backfill runs when a library has fewer embedded books than this",
        ge=0,
    )

    embedding_max_attempts: int = Field(
        default=3,
        description="Attempts per queued embedding job before it is dropped",
        ge=1,
    )

    @field_validator("database_path")
    @classmethod
    def ensure_database_directory(cls, v: Path) -> Path:
        """Make the path absolute and create its directory."""
        path = v.absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @model_validator(mode="after")
    def default_page_within_cap(self) -> "ServerConfig":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    def get_database_url(self) -> str:
        """The SQLAlchemy URL of the configured store."""
        return self.database_url or f"sqlite:///{self.database_path}"


class _ConfigStore:
    instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """The process-wide configuration, loaded on first use."""
    if _ConfigStore.instance is None:
        _ConfigStore.instance = ServerConfig()
    return _ConfigStore.instance


def reset_config() -> None:
    """Forget the loaded configuration so the next ``get_config`` re-reads the environment."""
    _ConfigStore.instance = None
