"""
Hybrid lexical + semantic book search.

1. Lexical: substring match over title, author and description, paginated in
   the database.
2. Semantic: when enabled, the query is embedded and compared with every
   embedded book of the library. Semantic-only matches fill whatever room
   the lexical page leaves; a full lexical page still counts them in the
   total. Libraries with too few embedded books get a small backfill first.
3. Merge: the merged sequence is every lexical match (in lexical order)
   followed by semantic matches at or above the threshold that are not
   lexical matches, best score first. Pages are slices of that sequence.

Raw semantic hits are cached per (library, query, threshold). Any failure in
the semantic path degrades to the lexical page; search itself never fails
because of the embedding model.
"""

import logging

from pydantic import BaseModel, Field

from ..config import ServerConfig
from ..database.book_repository import BookRepository
from ..database.repository import PaginatedResponse, PaginationParams
from ..database.session import DatabaseManager
from ..errors import DependencyError, InvalidInputError, UsufruitError
from ..models.book import Book
from ..observability.metrics import record_search
from .cache import SemanticHits, SemanticSearchCache
from .embeddings import Embedder, book_embedding_text, embed_or_zero, embed_with_timeout
from .similarity import rank_by_similarity

logger = logging.getLogger(__name__)


class SearchPagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def compute(cls, page: int, limit: int, total: int) -> "SearchPagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit,
            has_next=page * limit < total,
            has_previous=page > 1,
        )


class SemanticMetadata(BaseModel):
    """How the semantic half of a search went."""

    used: bool = False
    cached: bool = False
    threshold: float
    semantic_matches: int = 0
    scores: dict[str, float] = Field(
        default_factory=dict, description="Similarity of semantic-only items on this page"
    )
    backfilled: int = 0
    fallback_reason: str | None = None


class SearchResult(BaseModel):
    items: list[Book]
    pagination: SearchPagination
    semantic_metadata: SemanticMetadata | None = None


def combine_results(
    lexical_total: int,
    lexical_ids: set[str],
    semantic_hits: SemanticHits,
    page: int,
    limit: int,
    lexical_page_len: int,
) -> tuple[list[tuple[str, float]], int]:
    """
    Work out which semantic-only hits fill the current page.

    Returns the (book id, score) pairs to append after the lexical items of
    the page, and the total length of the merged sequence.
    """
    extras = [(book_id, score) for book_id, score in semantic_hits if book_id not in lexical_ids]
    total = lexical_total + len(extras)

    room = limit - lexical_page_len
    if room <= 0:
        return [], total
    start = max(0, (page - 1) * limit - lexical_total)
    return extras[start : start + room], total


class HybridSearchEngine:
    """Search a library's catalogue, optionally enriched with semantic matches."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        config: ServerConfig,
        embedder: Embedder | None = None,
        cache: SemanticSearchCache | None = None,
    ):
        self.db_manager = db_manager
        self.config = config
        self.embedder = embedder
        self.cache = cache or SemanticSearchCache(
            ttl_seconds=config.semantic_cache_ttl,
            max_entries=config.semantic_cache_max_entries,
        )

    @property
    def semantic_enabled(self) -> bool:
        return self.config.enable_semantic_search and self.embedder is not None

    def _pagination(self, page: int, limit: int) -> PaginationParams:
        if page < 1:
            raise InvalidInputError("Page must be >= 1")
        if limit < 1:
            raise InvalidInputError("Limit must be >= 1")
        return PaginationParams(page=page, page_size=min(limit, self.config.max_page_size))

    async def search(
        self, library_id: str, query: str | None = None, page: int = 1, limit: int = 20
    ) -> SearchResult:
        """
        Search books of a library.

        An empty query returns a plain paginated listing.

        Raises:
            InvalidInputError: If page or limit is below 1
            DependencyError: If the store fails during the lexical search
        """
        pagination = self._pagination(page, limit)
        query = (query or "").strip()
        case_insensitive = self.db_manager.supports_case_insensitive_contains

        with self.db_manager.session_scope() as session:
            lexical = BookRepository(session).search(
                library_id, query, pagination, case_insensitive=case_insensitive
            )

        if not query or not self.semantic_enabled:
            record_search("lexical")
            return self._lexical_only(lexical, pagination)

        # Hits are needed even for a full lexical page so every page reports the same total
        metadata = SemanticMetadata(threshold=self.config.semantic_threshold)
        try:
            hits = await self._semantic_hits(library_id, query, metadata)
            with self.db_manager.session_scope() as session:
                repo = BookRepository(session)
                lexical_ids = repo.lexical_match_ids(library_id, query, case_insensitive)
                extras, total = combine_results(
                    lexical.total,
                    lexical_ids,
                    hits,
                    pagination.page,
                    pagination.page_size,
                    len(lexical.items),
                )
                extra_books = repo.get_many([book_id for book_id, _ in extras])
        except UsufruitError as e:
            logger.warning("Semantic search failed, using lexical results: %s", e.message)
            metadata.used = False
            metadata.fallback_reason = e.message
            record_search("fallback")
            return self._lexical_only(lexical, pagination, metadata)
        except Exception:
            logger.warning("Semantic search failed, using lexical results", exc_info=True)
            metadata.used = False
            metadata.fallback_reason = "semantic search unavailable"
            record_search("fallback")
            return self._lexical_only(lexical, pagination, metadata)

        record_search("hybrid")
        metadata.used = True
        metadata.semantic_matches = total - lexical.total
        metadata.scores = {book_id: score for book_id, score in extras}
        return SearchResult(
            items=list(lexical.items) + extra_books,
            pagination=SearchPagination.compute(pagination.page, pagination.page_size, total),
            semantic_metadata=metadata,
        )

    def _lexical_only(
        self,
        lexical: PaginatedResponse[Book],
        pagination: PaginationParams,
        metadata: SemanticMetadata | None = None,
    ) -> SearchResult:
        return SearchResult(
            items=list(lexical.items),
            pagination=SearchPagination.compute(
                pagination.page, pagination.page_size, lexical.total
            ),
            semantic_metadata=metadata,
        )

    async def _semantic_hits(
        self, library_id: str, query: str, metadata: SemanticMetadata
    ) -> SemanticHits:
        threshold = self.config.semantic_threshold
        cached = self.cache.get(library_id, query, threshold)
        if cached is not None:
            metadata.cached = True
            return cached

        metadata.backfilled = await self.backfill(library_id)

        if self.embedder is None:
            raise DependencyError("no embedding model configured")
        query_vector = await embed_or_zero(self.embedder, query, self.config.embedding_timeout)
        if not any(query_vector):
            raise DependencyError("query embedding unavailable")

        with self.db_manager.session_scope() as session:
            candidates = BookRepository(session).embedded_vectors(library_id)

        hits = rank_by_similarity(query_vector, candidates, threshold)
        self.cache.set(library_id, query, threshold, hits)
        return hits

    async def backfill(self, library_id: str) -> int:
        """
        Embed a batch of books when the library has too few embedded ones.

        Returns the number of embeddings stored. Individual failures are
        logged and skipped.
        """
        if self.embedder is None:
            return 0

        with self.db_manager.session_scope() as session:
            repo = BookRepository(session)
            if repo.count_embedded(library_id) >= self.config.min_embedded_books:
                return 0
            missing = repo.missing_embeddings(
                library_id, self.config.embedding_backfill_batch_size
            )

        stored = 0
        for book in missing:
            text = book_embedding_text(book.title, book.author, book.description)
            try:
                vector = await embed_with_timeout(
                    self.embedder, text, self.config.embedding_timeout
                )
            except DependencyError as e:
                logger.warning("Backfill skipped book %s: %s", book.id, e.message)
                continue
            with self.db_manager.session_scope() as session:
                if BookRepository(session).set_embedding(book.id, vector):
                    stored += 1

        if stored:
            logger.info("Backfilled %d embedding(s) in library %s", stored, library_id)
        return stored
