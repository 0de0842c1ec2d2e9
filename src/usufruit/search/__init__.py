"""
Hybrid lexical + semantic search for usufruit.

- similarity: cosine similarity and ranking (numpy)
- embeddings: embedder protocol, sentence-transformers backend, job queue
- cache: TTL cache of raw semantic hits
- hybrid: the search engine that merges lexical and semantic results
"""

from .cache import SemanticSearchCache
from .embeddings import (
    Embedder,
    EmbeddingJobQueue,
    SentenceTransformerEmbedder,
    book_embedding_text,
    embed_or_zero,
)
from .hybrid import HybridSearchEngine, SearchResult, SemanticMetadata, combine_results
from .similarity import cosine_similarity, rank_by_similarity

__all__ = [
    "Embedder",
    "EmbeddingJobQueue",
    "HybridSearchEngine",
    "SearchResult",
    "SemanticMetadata",
    "SemanticSearchCache",
    "SentenceTransformerEmbedder",
    "book_embedding_text",
    "combine_results",
    "cosine_similarity",
    "embed_or_zero",
    "rank_by_similarity",
]
