"""
Text embeddings for semantic search.

The embedding model is an opaque ``text -> vector`` function behind the
``Embedder`` protocol. The bundled ``SentenceTransformerEmbedder`` needs the
optional ``semantic`` extra (sentence-transformers).

Model calls are blocking, so they run in a worker thread under a timeout.
New books are embedded out-of-band by ``EmbeddingJobQueue``: book creation
only enqueues a job, and a background task computes and stores the vector,
retrying failed jobs a bounded number of times.
"""

import asyncio
import contextlib
import logging
from collections import deque
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from ..database.book_repository import BookRepository
from ..database.session import DatabaseManager
from ..errors import DependencyError
from ..observability.metrics import record_embedding_job
from .cache import SemanticSearchCache

logger = logging.getLogger(__name__)

# Only the most recent exhausted jobs are kept; `failed` counts all of them
RECENT_FAILURES = 50


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns text into a fixed-length vector."""

    dimensions: int

    def embed(self, text: str) -> list[float]: ...


class SentenceTransformerEmbedder:
    """Embedder backed by a sentence-transformers model (normalized mean pooling)."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        # Optional dependency, installed with the "semantic" extra
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model %s", model_name)
        self.model_name = model_name
        self._model = SentenceTransformer(model_name)
        self.dimensions = int(self._model.get_sentence_embedding_dimension())

    def embed(self, text: str) -> list[float]:
        vector = self._model.encode(text.strip(), convert_to_numpy=True, normalize_embeddings=True)
        return [float(x) for x in vector]


def book_embedding_text(title: str, author: str | None, description: str | None) -> str:
    """Text a book is embedded from: title, author and description, lower-cased."""
    parts = [p for p in (title, author, description) if p]
    return " ".join(parts).lower().strip()


async def embed_with_timeout(embedder: Embedder, text: str, timeout: float) -> list[float]:
    """
    Embed text in a worker thread.

    Raises:
        DependencyError: If the model fails, times out, or returns a vector of
            the wrong length
    """
    try:
        vector = await asyncio.wait_for(asyncio.to_thread(embedder.embed, text), timeout)
    except TimeoutError as e:
        raise DependencyError(f"Embedding timed out after {timeout}s") from e
    except Exception as e:
        raise DependencyError(f"Embedding failed: {type(e).__name__}") from e

    if len(vector) != embedder.dimensions:
        raise DependencyError(
            f"Embedding has {len(vector)} dimensions, expected {embedder.dimensions}"
        )
    return vector


async def embed_or_zero(embedder: Embedder, text: str, timeout: float) -> list[float]:
    """Embed text, substituting a zero vector when embedding fails."""
    try:
        return await embed_with_timeout(embedder, text, timeout)
    except DependencyError as e:
        logger.warning("Using zero vector for query: %s", e.message)
        return [0.0] * embedder.dimensions


class EmbeddingJob(BaseModel):
    book_id: str
    library_id: str
    text: str
    attempts: int = 0


class EmbeddingFailure(BaseModel):
    """A job that exhausted its attempts."""

    book_id: str
    library_id: str
    attempts: int
    error: str


class EmbeddingQueueStats(BaseModel):
    submitted: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    pending: int = 0
    failures: deque[EmbeddingFailure] = Field(
        default_factory=lambda: deque(maxlen=RECENT_FAILURES)
    )


class EmbeddingJobQueue:
    """
    Background embedding of books.

    ``submit`` never blocks and never raises because of the model. A single
    worker task drains the queue, storing each vector on its book and
    invalidating the library's semantic cache entries.
    """

    def __init__(
        self,
        embedder: Embedder,
        db_manager: DatabaseManager,
        cache: SemanticSearchCache | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
    ):
        self.embedder = embedder
        self.db_manager = db_manager
        self.cache = cache
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.stats = EmbeddingQueueStats()
        self._queue: asyncio.Queue[EmbeddingJob] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker on the running event loop (idempotent)."""
        if not self.running:
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name="usufruit-embedding-worker"
            )
            logger.debug("Embedding worker started")

    def submit(self, book_id: str, library_id: str, text: str) -> None:
        self.start()
        self._queue.put_nowait(EmbeddingJob(book_id=book_id, library_id=library_id, text=text))
        self.stats.submitted += 1
        self.stats.pending = self._queue.qsize()

    async def join(self) -> None:
        """Wait until every submitted job has succeeded or failed for good."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.debug("Embedding worker stopped")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            except Exception:
                self.stats.failed += 1
                record_embedding_job("failed")
                logger.exception("Unexpected error embedding book %s", job.book_id)
            finally:
                self._queue.task_done()
                self.stats.pending = self._queue.qsize()

    async def _process(self, job: EmbeddingJob) -> None:
        job.attempts += 1
        try:
            vector = await embed_with_timeout(self.embedder, job.text, self.timeout)
            with self.db_manager.session_scope() as session:
                stored = BookRepository(session).set_embedding(job.book_id, vector)
        except DependencyError as e:
            self._handle_failure(job, e.message)
            return

        if not stored:
            logger.info("Book %s was deleted before its embedding was stored", job.book_id)
            return
        if self.cache is not None:
            self.cache.invalidate_library(job.library_id)
        self.stats.succeeded += 1
        record_embedding_job("succeeded")
        logger.debug("Stored embedding for book %s", job.book_id)

    def _handle_failure(self, job: EmbeddingJob, error: str) -> None:
        if job.attempts < self.max_attempts:
            self.stats.retried += 1
            record_embedding_job("retried")
            logger.warning(
                "Embedding book %s failed (attempt %d/%d): %s; retrying",
                job.book_id,
                job.attempts,
                self.max_attempts,
                error,
            )
            self._queue.put_nowait(job)
            return

        self.stats.failed += 1
        record_embedding_job("failed")
        self.stats.failures.append(
            EmbeddingFailure(
                book_id=job.book_id,
                library_id=job.library_id,
                attempts=job.attempts,
                error=error,
            )
        )
        logger.error(
            "Giving up on embedding book %s after %d attempts: %s",
            job.book_id,
            job.attempts,
            error,
        )
