"""
Tests for background embedding.

The queue is exercised with fake embedders so the tests need no model:
successful jobs store vectors, failing jobs are retried and then recorded,
and nothing a job does can fail the request that submitted it.
"""

import asyncio

import pytest
import pytest_asyncio

from usufruit.database import BookRepository
from usufruit.errors import DependencyError
from usufruit.search import embeddings
from usufruit.search.cache import SemanticSearchCache
from usufruit.search.embeddings import (
    Embedder,
    EmbeddingJobQueue,
    book_embedding_text,
    embed_or_zero,
    embed_with_timeout,
)
from usufruit.service import LibraryService

from fakes import FailingEmbedder, FakeEmbedder, SlowEmbedder, WrongSizeEmbedder


@pytest_asyncio.fixture
async def book(service, library_setup):
    return await service.create_book(
        library_setup.founder,
        library_setup.library.id,
        title="Arduino Projects",
        author="Simon Monk",
        description="Microcontroller builds",
    )


class TestEmbeddingHelpers:
    def test_fake_embedder_satisfies_protocol(self):
        assert isinstance(FakeEmbedder(), Embedder)

    def test_embedding_text(self):
        assert book_embedding_text("Arduino Projects", None, "Builds") == "arduino projects builds"

    async def test_timeout_becomes_dependency_error(self):
        with pytest.raises(DependencyError, match="timed out"):
            await embed_with_timeout(SlowEmbedder(), "slow", timeout=0.05)

    async def test_model_failure_becomes_dependency_error(self):
        with pytest.raises(DependencyError, match="RuntimeError"):
            await embed_with_timeout(FailingEmbedder(), "boom", timeout=1.0)

    async def test_wrong_dimension_rejected(self):
        with pytest.raises(DependencyError, match="dimensions"):
            await embed_with_timeout(WrongSizeEmbedder(), "x", timeout=1.0)

    async def test_embed_or_zero(self):
        assert await embed_or_zero(FailingEmbedder(), "x", timeout=1.0) == [0.0] * 4


class TestEmbeddingJobQueue:
    async def test_job_stores_vector_and_invalidates_cache(self, db_manager, book):
        cache = SemanticSearchCache()
        cache.set(book.library_id, "electronics", 0.4, [])
        queue = EmbeddingJobQueue(FakeEmbedder(), db_manager, cache=cache)

        queue.submit(book.id, book.library_id, "arduino projects microcontroller builds")
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert queue.stats.succeeded == 1
        assert queue.stats.pending == 0
        assert len(cache) == 0
        with db_manager.session_scope() as session:
            assert BookRepository(session).get_by_id(book.id).has_embedding is True

    async def test_failing_job_retried_then_recorded(self, db_manager, book):
        embedder = FailingEmbedder()
        queue = EmbeddingJobQueue(embedder, db_manager, max_attempts=3)

        queue.submit(book.id, book.library_id, "text")
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert embedder.calls == 3
        assert queue.stats.retried == 2
        assert queue.stats.failed == 1
        failure = queue.stats.failures[0]
        assert failure.book_id == book.id
        assert failure.attempts == 3
        assert "RuntimeError" in failure.error

    async def test_failure_log_keeps_only_recent(self, db_manager, book, monkeypatch):
        monkeypatch.setattr(embeddings, "RECENT_FAILURES", 2)
        queue = EmbeddingJobQueue(FailingEmbedder(), db_manager, max_attempts=1)

        for attempt in range(5):
            queue.submit(book.id, book.library_id, f"text {attempt}")
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert queue.stats.failed == 5
        assert len(queue.stats.failures) == 2

    async def test_deleted_book_is_skipped(self, db_manager, service, library_setup, book):
        await service.delete_book(library_setup.founder, library_setup.library.id, book.id)
        queue = EmbeddingJobQueue(FakeEmbedder(), db_manager)

        queue.submit(book.id, book.library_id, "text")
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert queue.stats.succeeded == 0
        assert queue.stats.failed == 0

    async def test_start_and_stop(self, db_manager):
        queue = EmbeddingJobQueue(FakeEmbedder(), db_manager)
        assert queue.running is False
        queue.start()
        queue.start()
        assert queue.running is True
        await queue.stop()
        assert queue.running is False


class TestServiceScheduling:
    async def test_create_book_embeds_in_background(
        self, semantic_service, db_manager, library_factory
    ):
        setup = await library_factory(semantic_service)
        book = await semantic_service.create_book(
            setup.founder, setup.library.id, title="Bike Repair Manual"
        )
        assert book.has_embedding is False

        await asyncio.wait_for(semantic_service.job_queue.join(), timeout=5)

        stored = await semantic_service.get_book(setup.library.id, book.id)
        assert stored.has_embedding is True

    async def test_embedding_failure_does_not_fail_create(
        self, db_manager, semantic_config, library_factory
    ):
        svc = LibraryService(db_manager, config=semantic_config, embedder=FailingEmbedder())
        setup = await library_factory(svc)

        book = await svc.create_book(setup.founder, setup.library.id, title="Tent")
        await asyncio.wait_for(svc.job_queue.join(), timeout=5)

        assert book.id.startswith("book_")
        assert svc.job_queue.stats.failed == 1
        health = await svc.health()
        assert health["embedding_queue"]["failed"] == 1
        await svc.close()
