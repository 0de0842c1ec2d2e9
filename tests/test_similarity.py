"""Tests for cosine similarity and ranking."""

import math

import pytest

from usufruit.search.similarity import cosine_similarity, rank_by_similarity


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        assert cosine_similarity([3.0, 4.0], [6.0, 8.0]) == pytest.approx(1.0)

    def test_known_angle(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 1.0]) == pytest.approx(1 / math.sqrt(2))

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestRankBySimilarity:
    def test_threshold_order_and_ties(self):
        candidates = [
            ("book_b", [1.0, 0.0]),
            ("book_a", [1.0, 0.0]),
            ("book_c", [0.6, 0.8]),
            ("book_d", [0.0, 1.0]),
        ]
        ranked = rank_by_similarity([1.0, 0.0], candidates, threshold=0.5)

        assert [book_id for book_id, _ in ranked] == ["book_a", "book_b", "book_c"]
        assert ranked[2][1] == pytest.approx(0.6)

    def test_threshold_is_inclusive(self):
        ranked = rank_by_similarity([1.0, 0.0], [("book_c", [0.6, 0.8])], threshold=0.6)
        assert len(ranked) == 1

    def test_mismatched_candidates_skipped(self):
        ranked = rank_by_similarity(
            [1.0, 0.0], [("book_short", [1.0]), ("book_ok", [1.0, 0.0])], threshold=0.0
        )
        assert [book_id for book_id, _ in ranked] == ["book_ok"]
