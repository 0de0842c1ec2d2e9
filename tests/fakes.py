"""Embedding fakes shared by the test modules."""

import math
import time


class FakeEmbedder:
    """
    Keyword embedder with one axis per topic plus a small shared bias.

    Texts about the same topic point the same way; unrelated topics are
    nearly orthogonal.
    """

    TOPICS = (
        ("electronics", "arduino", "microcontroller", "circuit", "soldering"),
        ("bike", "bicycle", "cycling", "puncture"),
        ("camping", "tent", "hiking", "sleeping bag"),
    )

    def __init__(self, dimensions: int = 4):
        self.dimensions = dimensions
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        lowered = text.lower()
        vector = [float(sum(lowered.count(word) for word in words)) for words in self.TOPICS]
        vector.append(0.1)
        vector = vector[: self.dimensions] + [0.0] * (self.dimensions - len(vector))
        norm = math.sqrt(sum(x * x for x in vector))
        return [x / norm for x in vector]


class FailingEmbedder:
    """Embedder whose model always blows up."""

    dimensions = 4

    def __init__(self):
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise RuntimeError("model exploded")


class SlowEmbedder(FakeEmbedder):
    def embed(self, text: str) -> list[float]:
        time.sleep(0.5)
        return super().embed(text)


class WrongSizeEmbedder(FakeEmbedder):
    def embed(self, text: str) -> list[float]:
        return [1.0, 0.0]
