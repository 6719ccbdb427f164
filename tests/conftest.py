"""Shared fixtures: a deterministic embedder and an isolated event log."""

import hashlib
import math
import re
from collections.abc import Sequence
from pathlib import Path

import pytest

from factkeeper.logging import JSONLLogger, configure_logger
from factkeeper.memory import MemorySearcher, MemoryStore

TEST_DIMENSIONS = 1024


class HashingEmbedder:
    """Bag-of-words embedder: each word hashes to a signed slot.

    Same text always gives the same vector, and texts sharing words are
    closer than texts that don't, which is all the pipeline needs.
    """

    def __init__(self, dimensions: int = TEST_DIMENSIONS) -> None:
        self.dimensions = dimensions
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vector(text)

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimensions
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            slot = int.from_bytes(digest[:4], "big") % self.dimensions
            values[slot] += 1.0 if digest[4] % 2 == 0 else -1.0
        norm = math.sqrt(sum(v * v for v in values))
        if norm == 0:
            return values
        return [v / norm for v in values]


@pytest.fixture(autouse=True)
def event_log(tmp_path: Path) -> JSONLLogger:
    """Point the global JSONL logger at a temporary directory."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def store(tmp_path: Path, embedder: HashingEmbedder) -> MemoryStore:
    """Create a MemoryStore with a temporary database."""
    store = MemoryStore(tmp_path / "test_memory.db", embedder)
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def searcher(store: MemoryStore, embedder: HashingEmbedder) -> MemorySearcher:
    return MemorySearcher(store, embedder)
