"""Shared fixtures for cyclesearch tests."""

from __future__ import annotations

import hashlib
import math
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from cyclesearch.exceptions import ProviderCallError, SummarizationError
from cyclesearch.jobs.store import JobStore
from cyclesearch.search.stores.local import LocalVectorStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

DIM = 32


def hash_vector(text: str, dim: int = DIM) -> list[float]:
    """Deterministic unit vector from text hash."""
    h = hashlib.sha256(text.encode()).digest()
    raw = [float(b) + 1.0 for b in (h * (dim // len(h) + 1))[:dim]]
    norm = math.sqrt(sum(x * x for x in raw))
    return [x / norm for x in raw]


class FakeEmbedding:
    """Hash-based embedding provider that records calls and can fail on demand.

    ``failures`` maps a text to how many times embedding it should raise
    before succeeding.
    """

    def __init__(self, dim: int = DIM, failures: dict[str, int] | None = None) -> None:
        self._dim = dim
        self.failures = dict(failures or {})
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        remaining = self.failures.get(text, 0)
        if remaining > 0:
            self.failures[text] = remaining - 1
            msg = f"transient failure for {text!r}"
            raise ProviderCallError(msg)
        return hash_vector(text, self._dim)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]

    @property
    def dimensions(self) -> int:
        return self._dim

    @property
    def model_name(self) -> str:
        return "fake-hash"


class FakeSummarizingEmbedding(FakeEmbedding):
    """FakeEmbedding that also summarizes, optionally failing every time."""

    def __init__(self, dim: int = DIM, *, fail_summary: bool = False) -> None:
        super().__init__(dim)
        self.fail_summary = fail_summary
        self.summarized: list[str] = []

    async def summarize(self, text: str) -> str:
        self.summarized.append(text)
        if self.fail_summary:
            msg = "summary unavailable"
            raise SummarizationError(msg)
        return f"Summary of {len(text)} chars"


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Async SQLite engine on a per-test database file."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}", echo=False)
    yield eng
    await eng.dispose()


@pytest.fixture
async def job_store(async_engine: AsyncEngine) -> JobStore:
    return await JobStore.from_engine(async_engine)


@pytest.fixture
def vector_store() -> LocalVectorStore:
    return LocalVectorStore(dimension=DIM)


@pytest.fixture
def provider() -> FakeEmbedding:
    return FakeEmbedding()
