"""Tests for BatchDispatcher — chunked concurrent embedding with per-item isolation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cyclesearch.exceptions import ProviderUnavailableError
from cyclesearch.indexing.dispatcher import BatchDispatcher
from cyclesearch.indexing.rate_limiter import RateLimiter
from cyclesearch.indexing.types import BatchItem
from cyclesearch.jobs.store import JobStore
from cyclesearch.models.jobs import JobStatus, Level
from cyclesearch.search.stores.local import LocalVectorStore
from conftest import DIM, FakeEmbedding, FakeSummarizingEmbedding


async def _items(store: JobStore, texts: list[str]) -> list[BatchItem]:
    for i, text in enumerate(texts):
        await store.enqueue(
            Level.FIELD,
            "s1",
            "cycles",
            f"c{i}",
            text,
            cycle_id=f"c{i}",
            column_name="plan_goal",
            field_label="What am I trying to accomplish this cycle?",
        )
    return [BatchItem.from_job(j) for j in await store.dequeue_pending(len(texts))]


def _dispatcher(store: JobStore, vectors: LocalVectorStore, provider, **kwargs) -> BatchDispatcher:
    return BatchDispatcher(store, vectors, provider, rate_limiter=RateLimiter(10_000), **kwargs)


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_all_items_embedded_and_done(
        self, job_store: JobStore, vector_store: LocalVectorStore, provider: FakeEmbedding
    ):
        items = await _items(job_store, ["alpha", "beta", "gamma"])
        result = await _dispatcher(job_store, vector_store, provider).run_batch(items)

        assert result.success is True
        assert result.processed == 3
        assert result.errors == []
        assert len(vector_store) == 3
        stats = await job_store.statistics()
        assert stats["done"] == 3

    @pytest.mark.asyncio
    async def test_record_metadata(
        self, job_store: JobStore, vector_store: LocalVectorStore, provider: FakeEmbedding
    ):
        items = await _items(job_store, ["alpha"])
        await _dispatcher(job_store, vector_store, provider).run_batch(items)

        [entry] = await vector_store.fetch(["field:c0:plan_goal"])
        assert entry is not None
        assert entry.metadata["level"] == "field"
        assert entry.metadata["session_id"] == "s1"
        assert entry.metadata["cycle_id"] == "c0"
        assert entry.metadata["column"] == "plan_goal"
        assert entry.metadata["text"] == "alpha"
        assert entry.metadata["version"] == 1

    @pytest.mark.asyncio
    async def test_failure_isolated_to_one_item(self, job_store: JobStore, vector_store: LocalVectorStore):
        provider = FakeEmbedding(failures={"beta": 1})
        items = await _items(job_store, ["alpha", "beta", "gamma"])

        result = await _dispatcher(job_store, vector_store, provider).run_batch(items)

        assert result.success is False
        assert result.processed == 2
        beta = next(i for i in items if i.text == "beta")
        assert [e.id for e in result.errors] == [beta.id]
        assert result.errors[0].retryable is True
        failed = await job_store.get(beta.id)
        assert failed is not None
        assert failed.status == JobStatus.ERROR.value
        assert "beta" in (failed.error_message or "")

    @pytest.mark.asyncio
    async def test_non_final_attempt_leaves_job_processing(
        self, job_store: JobStore, vector_store: LocalVectorStore
    ):
        provider = FakeEmbedding(failures={"beta": 1})
        items = await _items(job_store, ["beta"])
        dispatcher = _dispatcher(job_store, vector_store, provider)

        first = await dispatcher.run_batch(items, final_attempt=False)
        job = await job_store.get(items[0].id)
        assert first.processed == 0
        assert job is not None and job.status == JobStatus.PROCESSING.value

        second = await dispatcher.run_batch(items)
        job = await job_store.get(items[0].id)
        assert second.processed == 1
        assert job is not None and job.status == JobStatus.DONE.value

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_final(self, job_store: JobStore, vector_store: LocalVectorStore):
        provider = FakeEmbedding(dim=DIM * 2)
        items = await _items(job_store, ["alpha"])

        result = await _dispatcher(job_store, vector_store, provider).run_batch(items, final_attempt=False)

        assert result.errors[0].retryable is False
        job = await job_store.get(items[0].id)
        assert job is not None and job.status == JobStatus.ERROR.value

    @pytest.mark.asyncio
    async def test_chunks_are_sequential_and_complete(
        self, job_store: JobStore, vector_store: LocalVectorStore, provider: FakeEmbedding
    ):
        texts = [f"text {i}" for i in range(7)]
        items = await _items(job_store, texts)

        result = await _dispatcher(job_store, vector_store, provider, batch_size=3).run_batch(items)

        assert result.processed == 7
        assert sorted(provider.calls) == sorted(texts)
        assert len(vector_store) == 7

    @pytest.mark.asyncio
    async def test_resubmission_overwrites_same_key(
        self, job_store: JobStore, vector_store: LocalVectorStore, provider: FakeEmbedding
    ):
        dispatcher = _dispatcher(job_store, vector_store, provider)
        await dispatcher.run_batch(await _items(job_store, ["first draft"]))
        await dispatcher.run_batch(await _items(job_store, ["second draft"]))

        assert len(vector_store) == 1
        [entry] = await vector_store.fetch(["field:c0:plan_goal"])
        assert entry is not None
        assert entry.metadata["text"] == "second draft"

    @pytest.mark.asyncio
    async def test_no_provider_fails_chunk_without_touching_jobs(
        self, job_store: JobStore, vector_store: LocalVectorStore
    ):
        items = await _items(job_store, ["alpha", "beta"])

        result = await _dispatcher(job_store, vector_store, None).run_batch(items)

        assert result.success is False
        assert result.processed == 0
        assert {e.id for e in result.errors} == {i.id for i in items}
        assert all(e.retryable is False for e in result.errors)
        assert (await job_store.statistics())["pending"] == 2

    @pytest.mark.asyncio
    async def test_rebind_provider(self, job_store: JobStore, vector_store: LocalVectorStore):
        dispatcher = _dispatcher(job_store, vector_store, None)
        dispatcher.rebind_provider(FakeEmbedding())
        result = await dispatcher.run_batch(await _items(job_store, ["alpha"]))
        assert result.processed == 1

    @pytest.mark.asyncio
    async def test_final_chunk_failure_closes_claimed_jobs(
        self, job_store: JobStore, vector_store: LocalVectorStore
    ):
        items = await _items(job_store, ["alpha", "beta"])
        dispatcher = _dispatcher(job_store, vector_store, FakeEmbedding(failures={"beta": 1}))
        await dispatcher.run_batch(items, final_attempt=False)
        beta = next(i for i in items if i.text == "beta")

        dispatcher.rebind_provider(None)
        result = await dispatcher.run_batch([beta])

        assert [e.id for e in result.errors] == [beta.id]
        job = await job_store.get(beta.id)
        assert job is not None
        assert job.status == JobStatus.ERROR.value
        assert job.error_message == "No embedding provider configured"
        alpha = next(i for i in items if i.text == "alpha")
        done = await job_store.get(alpha.id)
        assert done is not None and done.status == JobStatus.DONE.value

    def test_rejects_zero_batch_size(self, vector_store: LocalVectorStore):
        with pytest.raises(ValueError, match="batch_size"):
            BatchDispatcher(MagicMock(), vector_store, FakeEmbedding(), batch_size=0)


class TestSessionSummaries:
    @pytest.mark.asyncio
    async def test_session_text_is_summarized(self, job_store: JobStore, vector_store: LocalVectorStore):
        provider = FakeSummarizingEmbedding()
        await job_store.enqueue(Level.SESSION, "s1", "sessions", "s1", '{"intentions": {}}')
        items = [BatchItem.from_job(j) for j in await job_store.dequeue_pending(1)]

        await _dispatcher(job_store, vector_store, provider).run_batch(items)

        assert provider.summarized == ['{"intentions": {}}']
        [entry] = await vector_store.fetch(["session:s1"])
        assert entry is not None
        assert entry.metadata["text"].startswith("Summary of")

    @pytest.mark.asyncio
    async def test_summary_failure_falls_back_to_raw_text(
        self, job_store: JobStore, vector_store: LocalVectorStore
    ):
        provider = FakeSummarizingEmbedding(fail_summary=True)
        await job_store.enqueue(Level.SESSION, "s1", "sessions", "s1", "raw session json")
        items = [BatchItem.from_job(j) for j in await job_store.dequeue_pending(1)]

        result = await _dispatcher(job_store, vector_store, provider).run_batch(items)

        assert result.processed == 1
        assert provider.calls == ["raw session json"]

    @pytest.mark.asyncio
    async def test_field_text_not_summarized(self, job_store: JobStore, vector_store: LocalVectorStore):
        provider = FakeSummarizingEmbedding()
        items = await _items(job_store, ["alpha"])
        await _dispatcher(job_store, vector_store, provider).run_batch(items)
        assert provider.summarized == []

    @pytest.mark.asyncio
    async def test_provider_without_summarize_embeds_raw(
        self, job_store: JobStore, vector_store: LocalVectorStore, provider: FakeEmbedding
    ):
        await job_store.enqueue(Level.SESSION, "s1", "sessions", "s1", "raw")
        items = [BatchItem.from_job(j) for j in await job_store.dequeue_pending(1)]
        await _dispatcher(job_store, vector_store, provider).run_batch(items)
        assert provider.calls == ["raw"]


class TestProviderUnavailableDuringItem:
    @pytest.mark.asyncio
    async def test_unavailable_provider_marks_error(self, job_store: JobStore, vector_store: LocalVectorStore):
        class NoKeyProvider(FakeEmbedding):
            async def embed(self, text: str) -> list[float]:
                raise ProviderUnavailableError("no API key")

        items = await _items(job_store, ["alpha"])
        result = await _dispatcher(job_store, vector_store, NoKeyProvider()).run_batch(
            items, final_attempt=False
        )
        assert result.errors[0].retryable is False
        job = await job_store.get(items[0].id)
        assert job is not None and job.status == JobStatus.ERROR.value
