"""OpenAIEmbedding — async embedding and summarization provider backed by OpenAI."""

from __future__ import annotations

import os
from typing import Any

import openai
from openai import AsyncOpenAI

from cyclesearch.exceptions import ProviderCallError, ProviderUnavailableError, SummarizationError
from cyclesearch.search.prompts import session_summary_prompt

# Default dimensions per model when the user does not specify.
_MODEL_DEFAULTS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

_UNAVAILABLE_ERRORS = (openai.AuthenticationError, openai.PermissionDeniedError)


class OpenAIEmbedding:
    """Async provider backed by the OpenAI Embeddings and Chat APIs.

    Implements ``EmbeddingProvider`` and ``SupportsSummarize``.  Large
    batches are chunked at *batch_size* texts per API call.

    Credential problems surface as :class:`ProviderUnavailableError`;
    every other API failure as :class:`ProviderCallError`.
    """

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        summary_model: str = "gpt-4o-mini",
        dimensions: int | None = None,
        api_key: str | None = None,
        max_retries: int = 2,
        timeout: float = 60.0,
        batch_size: int = 512,
        summary_max_tokens: int = 200,
        summary_temperature: float = 0.3,
    ) -> None:
        resolved_key = (api_key or os.environ.get("OPENAI_API_KEY") or "").strip()
        if not resolved_key:
            msg = (
                "No OpenAI API key provided. Pass api_key= or set the "
                "OPENAI_API_KEY environment variable."
            )
            raise ProviderUnavailableError(msg)

        self._model = model
        self._summary_model = summary_model
        self._dimensions = dimensions
        self._batch_size = batch_size
        self._summary_max_tokens = summary_max_tokens
        self._summary_temperature = summary_temperature
        self._client = AsyncOpenAI(
            api_key=resolved_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # EmbeddingProvider protocol
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string via the OpenAI API."""
        result = await self._call_api([text])
        return result[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts, chunking at *batch_size* per API call."""
        if not texts:
            return []

        all_vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = texts[start : start + self._batch_size]
            vectors = await self._call_api(chunk)
            all_vectors.extend(vectors)
        return all_vectors

    @property
    def dimensions(self) -> int:
        """Return the embedding dimensionality."""
        if self._dimensions is not None:
            return self._dimensions
        default = _MODEL_DEFAULTS.get(self._model)
        if default is not None:
            return default
        msg = f"Unknown default dimensions for model {self._model!r}. Pass dimensions= explicitly."
        raise ValueError(msg)

    @property
    def model_name(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # SupportsSummarize
    # ------------------------------------------------------------------

    async def summarize(self, text: str) -> str:
        """Summarize a serialized session with the chat model."""
        try:
            response = await self._client.chat.completions.create(
                model=self._summary_model,
                messages=[{"role": "user", "content": session_summary_prompt(text)}],
                max_tokens=self._summary_max_tokens,
                temperature=self._summary_temperature,
            )
        except _UNAVAILABLE_ERRORS as exc:
            raise ProviderUnavailableError(str(exc)) from exc
        except openai.OpenAIError as exc:
            raise SummarizationError(str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            msg = "Summary model returned no content"
            raise SummarizationError(msg)
        return content.strip()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call_api(self, texts: list[str]) -> list[list[float]]:
        """Call the OpenAI embeddings endpoint and return ordered vectors."""
        kwargs: dict[str, Any] = {
            "input": texts,
            "model": self._model,
            "encoding_format": "float",
        }
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)
        except _UNAVAILABLE_ERRORS as exc:
            raise ProviderUnavailableError(str(exc)) from exc
        except openai.OpenAIError as exc:
            raise ProviderCallError(str(exc)) from exc

        # Sort by index to ensure order matches input
        sorted_data = sorted(response.data, key=lambda e: e.index)
        return [item.embedding for item in sorted_data]
